"""
sigecon/audit.py

Audit trail of user actions, written to the "sigecon.audit" logger.

Goals:
- Capture WHO did WHAT to WHICH entity, with BEFORE/AFTER snapshots.
- Store the user name snapshot and the client IP for traceability.

IMPORTANT:
- The backend keeps the authoritative records; this is the front-end's
  own trace of which user triggered which call.
- Call log_action() only AFTER the backend confirmed the change.
"""

from __future__ import annotations

import json
import logging
from dataclasses import fields, is_dataclass
from typing import Any, Dict, Optional

from flask import has_request_context, request
from flask_login import current_user

audit_logger = logging.getLogger("sigecon.audit")


def _safe_str(value: Any) -> Optional[str]:
    """Stable string for JSON (Decimal, date, ...); None stays None."""
    if value is None:
        return None
    return str(value)


def serialize_dto(instance: Any) -> Dict[str, Optional[str]]:
    """
    Snapshot a DTO as a flat dict of strings.

    Captures only scalar fields (item lists are left out).
    """
    if not is_dataclass(instance):
        raise TypeError("serialize_dto expects a dataclass instance.")

    data: Dict[str, Optional[str]] = {}
    for f in fields(instance):
        value = getattr(instance, f.name)
        if isinstance(value, (list, dict)):
            continue
        data[f.name] = _safe_str(value)
    return data


def log_action(
    entity_type: str,
    entity_id: Any,
    action: str,
    *,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Emit one audit line.

    Parameters:
        entity_type: "Contract", "ContractItem", "Order", "User", ...
        entity_id: backend id (or item number for contract items)
        action: CREATE / UPDATE / DELETE / EXPORT
        before / after: snapshots (optional)

    SECURITY NOTE:
    - request.remote_addr is as Flask sees it. Behind a reverse proxy,
      configure ProxyFix so the real client IP is captured.
    """
    if not entity_type or not action:
        raise TypeError("log_action requires 'entity_type' and 'action'.")

    authenticated = current_user.is_authenticated if has_request_context() else False
    entry = {
        "user": getattr(current_user, "nome", None) if authenticated else None,
        "role": getattr(current_user, "role", None) if authenticated else None,
        "entity_type": entity_type,
        "entity_id": _safe_str(entity_id),
        "action": str(action),
        "before": before,
        "after": after,
        "ip_address": request.remote_addr if has_request_context() else None,
    }
    audit_logger.info(json.dumps(entry, ensure_ascii=False, default=str))
