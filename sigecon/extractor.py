"""
sigecon/extractor.py

Client for the PDF table extraction microservice (POST /extract).

The service parses the contract PDF and answers with
{columns, rows, soma_valor_total, soma_valor_unit, issues}. Parsing itself
is out of scope here; this module only uploads the file and reports progress.
"""

from __future__ import annotations

import logging
import os
from typing import IO, Any, Callable, Dict, Optional

import httpx
from flask import Flask, current_app

from .api import ApiError, extract_error_message

logger = logging.getLogger(__name__)

EXTENSION_KEY = "sigecon_extractor"

ProgressCallback = Callable[[int, Optional[int]], None]


class ProgressReader:
    """
    File wrapper that reports bytes read so far.

    httpx streams multipart file fields through read(), so every chunk it
    pulls triggers on_progress(loaded, total).
    """

    def __init__(self, stream: IO[bytes], on_progress: Optional[ProgressCallback] = None):
        self._stream = stream
        self._on_progress = on_progress
        self.loaded = 0
        self.total = self._measure()

    def _measure(self) -> Optional[int]:
        try:
            offset = self._stream.tell()
            end = self._stream.seek(0, os.SEEK_END)
            self._stream.seek(offset)
        except (AttributeError, OSError):
            return None
        return end - offset

    def read(self, size: int = -1) -> bytes:
        chunk = self._stream.read(size)
        if chunk:
            self.loaded += len(chunk)
            if self._on_progress is not None:
                self._on_progress(self.loaded, self.total)
        return chunk

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        if whence == os.SEEK_SET and offset == 0:
            self.loaded = 0
        return self._stream.seek(offset, whence)

    def tell(self) -> int:
        return self._stream.tell()


def log_progress(loaded: int, total: Optional[int]) -> None:
    if total:
        logger.debug("PDF upload: %d%% (%d/%d bytes)", round(loaded * 100 / total), loaded, total)
    else:
        logger.debug("PDF upload: %d bytes", loaded)


class ExtractorClient:
    """Flask extension, same shape as ApiClient (no bearer token here)."""

    def __init__(self, app: Optional[Flask] = None):
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        app.extensions[EXTENSION_KEY] = httpx.Client(
            base_url=app.config["EXTRACTOR_URL"],
            timeout=app.config.get("API_TIMEOUT", 30.0),
            transport=app.config.get("EXTRACTOR_TRANSPORT"),
        )

    @property
    def client(self) -> httpx.Client:
        return current_app.extensions[EXTENSION_KEY]

    def extract_contract_table(
        self,
        stream: IO[bytes],
        filename: str,
        on_progress: Optional[ProgressCallback] = log_progress,
    ) -> Dict[str, Any]:
        """Upload the PDF as multipart field 'file' and return the extracted table."""
        fallback = "Não foi possível extrair a tabela do contrato."
        reader = ProgressReader(stream, on_progress)
        try:
            response = self.client.post(
                "/extract",
                files={"file": (filename, reader, "application/pdf")},
            )
        except httpx.HTTPError as exc:
            logger.warning("POST /extract failed: %s", exc)
            raise ApiError(fallback) from exc

        if response.is_error:
            message = extract_error_message(response, fallback)
            logger.warning("POST /extract -> %s (%s)", response.status_code, message)
            raise ApiError(message, response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise ApiError(fallback, response.status_code) from exc
        if not isinstance(data, dict):
            raise ApiError(fallback, response.status_code)
        return data
