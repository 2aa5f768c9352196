"""
Contract item commands: role rules are applied before any request is built.
"""

from decimal import Decimal

import pytest

from sigecon.contract_items import (
    MSG_DELETE_FORBIDDEN,
    MSG_INVALID_NUMBER,
    MSG_ITEM_NO,
    MSG_NEW_ITEM_FIELDS,
    MSG_NEW_ITEM_FORBIDDEN,
    MSG_NOTHING_TO_UPDATE,
    MSG_QUANTITY_REQUIRED,
    ItemValidationError,
    build_contract_item_payload,
    check_item_deletion,
    parse_item_no,
)
from sigecon.security import can_create_items, can_delete_items, can_edit_field

FULL_FORM = {"description": "Brita", "unit": "M3", "quantity": "10", "unitPrice": "2,50"}


def test_capabilities_per_role():
    assert all(can_edit_field("ADMIN", f) for f in ("description", "unit", "quantity", "unitPrice"))
    assert can_edit_field("operador", "quantity")
    assert not can_edit_field("OPERADOR", "unitPrice")
    assert not can_edit_field(None, "quantity")
    assert can_create_items("ADMIN") and not can_create_items("OPERADOR")
    assert can_delete_items("ADMIN") and not can_delete_items("OPERADOR")


def test_operador_cannot_add_item():
    with pytest.raises(ItemValidationError) as exc:
        build_contract_item_payload("OPERADOR", FULL_FORM)
    assert exc.value.message == MSG_NEW_ITEM_FORBIDDEN


def test_new_item_requires_every_field():
    form = dict(FULL_FORM, unit="  ")
    with pytest.raises(ItemValidationError) as exc:
        build_contract_item_payload("ADMIN", form, "")
    assert exc.value.message == MSG_NEW_ITEM_FIELDS


def test_new_item_payload_has_computed_total():
    payload = build_contract_item_payload("ADMIN", FULL_FORM)

    assert payload == {
        "description": "Brita",
        "unit": "M3",
        "quantity": Decimal("10"),
        "unitPrice": Decimal("2.50"),
        "totalPrice": Decimal("25.00"),
    }
    assert "itemNo" not in payload


def test_operador_update_sends_only_quantity():
    payload = build_contract_item_payload("OPERADOR", FULL_FORM, "3")

    assert payload == {"itemNo": 3, "quantity": Decimal("10")}


def test_operador_update_without_quantity_is_rejected():
    form = {"description": "Outra descrição"}
    with pytest.raises(ItemValidationError) as exc:
        build_contract_item_payload("OPERADOR", form, "3")
    assert exc.value.message == MSG_QUANTITY_REQUIRED


def test_admin_update_recomputes_total_when_both_figures_sent():
    payload = build_contract_item_payload("ADMIN", FULL_FORM, "3")

    assert payload["itemNo"] == 3
    assert payload["totalPrice"] == Decimal("25.00")


def test_admin_partial_update_has_no_total():
    payload = build_contract_item_payload("ADMIN", {"description": "Brita 1"}, "3")

    assert payload == {"itemNo": 3, "description": "Brita 1"}


def test_update_errors():
    with pytest.raises(ItemValidationError) as exc:
        build_contract_item_payload("ADMIN", FULL_FORM, "3a")
    assert exc.value.message == MSG_ITEM_NO

    with pytest.raises(ItemValidationError) as exc:
        build_contract_item_payload("ADMIN", {}, "3")
    assert exc.value.message == MSG_NOTHING_TO_UPDATE


def test_item_deletion_rules():
    assert check_item_deletion("ADMIN", "4") == 4

    with pytest.raises(ItemValidationError) as exc:
        check_item_deletion("OPERADOR", "4")
    assert exc.value.message == MSG_DELETE_FORBIDDEN

    with pytest.raises(ItemValidationError) as exc:
        check_item_deletion("ADMIN", "x")
    assert exc.value.message == MSG_ITEM_NO


def test_parse_item_no():
    assert parse_item_no(" 12 ") == 12
    assert parse_item_no("1.2") is None
    assert parse_item_no(None) is None


@pytest.mark.parametrize("raw", ["1e400", "9" * 20, "abc"])
def test_unusable_figures_are_rejected(raw):
    with pytest.raises(ItemValidationError) as exc:
        build_contract_item_payload("ADMIN", {"quantity": raw}, "3")
    assert exc.value.message == MSG_INVALID_NUMBER


def test_admin_update_leaves_out_fields_still_equal_to_loaded_values():
    form = {
        "description": "Brita 1",
        "unit": "M3",
        "quantity": "10",
        "unitPrice": "0,125",
        "orig_description": "Brita",
        "orig_unit": "M3",
        "orig_quantity": "10",
        "orig_unitPrice": "0,125",
    }

    payload = build_contract_item_payload("ADMIN", form, "3")

    assert payload == {"itemNo": 3, "description": "Brita 1"}


def test_changing_one_figure_sends_both_with_total():
    form = {
        "quantity": "12",
        "unitPrice": "0,125",
        "orig_quantity": "10",
        "orig_unitPrice": "0,125",
    }

    payload = build_contract_item_payload("ADMIN", form, "3")

    assert payload == {
        "itemNo": 3,
        "quantity": Decimal("12"),
        "unitPrice": Decimal("0.125"),
        "totalPrice": Decimal("1.500"),
    }


def test_admin_update_with_nothing_changed_is_rejected():
    form = {"description": "Brita", "orig_description": "Brita"}
    with pytest.raises(ItemValidationError) as exc:
        build_contract_item_payload("ADMIN", form, "3")
    assert exc.value.message == MSG_NOTHING_TO_UPDATE
