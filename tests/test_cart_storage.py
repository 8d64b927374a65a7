# tests/test_cart_storage.py
from domain.models import DeliverySlot
from services.cart_storage import (
    CHECKOUT_STATE_VERSION,
    CheckoutState,
    JsonFileStorage,
    MappingStorage,
    load_checkout_state,
)


def test_checkout_state_round_trip():
    state = CheckoutState(delivery_slot=DeliverySlot("2026-06-02", "3:00 PM - 7:00 PM"), tip_amount=3.5)
    state.form["email"] = "jane@example.com"

    restored = load_checkout_state(state.to_dict())

    assert restored.delivery_slot.time_slot == "3:00 PM - 7:00 PM"
    assert restored.tip_amount == 3.5
    assert restored.form["email"] == "jane@example.com"
    assert restored.form["city"] == "Vancouver"


def test_checkout_state_version_mismatch_resets():
    state = load_checkout_state({"version": CHECKOUT_STATE_VERSION + 1, "state": {"tip_amount": 9}})
    assert state.tip_amount == 0
    assert state.delivery_slot is None


def test_checkout_state_tip_sanitized():
    raw = {"version": CHECKOUT_STATE_VERSION, "state": {"tip_amount": "2.456"}}
    assert load_checkout_state(raw).tip_amount == 2.46
    raw["state"]["tip_amount"] = "lots"
    assert load_checkout_state(raw).tip_amount == 0
    raw["state"]["tip_amount"] = -4
    assert load_checkout_state(raw).tip_amount == 0


def test_json_file_storage(tmp_path):
    storage = JsonFileStorage(str(tmp_path / "cart.json"))
    assert storage.load() is None

    storage.save({"version": 1, "items": []})
    assert storage.load() == {"version": 1, "items": []}

    storage.clear()
    assert storage.load() is None


def test_corrupt_file_is_removed(tmp_path):
    path = tmp_path / "cart.json"
    path.write_text("{not json", encoding="utf-8")

    assert JsonFileStorage(str(path)).load() is None
    assert not path.exists()


def test_mapping_storage():
    session = {}
    storage = MappingStorage(session, key="checkout")
    storage.save({"a": 1})
    assert session == {"checkout": {"a": 1}}
    storage.clear()
    assert storage.load() is None
