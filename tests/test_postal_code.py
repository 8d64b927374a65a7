# tests/test_postal_code.py
from datetime import datetime

from utils.postal_code import (
    STORE_TZ,
    is_lower_mainland,
    is_valid_postal_code_format,
    next_delivery_slot,
    normalize_postal_code,
    validate_postal_code,
)


def test_normalize_strips_spaces_and_dashes():
    assert normalize_postal_code(" v6b 1a1 ") == "V6B1A1"
    assert normalize_postal_code("v6b-1a1") == "V6B1A1"


def test_format_check():
    assert is_valid_postal_code_format("V6B 1A1")
    assert not is_valid_postal_code_format("12345")
    assert not is_valid_postal_code_format("V6B1A")


def test_lower_mainland_prefix():
    assert is_lower_mainland("v5k 0a1")
    assert not is_lower_mainland("T2P 1A1")


def test_validate_in_area():
    result = validate_postal_code("v6b 1a1")
    assert result.is_valid
    assert result.is_lower_mainland
    assert result.normalized == "V6B1A1"


def test_validate_outside_area():
    result = validate_postal_code("T2P 1A1")
    assert result.is_valid
    assert not result.is_lower_mainland
    assert result.message == "Delivery is not available to this postal code."


def test_validate_empty_and_bad_format():
    assert validate_postal_code("").message == "Please enter a postal code"
    assert validate_postal_code("ABC").message == "Invalid postal code format."


def test_morning_gets_first_window_today():
    slot = next_delivery_slot(datetime(2026, 6, 1, 9, 0, tzinfo=STORE_TZ))
    assert slot.is_today
    assert slot.date == "Today"
    assert slot.time_slot == "11:00 AM - 3:00 PM"


def test_before_cutoff_after_first_window_start():
    slot = next_delivery_slot(datetime(2026, 6, 1, 12, 30, tzinfo=STORE_TZ))
    assert slot.is_today
    assert slot.time_slot == "3:00 PM - 7:00 PM"


def test_after_cutoff_rolls_to_tomorrow():
    slot = next_delivery_slot(datetime(2026, 6, 1, 14, 0, tzinfo=STORE_TZ))
    assert not slot.is_today
    assert slot.time_slot == "11:00 AM - 3:00 PM"
    assert slot.date == "Tuesday, Jun 02"
