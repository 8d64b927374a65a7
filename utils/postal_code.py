# utils/postal_code.py

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

STORE_TZ = ZoneInfo("America/Vancouver")

LOWER_MAINLAND_PREFIXES = {
    "V0N",
    "V2S", "V2T", "V2U", "V2V", "V2W", "V2X", "V2Y", "V2Z",
    "V3A", "V3B", "V3C", "V3G", "V3H", "V3J", "V3K", "V3L", "V3M", "V3N",
    "V3R", "V3S", "V3T", "V3V", "V3W", "V3X", "V3Y", "V3Z",
    "V4A", "V4B", "V4C", "V4E", "V4G", "V4H", "V4J", "V4K", "V4L", "V4M",
    "V4N", "V4P", "V4R", "V4S", "V4T", "V4V", "V4W", "V4X", "V4Y", "V4Z",
    "V5A", "V5B", "V5C", "V5E", "V5G", "V5H", "V5J", "V5K", "V5L", "V5M",
    "V5N", "V5P", "V5R", "V5S", "V5T", "V5V", "V5W", "V5X", "V5Y", "V5Z",
    "V6A", "V6B", "V6C", "V6E", "V6G", "V6H", "V6J", "V6K", "V6L", "V6M",
    "V6N", "V6P", "V6R", "V6S", "V6T", "V6V", "V6W", "V6X", "V6Y", "V6Z",
    "V7A", "V7G", "V7H", "V7J", "V7K", "V7L", "V7M", "V7N", "V7P", "V7R",
    "V7S", "V7T", "V7V", "V7W", "V7X", "V7Y", "V7Z",
    "V8B",
    "V9B", "V9C", "V9E", "V9G", "V9H", "V9J", "V9K", "V9L", "V9M", "V9N",
    "V9P", "V9R",
}

POSTAL_CODE_RE = re.compile(r"^[A-Z]\d[A-Z]\d[A-Z]\d$")

SAME_DAY_CUTOFF_HOUR = 13

# (label, start hour)
DELIVERY_WINDOWS = [
    ("11:00 AM - 3:00 PM", 11),
    ("3:00 PM - 7:00 PM", 15),
    ("7:00 PM - 11:00 PM", 19),
]


@dataclass
class PostalCodeValidation:
    is_valid: bool
    normalized: str
    is_lower_mainland: bool
    message: str


@dataclass
class NextSlot:
    is_today: bool
    time_slot: str
    date: str


def normalize_postal_code(postal_code: str) -> str:
    return re.sub(r"[\s-]", "", postal_code or "").upper()


def is_valid_postal_code_format(postal_code: str) -> bool:
    return bool(POSTAL_CODE_RE.match(normalize_postal_code(postal_code)))


def is_lower_mainland(postal_code: str) -> bool:
    return normalize_postal_code(postal_code)[:3] in LOWER_MAINLAND_PREFIXES


def validate_postal_code(postal_code: str) -> PostalCodeValidation:
    if not postal_code or not postal_code.strip():
        return PostalCodeValidation(False, "", False, "Please enter a postal code")

    normalized = normalize_postal_code(postal_code)
    if not is_valid_postal_code_format(normalized):
        return PostalCodeValidation(False, normalized, False, "Invalid postal code format.")

    in_area = is_lower_mainland(normalized)
    message = (
        "Delivery available to your area!"
        if in_area
        else "Delivery is not available to this postal code."
    )
    return PostalCodeValidation(True, normalized, in_area, message)


def next_delivery_slot(now: Optional[datetime] = None) -> NextSlot:
    """
    First delivery window that has not started yet, same day only before the
    13:00 cutoff; otherwise the first window tomorrow.
    """
    if now is None:
        now = datetime.now(STORE_TZ)
    elif now.tzinfo is not None:
        now = now.astimezone(STORE_TZ)

    if now.hour * 60 + now.minute < SAME_DAY_CUTOFF_HOUR * 60:
        for label, start_hour in DELIVERY_WINDOWS:
            if now.hour < start_hour:
                return NextSlot(True, label, "Today")

    tomorrow = now + timedelta(days=1)
    return NextSlot(False, DELIVERY_WINDOWS[0][0], tomorrow.strftime("%A, %b %d"))
