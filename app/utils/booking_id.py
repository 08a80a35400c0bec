import random
import re
import string

BOOKING_ID_PREFIX = "BK-"
BOOKING_ID_ALPHABET = string.ascii_uppercase + string.digits
BOOKING_ID_LENGTH = 9

_BOOKING_ID_RE = re.compile(r"BK-[A-Z0-9]{9}")

def generate_booking_id() -> str:
    """Booking IDs look like BK-1A2B3C4D5: the prefix plus 9 uppercase alphanumerics."""
    return BOOKING_ID_PREFIX + "".join(random.choice(BOOKING_ID_ALPHABET) for _ in range(BOOKING_ID_LENGTH))

def is_valid_booking_id(value: str) -> bool:
    return bool(_BOOKING_ID_RE.fullmatch(value or ""))
