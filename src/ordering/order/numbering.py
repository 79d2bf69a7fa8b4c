"""Human-readable order numbers: ``ORD-<base36 ms timestamp>-<4 random base36>``."""

import re
import secrets
from datetime import UTC, datetime

_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
SUFFIX_LENGTH = 4

ORDER_NUMBER_PATTERN = re.compile(r"^ORD-[0-9A-Z]+-[0-9A-Z]{4}$")


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("base36 encoding needs a non-negative integer")
    if value == 0:
        return "0"

    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_ALPHABET[remainder])
    return "".join(reversed(digits))


def generate_order_number(now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    timestamp = to_base36(int(now.timestamp() * 1000))
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f"ORD-{timestamp}-{suffix}"
