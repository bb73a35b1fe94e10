"""Wall-clock helpers. All archive timestamps are epoch milliseconds."""

import time
from datetime import timezone
from typing import Union

from dateutil import parser as date_parser


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def now_seconds() -> int:
    """Current wall-clock time in epoch seconds (Nostr ``created_at`` unit)."""
    return int(time.time())


def parse_timestamp(value: Union[int, float, str]) -> int:
    """
    Parse a client-supplied point in time into epoch milliseconds.

    Accepts epoch milliseconds (number or numeric string) or any date string
    python-dateutil understands. Naive dates are taken as UTC.

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return int(value)

    text = str(value).strip()
    if text.lstrip("-").isdigit():
        return int(text)

    try:
        parsed = date_parser.isoparse(text)
    except ValueError:
        try:
            parsed = date_parser.parse(text)
        except (ValueError, OverflowError) as e:
            raise ValueError(f"Invalid timestamp: {value!r}") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)
