import math
import re
from datetime import datetime, timedelta, timezone

from dateutil.parser import isoparse

from cosmos_exporter.exceptions import DecodeError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
NANOSECONDS = 10 ** 9

DECIMAL_RE = re.compile(r'[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?')
# isoparse stops at microseconds, so the fraction is split off and kept separately
FRACTION_RE = re.compile(r'(.+[Tt ]\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})')


def parse_height(text: str) -> float:
    if not isinstance(text, str) or not DECIMAL_RE.fullmatch(text):
        raise DecodeError(f'Invalid block height: {text!r}')
    height = float(text)
    if not math.isfinite(height):
        raise DecodeError(f'Invalid block height: {text!r}')
    return height


def parse_timestamp_ns(text: str) -> int:
    """Parse an RFC3339 timestamp with up to nanosecond precision.

    Returns integer nanoseconds since the Unix epoch. Digits past the ninth
    fractional place are truncated. A UTC offset is required.
    """
    match = FRACTION_RE.fullmatch((text or '').strip())
    if not match:
        raise DecodeError(f'Invalid block time: {text!r}')

    head, fraction, offset = match.groups()
    try:
        moment = isoparse(head + offset)
    except (ValueError, OverflowError):
        raise DecodeError(f'Invalid block time: {text!r}') from None

    seconds = (moment - EPOCH) // timedelta(seconds=1)
    nanos = int((fraction or '')[:9].ljust(9, '0'))
    return seconds * NANOSECONDS + nanos


def time_skew(text: str, now_ns: int) -> float:
    """Seconds between now and the block time. Positive when the block is in the past."""
    return (now_ns - parse_timestamp_ns(text)) / NANOSECONDS
