"""
peertrade/core/time.py

The clock used by settlement and the journal.

Order expiration is compared against unix_now(). Journal records carry
journal_timestamp(). Executors accept an injected clock for tests; when
none is given they use unix_now().
"""

import time
from datetime import datetime, timezone


def unix_now() -> int:
    """Current Unix time in whole seconds."""
    return int(time.time())


def journal_timestamp() -> str:
    """
    Return current UTC time in journal wire format.
    Format: YYYY-MM-DDTHH:MM:SS.mmmZ  (exactly 3 fractional digits, Z suffix)
    """
    now = datetime.now(timezone.utc)
    ms  = now.microsecond // 1000
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ms:03d}Z"
