"""PTB environment bootstrap.

Sets environment flags before python-telegram-bot is imported anywhere else.
Import this module first in any entrypoint that talks to Telegram.
"""

from __future__ import annotations

import os

# RetryAfter.retry_after is read as a timedelta by the transport and backoff code
os.environ.setdefault("PTB_TIMEDELTA", "1")
