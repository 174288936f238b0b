import os
import re
import logging
from collections import deque
from datetime import datetime
from typing import Optional

from ..config import Config
from ..data.schemas import RescanSample
from .errors import LogReadError

logger = logging.getLogger(__name__)

# 2025-10-05 15:23:16.672 [INF] WLLT: Rescanning block range [414000, 415999]...
RESCAN_LINE = re.compile(
    r"^(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\.\d{3}).*Rescanning block range \[(\d+), (\d+)\]"
)
LOG_TIME_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

class LogProgressSource:
    """
    Infers rescan progress from the tail of the dcrwallet log.
    Works for any rescan, including ones this process did not start.
    """

    def __init__(self, log_path: Optional[str] = None, tail_lines: Optional[int] = None,
                 stale_seconds: Optional[float] = None):
        self.log_path = log_path or Config.WALLET_LOG_PATH
        self.tail_lines = tail_lines or Config.LOG_TAIL_LINES
        self.stale_seconds = Config.LOG_STALE_SECONDS if stale_seconds is None else stale_seconds

    def _read_tail(self) -> list:
        try:
            with open(self.log_path, "r", encoding="utf-8", errors="replace") as f:
                return list(deque(f, maxlen=self.tail_lines))
        except FileNotFoundError:
            # Wallet may not have started logging yet
            return []
        except OSError as e:
            raise LogReadError(f"failed to read wallet log {self.log_path}: {e}") from e

    def sample(self, now: Optional[datetime] = None) -> RescanSample:
        """Return the newest rescan position found in the log, if still fresh."""
        now = now or datetime.now()
        lines = self._read_tail()

        for line in reversed(lines):
            match = RESCAN_LINE.match(line)
            if not match:
                continue

            try:
                logged_at = datetime.strptime(match.group(1), LOG_TIME_FORMAT)
            except ValueError as e:
                logger.warning(f"Failed to parse log timestamp '{match.group(1)}': {e}")
                continue

            age = (now - logged_at).total_seconds()
            if age > self.stale_seconds:
                logger.debug(f"Rescan message is stale (age: {age:.0f}s) - treating rescan as inactive")
                return RescanSample(False, 0, now)

            end_block = int(match.group(3))
            logger.debug(f"Active rescan detected in log: block {end_block} (age: {age:.1f}s)")
            return RescanSample(True, end_block, now)

        return RescanSample(False, 0, now)

def sample_from_stream(update) -> RescanSample:
    """Adapt a walletrpc RescanResponse (or a bare height) into a sample."""
    height = getattr(update, "rescanned_through", update)
    return RescanSample(True, int(height))
