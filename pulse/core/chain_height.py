import asyncio
import logging
import threading
import time

from ..config import Config
from .errors import PulseError

logger = logging.getLogger(__name__)

class ChainHeightCache:
    """
    Latest known dcrd tip, shared by every progress consumer.
    Refreshed at most once per tick; a failed refresh keeps the old value.
    """

    def __init__(self, node_client, initial: int = None, min_interval: float = None):
        self.node = node_client
        self._height = Config.DEFAULT_CHAIN_HEIGHT if initial is None else initial
        self._min_interval = Config.TICK_SECONDS if min_interval is None else min_interval
        self._last_refresh = 0.0
        self._lock = threading.Lock()

    @property
    def height(self) -> int:
        with self._lock:
            return self._height

    def _due(self) -> bool:
        with self._lock:
            now = time.monotonic()
            if now - self._last_refresh < self._min_interval:
                return False
            self._last_refresh = now
            return True

    def refresh_sync(self, timeout: float = None) -> int:
        if not self._due() or not self.node.configured:
            return self.height
        try:
            height = self.node.get_block_count(timeout=timeout or Config.RPC_SHORT_TIMEOUT)
        except PulseError as e:
            logger.debug(f"Chain height refresh failed, keeping {self.height}: {e}")
            return self.height
        if height > 0:
            with self._lock:
                self._height = height
        return self.height

    async def refresh(self, timeout: float = None) -> int:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.refresh_sync, timeout)
