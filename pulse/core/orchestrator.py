import asyncio
import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Optional

from grpc.aio import AioRpcError

from ..config import Config
from ..data.schemas import RescanState
from .broadcast import BroadcastHub
from .errors import AlreadyRunningError, PulseError, TransientRPCError, ValidationError
from .progress_source import sample_from_stream

logger = logging.getLogger(__name__)

class RescanOrchestrator:
    """
    Owns the lifecycle of wallet maintenance operations (rescan, key import)
    and the shared RescanState. At most one operation runs at a time; a
    second request is rejected, never queued.
    """

    def __init__(self, wallet_client, grpc_client, hub: BroadcastHub, settle_delay: float = None):
        self.wallet = wallet_client
        self.grpc = grpc_client
        self.hub = hub
        self.settle_delay = Config.SETTLE_DELAY_SECONDS if settle_delay is None else settle_delay
        self.state = RescanState()
        self._lock = threading.Lock()
        self._task: Optional[asyncio.Task] = None

    # State

    def snapshot(self) -> RescanState:
        with self._lock:
            return replace(self.state)

    def mark_pending(self, grace_seconds: int):
        with self._lock:
            self.state.pending_since = datetime.now()
            self.state.pending_grace_seconds = grace_seconds
        logger.info(f"Rescan pending - clients will wait up to {grace_seconds}s for it to start")

    def clear_pending(self):
        with self._lock:
            self.state.pending_since = None
            self.state.pending_grace_seconds = 0

    def is_running(self) -> bool:
        with self._lock:
            return self._running_locked()

    def _running_locked(self) -> bool:
        return self.state.active or self.hub.has_active_stream()

    def _reset_locked(self):
        self.state.active = False
        self.state.pending_since = None
        self.state.pending_grace_seconds = 0

    # Triggers

    def trigger_rescan(self, begin_height: int = 0) -> str:
        """Start a background rescan from `begin_height`. Returns immediately."""
        if begin_height < 0:
            raise ValidationError("beginHeight must not be negative")

        logger.info(f"Starting wallet rescan from block {begin_height}")
        self._spawn(self._run_rescan(begin_height), Config.RESCAN_PENDING_GRACE, "rescan")
        return (f"Discovering addresses and rescanning blockchain from block {begin_height}. "
                "This may take 30+ minutes.")

    def trigger_import(self, xpub: str, account_name: str = "") -> str:
        """Import an extended public key, then rescan from genesis in the background."""
        xpub = (xpub or "").strip()
        if not xpub.startswith(Config.XPUB_PREFIXES):
            raise ValidationError("Invalid xpub format. Decred mainnet xpubs must start with 'dpub'")

        account_name = (account_name or "").strip() or Config.DEFAULT_ACCOUNT_NAME
        logger.info(f"Starting xpub import for account: {account_name}")
        self._spawn(self._run_import(xpub, account_name), Config.IMPORT_PENDING_GRACE, "xpub import")
        return (f"Xpub import started for account '{account_name}'. Now discovering addresses "
                "and rescanning blockchain. This typically takes 5-30 minutes.")

    def _spawn(self, coro, grace_seconds: int, label: str):
        with self._lock:
            if self._running_locked():
                coro.close()
                raise AlreadyRunningError("A wallet rescan is already in progress")
            self.state.active = True
            self.state.pending_since = datetime.now()
            self.state.pending_grace_seconds = grace_seconds
            self._task = asyncio.get_running_loop().create_task(self._guarded(coro, label))

    async def _guarded(self, coro, label: str):
        try:
            await coro
        except asyncio.CancelledError:
            logger.info(f"Background {label} cancelled")
            raise
        except PulseError as e:
            logger.error(f"Background {label} stopped: {e}")
        except Exception as e:
            logger.exception(f"Background {label} failed: {e}")
        finally:
            with self._lock:
                self._reset_locked()

    async def shutdown(self):
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        # A task cancelled before its first step never reaches its finally
        with self._lock:
            self._reset_locked()

    # Background steps

    async def _wallet_call(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn, *args)

    async def _discover_usage(self, step: str):
        logger.info(f"{step}: Discovering address usage across blockchain...")
        try:
            await self._wallet_call(self.wallet.discover_usage)
        except TransientRPCError as e:
            # Discovery keeps running inside the wallet after our call gives up
            logger.warning(f"Address discovery did not answer in time, continuing: {e}")
            return
        logger.info("Address discovery completed - wallet database updated")

    async def _settle(self, step: str):
        logger.info(f"{step}: Waiting {self.settle_delay:g} seconds for wallet to load transaction filter...")
        await asyncio.sleep(self.settle_delay)

    async def _run_rescan(self, begin_height: int):
        if Config.DISCOVER_BEFORE_RESCAN:
            await self._discover_usage("Step 1/2")
        await self._settle("Step 2/2")
        await self._rescan_from(begin_height)

    async def _run_import(self, xpub: str, account_name: str):
        logger.info(f"Step 1/3: Importing xpub for account '{account_name}'")
        result = await self._wallet_call(self.wallet.import_xpub, account_name, xpub)
        logger.info(f"Xpub import completed: {result}")

        await self._discover_usage("Step 2/3")
        await self._settle("Step 3/3")
        await self._rescan_from(0)

    async def _rescan_from(self, begin_height: int):
        if self.grpc is not None and self.grpc.configured:
            await self._stream_rescan(begin_height)
            return

        # No progress stream: the wallet rescans on its own and the log tells the story
        logger.info(f"Starting JSON-RPC rescan from block {begin_height}...")
        try:
            await self._wallet_call(self.wallet.rescan_wallet, begin_height)
            logger.info("JSON-RPC rescan returned - rescan complete")
        except TransientRPCError as e:
            logger.info(f"rescanwallet still running in the wallet, progress is tracked from its log ({e})")

    async def _stream_rescan(self, begin_height: int):
        logger.info(f"Starting gRPC rescan from block {begin_height}...")
        call = self.grpc.rescan(begin_height)
        if not self.hub.attach_stream(call):
            call.cancel()
            raise AlreadyRunningError("Another rescan stream is already active")

        logger.info("gRPC rescan stream started - broadcasting progress updates")
        first = True
        try:
            async for update in call:
                sample = sample_from_stream(update)
                if first:
                    self.clear_pending()
                    first = False
                self.hub.publish(sample)
                logger.info(f"Rescan progress: block {sample.scanned_height}")
            logger.info("gRPC rescan stream completed - all transactions imported")
        except AioRpcError as e:
            logger.error(f"gRPC rescan stream error: {e.code().name} {e.details()}")
        finally:
            if not call.done():
                call.cancel()
            self.hub.detach_stream(call)
            self.hub.close_all()
