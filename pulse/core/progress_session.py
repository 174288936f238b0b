import asyncio
import logging
from enum import Enum
from typing import AsyncIterator, List, Optional

from ..config import Config
from ..data.schemas import ProgressUpdate, RescanPhase, RescanSample, Verdict
from .broadcast import StreamClosed
from .completion import CompletionHeuristic, MSG_COMPLETE, MSG_DISCOVERING, MSG_STARTING

logger = logging.getLogger(__name__)

MSG_SYNCED = "Wallet fully synced"

def compute_progress(scanned_height: int, chain_height: int) -> float:
    """Percentage of the chain scanned, clamped to [0, 100]. The tip may be a tick stale."""
    if chain_height <= 0:
        return 0.0
    return max(0.0, min(100.0, scanned_height / chain_height * 100))

def build_update(verdict: Verdict, chain_height: int) -> ProgressUpdate:
    sample = verdict.sample
    if verdict.phase in (RescanPhase.SYNCED, RescanPhase.COMPLETE):
        progress = 100.0
    else:
        progress = compute_progress(sample.scanned_height, chain_height)
    return ProgressUpdate(
        phase=verdict.phase,
        is_rescanning=sample.is_active,
        scan_height=sample.scanned_height,
        chain_height=chain_height,
        progress=progress,
        message=verdict.message,
    )

class SessionState(str, Enum):
    CONNECTING = "connecting"
    IDLE = "idle"
    STREAMING = "streaming"
    CLOSED = "closed"

class ProgressSession:
    """
    One client's view of rescan progress.

    Iterate `updates()` to receive ProgressUpdates until the rescan is over.
    With nothing to report the session idles silently after a single
    "fully synced" update and wakes up when a rescan becomes visible.
    """

    def __init__(self, coordinator, tick: float = None, keepalive: float = None):
        self.coordinator = coordinator
        self.tick = Config.TICK_SECONDS if tick is None else tick
        self.keepalive = Config.KEEPALIVE_SECONDS if keepalive is None else keepalive
        self.state = SessionState.CONNECTING
        self.heuristic: Optional[CompletionHeuristic] = None
        self._sub = None
        self._last_verdict: Optional[Verdict] = None
        self._last_sent = 0.0

    @property
    def hub(self):
        return self.coordinator.hub

    def _begin_streaming(self):
        pending = self.coordinator.orchestrator.snapshot()
        if pending.is_pending:
            logger.info(f"Pending rescan detected - extended grace period of {pending.pending_grace_seconds}s")
            self.heuristic = CompletionHeuristic.for_pending(pending.pending_grace_seconds)
        else:
            self.heuristic = CompletionHeuristic()
        self.state = SessionState.STREAMING

    def _rescan_visible(self, sample: Optional[RescanSample]) -> bool:
        if self.hub.has_active_stream():
            return True
        if self.coordinator.orchestrator.snapshot().is_pending:
            return True
        return sample is not None and sample.is_active

    def _stream_status(self, chain_height: int) -> List[Verdict]:
        """Status of an attached stream from the hub's latest sample."""
        last = self.hub.last_sample
        if last is not None:
            return self.heuristic.observe(last, chain_height)
        # Attached but no update yet
        message = MSG_DISCOVERING if self.heuristic.pending else MSG_STARTING
        return [Verdict(RescanPhase.STARTING, RescanSample.inactive(), message)]

    def _emit(self, verdict: Verdict, chain_height: int) -> ProgressUpdate:
        self._last_verdict = verdict
        self._last_sent = asyncio.get_running_loop().time()
        return build_update(verdict, chain_height)

    async def updates(self) -> AsyncIterator[ProgressUpdate]:
        self._sub = self.hub.subscribe()
        try:
            async for update in self._run():
                yield update
        finally:
            self.close()

    def close(self):
        if self._sub is not None:
            self.hub.unsubscribe(self._sub)
            self._sub = None
        self.state = SessionState.CLOSED

    async def _run(self) -> AsyncIterator[ProgressUpdate]:
        chain_height = await self.coordinator.chain.refresh()

        if self.hub.has_active_stream():
            # Joining a stream already in flight: report where it stands now
            self._begin_streaming()
            for verdict in self._stream_status(chain_height):
                yield self._emit(verdict, chain_height)
        else:
            initial = await self.coordinator.sample_log()
            if self._rescan_visible(initial):
                self._begin_streaming()
                for verdict in self.heuristic.observe(initial, chain_height):
                    yield self._emit(verdict, chain_height)
            else:
                self.state = SessionState.IDLE
                synced = RescanSample(False, chain_height)
                yield self._emit(Verdict(RescanPhase.SYNCED, synced, MSG_SYNCED), chain_height)

        while True:
            try:
                pushed = await self._sub.get(timeout=self.tick)
            except StreamClosed:
                chain_height = await self.coordinator.chain.refresh()
                final = RescanSample(False, chain_height)
                yield self._emit(Verdict(RescanPhase.COMPLETE, final, MSG_COMPLETE), chain_height)
                logger.info("Rescan stream ended, closing progress session")
                return

            chain_height = await self.coordinator.chain.refresh()
            sample = pushed

            if sample is None:
                if self.hub.has_active_stream():
                    # Stream is alive but quiet; never count silence against it
                    now = asyncio.get_running_loop().time()
                    if self.state == SessionState.IDLE:
                        logger.info("Rescan stream attached, streaming progress")
                        self._begin_streaming()
                        for verdict in self._stream_status(chain_height):
                            yield self._emit(verdict, chain_height)
                    elif now - self._last_sent >= self.keepalive:
                        yield self._emit(self._last_verdict, chain_height)
                    continue
                sample = await self.coordinator.sample_log()

            if self.state == SessionState.IDLE:
                if not self._rescan_visible(sample):
                    continue
                logger.info("Rescan became visible, streaming progress")
                self._begin_streaming()

            for verdict in self.heuristic.observe(sample, chain_height):
                yield self._emit(verdict, chain_height)

            if self.heuristic.finished:
                logger.info("Rescan complete (no activity detected), closing progress session")
                self.coordinator.orchestrator.clear_pending()
                return
