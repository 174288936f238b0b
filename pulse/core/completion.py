import logging
from typing import List

from ..config import Config
from ..data.schemas import RescanSample, RescanPhase, Verdict

logger = logging.getLogger(__name__)

MSG_STARTING = "Starting rescan..."
MSG_DISCOVERING = "Discovering addresses, rescan will start soon..."
MSG_CHECKING = "Checking rescan status..."
MSG_COMPLETE = "Rescan complete"

def rescanning_message(scanned_height: int, chain_height: int) -> str:
    return f"Rescanning... {scanned_height}/{chain_height} blocks"

class CompletionHeuristic:
    """
    Decides when a rescan has ended from a stream of noisy samples.

    Neither the log nor the gRPC stream says "done", so a rescan is
    considered finished after `close_threshold` consecutive inactive
    samples observed past the grace period. An active sample always
    resets the count.
    """

    def __init__(self, grace_period_ticks: int = None, close_threshold: int = None, pending: bool = False):
        self.grace_period_ticks = Config.GRACE_PERIOD_TICKS if grace_period_ticks is None else grace_period_ticks
        self.close_threshold = Config.CLOSE_THRESHOLD if close_threshold is None else close_threshold
        self.pending = pending
        self.ticks_since_start = 0
        self.consecutive_inactive = 0
        self.finished = False

    @classmethod
    def for_pending(cls, pending_grace_seconds: int) -> "CompletionHeuristic":
        """Longer patience while address discovery runs ahead of the rescan."""
        ticks = max(Config.GRACE_PERIOD_TICKS, int(pending_grace_seconds / Config.TICK_SECONDS))
        return cls(ticks, Config.PENDING_CLOSE_THRESHOLD, pending=True)

    def observe(self, sample: RescanSample, chain_height: int) -> List[Verdict]:
        """
        Classify one sample. Returns the verdicts to emit, in order.
        The tick that reaches the close threshold yields CHECKING then COMPLETE;
        once finished, nothing more is emitted.
        """
        if self.finished:
            return []

        self.ticks_since_start += 1

        if sample.is_active:
            self.consecutive_inactive = 0
            return [Verdict(RescanPhase.RESCANNING, sample,
                            rescanning_message(sample.scanned_height, chain_height))]

        if self.ticks_since_start <= self.grace_period_ticks:
            logger.debug(f"Grace period: {self.ticks_since_start}/{self.grace_period_ticks} - waiting for rescan to start")
            return [Verdict(RescanPhase.STARTING, sample, MSG_DISCOVERING if self.pending else MSG_STARTING)]

        self.consecutive_inactive += 1
        logger.debug(f"Rescan not detected (count: {self.consecutive_inactive}/{self.close_threshold})")
        verdicts = [Verdict(RescanPhase.CHECKING, sample, MSG_CHECKING)]

        if self.consecutive_inactive >= self.close_threshold:
            self.finished = True
            final = RescanSample(False, chain_height, sample.sampled_at)
            verdicts.append(Verdict(RescanPhase.COMPLETE, final, MSG_COMPLETE))

        return verdicts
