from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Optional

@dataclass(frozen=True)
class RescanSample:
    """One observation of wallet rescan progress."""
    is_active: bool
    scanned_height: int
    sampled_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def inactive(cls) -> "RescanSample":
        return cls(False, 0)

    def to_dict(self):
        return asdict(self)

class RescanPhase(str, Enum):
    """Classification a progress session attaches to each sample."""
    SYNCED = "synced"
    STARTING = "starting"
    RESCANNING = "rescanning"
    CHECKING = "checking"
    COMPLETE = "complete"

@dataclass(frozen=True)
class Verdict:
    """A classified sample, ready to be rendered for a client."""
    phase: RescanPhase
    sample: RescanSample
    message: str

@dataclass
class RescanState:
    """Process-wide rescan lifecycle flags. Guarded by the orchestrator's lock."""
    active: bool = False
    pending_since: Optional[datetime] = None
    pending_grace_seconds: int = 0

    @property
    def is_pending(self) -> bool:
        return self.pending_since is not None

@dataclass(frozen=True)
class ProgressUpdate:
    """What a client is told about the rescan at one point in time."""
    phase: RescanPhase
    is_rescanning: bool
    scan_height: int
    chain_height: int
    progress: float
    message: str
