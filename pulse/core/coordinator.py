import asyncio
import logging

from ..config import Config
from ..data.schemas import ProgressUpdate, RescanPhase, RescanSample, Verdict
from ..rpc.jsonrpc import NodeClient, WalletClient
from ..rpc.wallet_grpc import WalletGrpcClient
from .broadcast import BroadcastHub
from .chain_height import ChainHeightCache
from .completion import MSG_DISCOVERING, MSG_STARTING, rescanning_message
from .errors import LogReadError
from .orchestrator import RescanOrchestrator
from .progress_session import ProgressSession, build_update
from .progress_source import LogProgressSource

logger = logging.getLogger(__name__)

MSG_NO_RESCAN = "No active rescan"

class RescanCoordinator:
    """
    Everything the rescan endpoints share: upstream clients, the broadcast
    hub, the orchestrator and the chain height cache. Built once per process.
    """

    def __init__(self, node=None, wallet=None, grpc_client=None, log_source=None,
                 hub=None, settle_delay: float = None):
        self.node = node or NodeClient()
        self.wallet = wallet or WalletClient()
        self.grpc = grpc_client if grpc_client is not None else WalletGrpcClient()
        self.log_source = log_source or LogProgressSource()
        self.hub = hub or BroadcastHub()
        self.chain = ChainHeightCache(self.node)
        self.orchestrator = RescanOrchestrator(self.wallet, self.grpc, self.hub, settle_delay)

    async def sample_log(self) -> RescanSample:
        """Log-based sample; unreadable logs count as no data."""
        if not Config.log_enabled():
            return RescanSample.inactive()
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self.log_source.sample)
        except LogReadError as e:
            logger.warning(f"Error parsing wallet logs: {e}")
            return RescanSample.inactive()

    async def current_sample(self) -> RescanSample:
        """Stream takes precedence over the log whenever a stream is attached."""
        if self.hub.has_active_stream():
            # Attached with no update yet reads as not scanning
            return self.hub.last_sample or RescanSample.inactive()
        return await self.sample_log()

    async def sync_progress(self) -> ProgressUpdate:
        """Point-in-time progress for polling clients."""
        sample = await self.current_sample()
        chain_height = await self.chain.refresh()

        if sample.is_active:
            verdict = Verdict(RescanPhase.RESCANNING, sample,
                              rescanning_message(sample.scanned_height, chain_height))
        elif self.orchestrator.snapshot().is_pending:
            verdict = Verdict(RescanPhase.STARTING, sample, MSG_DISCOVERING)
        elif self.hub.has_active_stream():
            verdict = Verdict(RescanPhase.STARTING, sample, MSG_STARTING)
        else:
            verdict = Verdict(RescanPhase.SYNCED, sample, MSG_NO_RESCAN)
        return build_update(verdict, chain_height)

    def open_session(self) -> ProgressSession:
        return ProgressSession(self)

    async def shutdown(self):
        await self.orchestrator.shutdown()
        if self.grpc is not None:
            await self.grpc.close()
