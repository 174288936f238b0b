import sys
import os
import logging
from functools import lru_cache

# Add project root to path so we can import pulse
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from pulse.core.coordinator import RescanCoordinator

logger = logging.getLogger(__name__)

@lru_cache()
def get_coordinator() -> RescanCoordinator:
    """Singleton for the rescan coordinator."""
    logger.info("Initializing RescanCoordinator singleton...")
    return RescanCoordinator()
