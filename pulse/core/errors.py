class PulseError(Exception):
    """Base class for coordinator errors."""


class UpstreamUnavailableError(PulseError):
    """An RPC client was never configured or could not be reached."""


class ValidationError(PulseError):
    """Malformed caller input. Reported synchronously, never retried."""


class RPCError(PulseError):
    """The daemon answered with a JSON-RPC error object."""

    def __init__(self, method: str, code: int, message: str):
        super().__init__(f"{method} failed ({code}): {message}")
        self.method = method
        self.code = code


class TransientRPCError(PulseError):
    """Timeout or dropped connection during an upstream call."""


class LogReadError(PulseError):
    """The wallet log exists but could not be read."""


class AlreadyRunningError(PulseError):
    """A rescan or import is already in flight."""
