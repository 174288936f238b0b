import os

class Config:
    # Node daemon (dcrd) JSON-RPC
    DCRD_RPC_HOST = os.environ.get("DCRD_RPC_HOST", "localhost")
    DCRD_RPC_PORT = os.environ.get("DCRD_RPC_PORT", "9109")
    DCRD_RPC_USER = os.environ.get("DCRD_RPC_USER", "")
    DCRD_RPC_PASS = os.environ.get("DCRD_RPC_PASS", "")
    DCRD_RPC_CERT = os.environ.get("DCRD_RPC_CERT", "")

    # Wallet daemon (dcrwallet) JSON-RPC
    WALLET_RPC_HOST = os.environ.get("DCRWALLET_RPC_HOST", "localhost")
    WALLET_RPC_PORT = os.environ.get("DCRWALLET_RPC_PORT", "9110")
    WALLET_RPC_USER = os.environ.get("DCRWALLET_RPC_USER", "")
    WALLET_RPC_PASS = os.environ.get("DCRWALLET_RPC_PASS", "")
    WALLET_RPC_CERT = os.environ.get("DCRWALLET_RPC_CERT", "")

    # Wallet gRPC (mutual TLS, same cert/key pair dcrwallet serves with)
    WALLET_GRPC_HOST = os.environ.get("DCRWALLET_GRPC_HOST", "")
    WALLET_GRPC_PORT = os.environ.get("DCRWALLET_GRPC_PORT", "9111")
    WALLET_GRPC_CERT = os.environ.get("DCRWALLET_GRPC_CERT", "/certs/rpc.cert")
    WALLET_GRPC_KEY = os.environ.get("DCRWALLET_GRPC_KEY", "/certs/rpc.key")

    # Wallet log tail
    WALLET_LOG_PATH = os.environ.get("DCRWALLET_LOG_PATH", "/wallet-data/logs/mainnet/dcrwallet.log")
    LOG_TAIL_LINES = 100
    LOG_STALE_SECONDS = 120

    # "auto" | "stream" | "log"
    PROGRESS_SOURCE = os.environ.get("PULSE_PROGRESS_SOURCE", "auto").lower()

    # Timeouts (seconds)
    RPC_SHORT_TIMEOUT = 2
    RPC_TIMEOUT = 5
    RPC_LONG_TIMEOUT = 15

    # Rescan orchestration
    SETTLE_DELAY_SECONDS = 5.0
    DISCOVER_BEFORE_RESCAN = True
    RESCAN_PENDING_GRACE = 15
    IMPORT_PENDING_GRACE = 30
    DEFAULT_ACCOUNT_NAME = "imported"
    XPUB_PREFIXES = ("dpub", "tpub")

    # Progress endpoint
    TICK_SECONDS = 1.0
    KEEPALIVE_SECONDS = 5.0
    GRACE_PERIOD_TICKS = 5
    CLOSE_THRESHOLD = 5
    PENDING_CLOSE_THRESHOLD = 30
    SUBSCRIBER_CAPACITY = 10
    # Used until dcrd answers getblockcount
    DEFAULT_CHAIN_HEIGHT = 1016874

    # Server
    HOST = os.environ.get("HOST", "0.0.0.0")
    PORT = int(os.environ.get("PORT", "8080"))
    LOG_LEVEL = os.environ.get("PULSE_LOG_LEVEL", "INFO").upper()

    @classmethod
    def stream_enabled(cls) -> bool:
        return cls.PROGRESS_SOURCE != "log"

    @classmethod
    def log_enabled(cls) -> bool:
        return cls.PROGRESS_SOURCE != "stream"
