import itertools
import logging
from typing import Any, List, Optional

import requests

from ..config import Config
from ..core.errors import RPCError, TransientRPCError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

class JsonRpcClient:
    """
    Minimal JSON-RPC 1.0 client for dcrd / dcrwallet in HTTP POST mode.
    TLS is used only when a certificate is configured, in which case the
    daemon's self-signed cert is the trust anchor.
    """

    def __init__(self, host: str, port: str, user: str, password: str, cert: str = "",
                 name: str = "rpc", session: Optional[requests.Session] = None):
        self.name = name
        self.user = user
        self.password = password
        self.cert = cert
        scheme = "https" if cert else "http"
        self.url = f"{scheme}://{host}:{port}"
        self.session = session or requests.Session()
        self._ids = itertools.count(1)

    @property
    def configured(self) -> bool:
        return bool(self.user and self.password)

    def call(self, method: str, params: Optional[List[Any]] = None, timeout: float = None) -> Any:
        if not self.configured:
            raise UpstreamUnavailableError(f"{self.name} RPC client not initialized")

        payload = {"jsonrpc": "1.0", "id": next(self._ids), "method": method, "params": params or []}
        logger.debug(f"{self.name} -> {method} {payload['params']}")
        try:
            resp = self.session.post(
                self.url,
                json=payload,
                auth=(self.user, self.password),
                verify=self.cert or True,
                timeout=timeout or Config.RPC_TIMEOUT,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientRPCError(f"{self.name} {method}: {e}") from e

        if resp.status_code == 401:
            raise UpstreamUnavailableError(f"{self.name} RPC rejected credentials")

        try:
            body = resp.json()
        except ValueError:
            resp.raise_for_status()
            raise RPCError(method, resp.status_code, "non-JSON response")

        error = body.get("error")
        if error:
            raise RPCError(method, error.get("code", -1), error.get("message", str(error)))
        return body.get("result")

class NodeClient(JsonRpcClient):
    """dcrd: only the chain tip is needed here."""

    def __init__(self, **kwargs):
        super().__init__(
            Config.DCRD_RPC_HOST, Config.DCRD_RPC_PORT, Config.DCRD_RPC_USER,
            Config.DCRD_RPC_PASS, Config.DCRD_RPC_CERT, name="dcrd", **kwargs,
        )

    def get_block_count(self, timeout: float = None) -> int:
        return int(self.call("getblockcount", timeout=timeout))

class WalletClient(JsonRpcClient):
    """dcrwallet maintenance calls used by rescans and key imports."""

    def __init__(self, **kwargs):
        super().__init__(
            Config.WALLET_RPC_HOST, Config.WALLET_RPC_PORT, Config.WALLET_RPC_USER,
            Config.WALLET_RPC_PASS, Config.WALLET_RPC_CERT, name="dcrwallet", **kwargs,
        )

    def discover_usage(self):
        return self.call("discoverusage", timeout=Config.RPC_LONG_TIMEOUT)

    def import_xpub(self, account_name: str, xpub: str):
        return self.call("importxpub", [account_name, xpub], timeout=Config.RPC_LONG_TIMEOUT)

    def rescan_wallet(self, begin_height: int = 0):
        return self.call("rescanwallet", [begin_height], timeout=Config.RPC_LONG_TIMEOUT)
