import unittest
from unittest.mock import MagicMock

import requests

from pulse.core.chain_height import ChainHeightCache
from pulse.core.errors import RPCError, TransientRPCError, UpstreamUnavailableError
from pulse.rpc.jsonrpc import JsonRpcClient

def _client(session, user="user", password="pass", cert=""):
    return JsonRpcClient("127.0.0.1", "9109", user, password, cert, name="dcrd", session=session)

class TestJsonRpcClient(unittest.TestCase):
    def test_result_and_request_shape(self):
        session = MagicMock()
        session.post.return_value.json.return_value = {"result": 1016874, "error": None, "id": 1}
        client = _client(session, cert="/certs/rpc.cert")

        self.assertEqual(client.call("getblockcount", timeout=2), 1016874)
        args, kwargs = session.post.call_args
        self.assertEqual(args[0], "https://127.0.0.1:9109")
        self.assertEqual(kwargs["json"]["method"], "getblockcount")
        self.assertEqual(kwargs["auth"], ("user", "pass"))
        self.assertEqual(kwargs["verify"], "/certs/rpc.cert")
        self.assertEqual(kwargs["timeout"], 2)

    def test_plain_http_without_cert(self):
        self.assertEqual(_client(MagicMock()).url, "http://127.0.0.1:9109")

    def test_error_object(self):
        session = MagicMock()
        session.post.return_value.json.return_value = {"result": None, "error": {"code": -4, "message": "bad xpub"}}
        with self.assertRaises(RPCError) as ctx:
            _client(session).call("importxpub", ["acct", "dpub"])
        self.assertEqual(ctx.exception.code, -4)

    def test_timeout_is_transient(self):
        session = MagicMock()
        session.post.side_effect = requests.Timeout("read timed out")
        with self.assertRaises(TransientRPCError):
            _client(session).call("discoverusage")

    def test_unconfigured(self):
        session = MagicMock()
        with self.assertRaises(UpstreamUnavailableError):
            _client(session, user="", password="").call("getblockcount")
        session.post.assert_not_called()

    def test_chain_height_keeps_last_value_on_failure(self):
        node = MagicMock(configured=True)
        node.get_block_count.side_effect = [900, TransientRPCError("down")]
        cache = ChainHeightCache(node, initial=1, min_interval=0)
        self.assertEqual(cache.refresh_sync(), 900)
        self.assertEqual(cache.refresh_sync(), 900)

if __name__ == '__main__':
    unittest.main()
