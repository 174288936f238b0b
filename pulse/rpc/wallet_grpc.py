import logging
from typing import Optional

import grpc
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

from ..config import Config
from ..core.errors import UpstreamUnavailableError

logger = logging.getLogger(__name__)

RESCAN_METHOD = "/walletrpc.WalletService/Rescan"

def _build_rescan_messages():
    """
    RescanRequest / RescanResponse from dcrwallet's api.proto, registered in a
    private pool so only the two messages this process speaks are defined.
    """
    FD = descriptor_pb2.FieldDescriptorProto
    proto = descriptor_pb2.FileDescriptorProto(name="walletrpc/rescan.proto", package="walletrpc", syntax="proto3")

    req = proto.message_type.add(name="RescanRequest")
    req.field.add(name="begin_height", number=1, type=FD.TYPE_INT32, label=FD.LABEL_OPTIONAL)
    req.field.add(name="begin_hash", number=2, type=FD.TYPE_BYTES, label=FD.LABEL_OPTIONAL)

    resp = proto.message_type.add(name="RescanResponse")
    resp.field.add(name="rescanned_through", number=1, type=FD.TYPE_INT32, label=FD.LABEL_OPTIONAL)

    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(proto.SerializeToString())
    return (
        message_factory.GetMessageClass(pool.FindMessageTypeByName("walletrpc.RescanRequest")),
        message_factory.GetMessageClass(pool.FindMessageTypeByName("walletrpc.RescanResponse")),
    )

RescanRequest, RescanResponse = _build_rescan_messages()

class WalletGrpcClient:
    """Streaming access to dcrwallet's WalletService over mutual TLS."""

    def __init__(self, host: str = None, port: str = None, cert_path: str = None, key_path: str = None):
        self.host = Config.WALLET_GRPC_HOST if host is None else host
        self.port = port or Config.WALLET_GRPC_PORT
        self.cert_path = cert_path or Config.WALLET_GRPC_CERT
        self.key_path = key_path or Config.WALLET_GRPC_KEY
        self._channel: Optional[grpc.aio.Channel] = None

    @property
    def configured(self) -> bool:
        return bool(self.host) and Config.stream_enabled()

    def _credentials(self) -> grpc.ChannelCredentials:
        try:
            with open(self.cert_path, "rb") as f:
                cert = f.read()
            with open(self.key_path, "rb") as f:
                key = f.read()
        except OSError as e:
            raise UpstreamUnavailableError(f"failed to load wallet gRPC certificate/key: {e}") from e
        # dcrwallet's own cert doubles as CA and client certificate
        return grpc.ssl_channel_credentials(root_certificates=cert, private_key=key, certificate_chain=cert)

    def _get_channel(self) -> grpc.aio.Channel:
        if self._channel is None:
            target = f"{self.host}:{self.port}"
            logger.info(f"Connecting to dcrwallet gRPC at {target} with mutual TLS")
            self._channel = grpc.aio.secure_channel(
                target, self._credentials(),
                options=[("grpc.ssl_target_name_override", self.host)],
            )
        return self._channel

    def rescan(self, begin_height: int):
        """
        Start a wallet rescan. Returns the call, an async iterator of
        RescanResponse messages that ends when the rescan completes.
        """
        if not self.configured:
            raise UpstreamUnavailableError("Wallet gRPC client not initialized")
        method = self._get_channel().unary_stream(
            RESCAN_METHOD,
            request_serializer=RescanRequest.SerializeToString,
            response_deserializer=RescanResponse.FromString,
        )
        return method(RescanRequest(begin_height=begin_height))

    async def close(self):
        if self._channel is not None:
            await self._channel.close()
            self._channel = None
            logger.info("gRPC connection closed")
