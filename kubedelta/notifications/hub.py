"""gRPC client for the incident hub.

Delivery is best-effort and at-most-once: every change record is sent as a
single ``EmitEvent`` call with a fixed deadline. A failed call is logged and
the record dropped; nothing is retried or queued.
"""

from __future__ import annotations

import grpc
import structlog

from kubedelta.models.events import ChangeRecord
from kubedelta.notifications.proto import EMIT_EVENT_METHOD, EventMessage, EventResponse

_log = structlog.get_logger(component="notifications.hub")

DEFAULT_TIMEOUT_SECONDS = 5.0


class HubClient:
    """Sends change records to the hub's ``EventService``.

    Args:
        destination: ``host:port`` of the hub.
        secure:      Use TLS with the system trust store; plaintext otherwise.
        timeout:     Per-call deadline in seconds.
        channel:     Pre-built channel, mainly for tests. When given,
                     ``connect()`` uses it instead of dialling *destination*.
    """

    def __init__(
        self,
        destination: str,
        secure: bool = False,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        channel: grpc.aio.Channel | None = None,
    ) -> None:
        if not destination and channel is None:
            raise ValueError("Hub destination must not be empty")
        self._destination = destination
        self._secure = secure
        self._timeout = timeout
        self._channel = channel
        self._emit: grpc.aio.UnaryUnaryMultiCallable | None = None

    @property
    def destination(self) -> str:
        return self._destination

    @property
    def connected(self) -> bool:
        return self._emit is not None

    def connect(self) -> None:
        """Open the channel. Channels connect lazily, so this never blocks."""
        if self._emit is not None:
            return
        if self._channel is None:
            if self._secure:
                self._channel = grpc.aio.secure_channel(self._destination, grpc.ssl_channel_credentials())
            else:
                self._channel = grpc.aio.insecure_channel(self._destination)
        self._emit = self._channel.unary_unary(
            EMIT_EVENT_METHOD,
            request_serializer=EventMessage.SerializeToString,
            response_deserializer=EventResponse.FromString,
        )
        _log.info("hub_channel_opened", destination=self._destination, tls=self._secure)

    async def send(self, record: ChangeRecord) -> bool | None:
        """Emit *record* and return the hub's ``acknowledged`` flag.

        Returns None when the call failed (deadline exceeded, transport
        error); the failure is logged and the record is not retried.
        """
        if self._emit is None:
            self.connect()
        assert self._emit is not None

        message = EventMessage(
            namespace=record.namespace,
            resourceKey=record.name,
            eventType=record.event_type,
            data=record.data,
            apiKey=record.api_key,
        )
        try:
            response = await self._emit(message, timeout=self._timeout)
        except grpc.RpcError as exc:
            code = exc.code() if isinstance(exc, grpc.aio.AioRpcError) else None
            _log.debug(
                "hub_send_failed",
                destination=self._destination,
                namespace=record.namespace,
                name=record.name,
                code=str(code) if code is not None else "unknown",
                error=str(exc),
            )
            return None

        _log.debug(
            "hub_send_completed",
            destination=self._destination,
            namespace=record.namespace,
            name=record.name,
            acknowledged=response.acknowledged,
        )
        return bool(response.acknowledged)

    async def close(self) -> None:
        if self._channel is not None:
            await self._channel.close()
        self._channel = None
        self._emit = None

    async def stop(self) -> None:
        """Bootstrap shutdown hook."""
        await self.close()
