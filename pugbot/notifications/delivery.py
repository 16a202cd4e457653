"""Direct-then-fallback message delivery."""

from __future__ import annotations

from dataclasses import dataclass

from pugbot.core.protocols import MessagingTransport
from pugbot.errors import TransportError
from pugbot.logging_config import get_logger
from pugbot.notifications.models import DeliveryChannel

logger = get_logger(__name__)


@dataclass(frozen=True)
class DeliveryOutcome:
    delivered: bool
    channel: DeliveryChannel | None = None
    handle: str | None = None
    error: str | None = None


def fallback_mention(recipient_id: str, username: str | None, message: str) -> str:
    mention = f"<@{recipient_id}> ({username})" if username else f"<@{recipient_id}>"
    return f"{mention}: {message}"


class Deliverer:
    """Sends a rendered message, falling back to a shared channel once."""

    def __init__(self, transport: MessagingTransport) -> None:
        self.transport = transport

    async def send_direct(self, recipient_id: str, message: str) -> str | None:
        user = await self.transport.get_user(recipient_id)
        if user is None:
            raise TransportError(f"Recipient {recipient_id} not found")
        return await user.send(message)

    async def send_to_channel(self, channel_id: str, message: str) -> str | None:
        channel = await self.transport.get_channel(channel_id)
        if channel is None:
            raise TransportError(f"Channel {channel_id} not found")
        return await channel.send(message)

    async def deliver(self, recipient_id: str, message: str, fallback_channel_id: str | None) -> DeliveryOutcome:
        try:
            handle = await self.send_direct(recipient_id, message)
            return DeliveryOutcome(delivered=True, channel=DeliveryChannel.DIRECT, handle=handle)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.warning("direct delivery failed", recipient_id=recipient_id, error=str(exc))
            direct_error = str(exc)

        if not fallback_channel_id:
            return DeliveryOutcome(delivered=False, error=direct_error)

        try:
            username = await self.transport.get_username(recipient_id)
            handle = await self.send_to_channel(fallback_channel_id, fallback_mention(recipient_id, username, message))
            return DeliveryOutcome(delivered=True, channel=DeliveryChannel.FALLBACK, handle=handle)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error(
                "fallback delivery failed", recipient_id=recipient_id, channel_id=fallback_channel_id, error=str(exc)
            )
            return DeliveryOutcome(delivered=False, error=f"{direct_error}; fallback: {exc}")
