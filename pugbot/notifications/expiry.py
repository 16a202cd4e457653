"""Background loop that sweeps expired notifications."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from pugbot.constants import DEFAULT_SWEEP_INTERVAL_S
from pugbot.logging_config import get_logger

if TYPE_CHECKING:
    from pugbot.notifications.engine import NotificationEngine

logger = get_logger(__name__)


class ExpirationWorker:
    """Calls ``engine.check_expirations`` on a fixed interval until shutdown."""

    def __init__(
        self,
        *,
        engine: "NotificationEngine",
        shutdown_event: asyncio.Event,
        interval_s: float = DEFAULT_SWEEP_INTERVAL_S,
    ) -> None:
        self.engine = engine
        self.shutdown_event = shutdown_event
        self.interval_s = interval_s

    async def run(self) -> None:
        """Run continuously until shutdown event is set."""
        logger.info("expiration worker started", interval_s=self.interval_s)
        while not self.shutdown_event.is_set():
            try:
                expired = await self.engine.check_expirations()
                if expired:
                    logger.debug("expiration sweep removed notifications", count=len(expired))
            except Exception as exc:  # pylint: disable=broad-exception-caught
                logger.exception("expiration sweep failed", error=str(exc))
            await self._sleep(self.interval_s)
        logger.info("expiration worker stopped")

    async def _sleep(self, seconds: float) -> None:
        """Sleep but wake immediately on shutdown."""
        try:
            await asyncio.wait_for(self.shutdown_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
