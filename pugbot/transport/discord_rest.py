"""Discord REST transport for notification delivery and guild provisioning."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from pugbot.constants import DISCORD_TOKEN_ENV
from pugbot.errors import TransportError
from pugbot.logging_config import get_logger

logger = get_logger(__name__)

DISCORD_API_BASE = "https://discord.com/api/v10"
DEFAULT_MESSAGE_MAX_LENGTH = 2000
PRESENCE_STATUSES = frozenset({"online", "idle", "dnd", "offline"})
_CHANNEL_TYPES = {"text": 0, "voice": 2, "category": 4}


class DiscordApiError(TransportError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class DiscordResource:
    id: str
    name: str
    created: bool = False


class _DirectMessageTarget:
    def __init__(self, transport: "DiscordRestTransport", user_id: str) -> None:
        self.transport = transport
        self.user_id = user_id

    async def send(self, content: str) -> Optional[str]:
        channel_id = await self.transport.open_dm(self.user_id)
        return await self.transport.post_message(channel_id, content)


class _ChannelTarget:
    def __init__(self, transport: "DiscordRestTransport", channel_id: str) -> None:
        self.transport = transport
        self.channel_id = channel_id

    async def send(self, content: str) -> Optional[str]:
        return await self.transport.post_message(self.channel_id, content)


class DiscordRestTransport:
    """MessagingTransport and ResourceProvisioner over the Discord HTTP API.

    Presence is not available over REST; the gateway client feeds it in via
    ``update_presence``. Unknown recipients are reported as offline.
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        guild_id: str | None = None,
        base_url: str = DISCORD_API_BASE,
        timeout_s: float = 10.0,
        client: httpx.AsyncClient | None = None,
        token_env: str = DISCORD_TOKEN_ENV,
    ) -> None:
        resolved = token or os.getenv(token_env)
        if not resolved and client is None:
            raise ValueError("Missing Discord bot token")
        self.guild_id = guild_id
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_s,
            headers={"Authorization": f"Bot {resolved}"},
        )
        self._presence: dict[str, str] = {}
        self._usernames: dict[str, str] = {}
        self._dm_channels: dict[str, str] = {}

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise DiscordApiError(f"Discord API {method} {path} failed: {exc}") from exc
        if response.status_code >= 400:
            raise DiscordApiError(
                f"Discord API {method} {path} failed: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def _get_or_none(self, path: str) -> Any:
        try:
            return await self._request("GET", path)
        except DiscordApiError as exc:
            if exc.status_code == 404:
                return None
            raise

    def _require_guild(self) -> str:
        if not self.guild_id:
            raise TransportError("Guild id is required for resource provisioning")
        return self.guild_id

    # Messaging

    def update_presence(self, user_id: str, status: str) -> None:
        if status not in PRESENCE_STATUSES:
            logger.debug("ignoring unknown presence status", user_id=user_id, status=status)
            return
        self._presence[user_id] = status

    async def get_presence(self, user_id: str) -> str:
        return self._presence.get(user_id, "offline")

    async def get_user(self, user_id: str) -> _DirectMessageTarget | None:
        user = await self._get_or_none(f"/users/{user_id}")
        if user is None:
            return None
        if user.get("username"):
            self._usernames[user_id] = user["username"]
        return _DirectMessageTarget(self, user_id)

    async def get_channel(self, channel_id: str) -> _ChannelTarget | None:
        channel = await self._get_or_none(f"/channels/{channel_id}")
        return None if channel is None else _ChannelTarget(self, channel_id)

    async def get_username(self, user_id: str) -> str | None:
        if user_id in self._usernames:
            return self._usernames[user_id]
        try:
            user = await self._get_or_none(f"/users/{user_id}")
        except TransportError as exc:
            logger.warning("username lookup failed", user_id=user_id, error=str(exc))
            return None
        username = (user or {}).get("username")
        if username:
            self._usernames[user_id] = username
        return username

    async def open_dm(self, user_id: str) -> str:
        if user_id not in self._dm_channels:
            channel = await self._request("POST", "/users/@me/channels", json={"recipient_id": user_id})
            self._dm_channels[user_id] = str(channel["id"])
        return self._dm_channels[user_id]

    async def post_message(self, channel_id: str, content: str) -> str | None:
        text = content[:DEFAULT_MESSAGE_MAX_LENGTH]
        if len(content) > DEFAULT_MESSAGE_MAX_LENGTH:
            logger.warning("message truncated", original_len=len(content), max_len=DEFAULT_MESSAGE_MAX_LENGTH)
        message = await self._request("POST", f"/channels/{channel_id}/messages", json={"content": text})
        return str(message["id"]) if message and "id" in message else None

    # Provisioning

    async def ensure_channel(self, spec: dict[str, Any]) -> DiscordResource:
        guild_id = self._require_guild()
        name = spec["name"]
        for channel in await self._request("GET", f"/guilds/{guild_id}/channels") or []:
            if channel.get("name") == name:
                return DiscordResource(id=str(channel["id"]), name=name)

        payload: dict[str, Any] = {"name": name, "type": _CHANNEL_TYPES.get(spec.get("type", "text"), 0)}
        for key in ("topic", "parent_id", "position"):
            if spec.get(key) is not None:
                payload[key] = spec[key]
        created = await self._request("POST", f"/guilds/{guild_id}/channels", json=payload)
        logger.info("channel created", name=name, channel_id=created["id"])
        return DiscordResource(id=str(created["id"]), name=name, created=True)

    async def ensure_role(self, spec: dict[str, Any]) -> DiscordResource:
        guild_id = self._require_guild()
        name = spec["name"]
        for role in await self._request("GET", f"/guilds/{guild_id}/roles") or []:
            if role.get("name") == name:
                return DiscordResource(id=str(role["id"]), name=name)

        payload: dict[str, Any] = {"name": name}
        for key in ("color", "hoist", "mentionable", "permissions"):
            if spec.get(key) is not None:
                payload[key] = spec[key]
        created = await self._request("POST", f"/guilds/{guild_id}/roles", json=payload)
        logger.info("role created", name=name, role_id=created["id"])
        return DiscordResource(id=str(created["id"]), name=name, created=True)

    async def delete_channel(self, channel_id: str) -> None:
        await self._request("DELETE", f"/channels/{channel_id}")

    async def delete_role(self, role_id: str) -> None:
        await self._request("DELETE", f"/guilds/{self._require_guild()}/roles/{role_id}")
