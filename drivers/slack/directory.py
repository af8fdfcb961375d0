"""Cached user / bot / channel lookups against the Slack Web API."""

import asyncio
from dataclasses import dataclass

import aiohttp
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

import services.logger as log
from services.error import LookupFailed

l = log.get_logger()

_PAGE_SIZE = 200
_CHANNEL_TYPES = "public_channel,private_channel"

# Anything the web client raises for one call; never fatal to the instance.
_API_ERRORS = (SlackApiError, aiohttp.ClientError, asyncio.TimeoutError)


def _reason(e: Exception) -> str:
    if isinstance(e, SlackApiError):
        return str(e.response.get("error", e))
    return repr(e)


@dataclass(frozen=True)
class UserInfo:
    id: str
    name: str
    display_name: str = ""
    avatar: str = ""

    @property
    def label(self) -> str:
        """Display-name override if the profile sets one, else the account name."""
        return self.display_name or self.name


@dataclass(frozen=True)
class BotInfo:
    id: str
    name: str


@dataclass(frozen=True)
class ChannelInfo:
    id: str
    name: str


def _user_from_api(u: dict) -> UserInfo:
    profile = u.get("profile") or {}
    return UserInfo(
        id=u.get("id", ""),
        name=u.get("name", ""),
        display_name=profile.get("display_name", ""),
        avatar=profile.get("image_48") or profile.get("image_72") or "",
    )


class Directory:

    def __init__(self, instance_id: str, web: AsyncWebClient | None):
        self.instance_id = instance_id
        self._web = web
        self._users: dict[str, UserInfo] = {}
        self._bots: dict[str, BotInfo] = {}
        self._channels: dict[str, ChannelInfo] = {}
        self._refresh_lock = asyncio.Lock()

    def _require_web(self, what: str) -> AsyncWebClient:
        if self._web is None:
            raise LookupFailed(f"cannot look up {what}: no token configured")
        return self._web

    # ------------------------------------------------------------------
    # Single lookups
    # ------------------------------------------------------------------

    async def user_info(self, user_id: str) -> UserInfo:
        cached = self._users.get(user_id)
        if cached is not None:
            return cached
        web = self._require_web(f"user {user_id}")
        try:
            resp = await web.users_info(user=user_id)
        except _API_ERRORS as e:
            raise LookupFailed(f"users.info {user_id}: {_reason(e)}") from e
        info = _user_from_api(resp["user"])
        self._users[user_id] = info
        return info

    async def bot_info(self, bot_id: str) -> BotInfo:
        cached = self._bots.get(bot_id)
        if cached is not None:
            return cached
        web = self._require_web(f"bot {bot_id}")
        try:
            resp = await web.bots_info(bot=bot_id)
        except _API_ERRORS as e:
            raise LookupFailed(f"bots.info {bot_id}: {_reason(e)}") from e
        bot = resp["bot"]
        info = BotInfo(id=bot.get("id", bot_id), name=bot.get("name", ""))
        self._bots[bot_id] = info
        return info

    async def channel_info(self, channel_id: str) -> ChannelInfo:
        """Resolve a channel id.

        Uses ``conversations.info`` rather than the channel listing so
        private channels the bot is a member of resolve as well.
        """
        cached = self._channels.get(channel_id)
        if cached is not None:
            return cached
        web = self._require_web(f"channel {channel_id}")
        try:
            resp = await web.conversations_info(channel=channel_id)
        except _API_ERRORS as e:
            raise LookupFailed(f"conversations.info {channel_id}: {_reason(e)}") from e
        ch = resp["channel"]
        info = ChannelInfo(id=ch.get("id", channel_id), name=ch.get("name", ""))
        self._channels[channel_id] = info
        return info

    # ------------------------------------------------------------------
    # Cache-only helpers (used on the hot path, never hit the network)
    # ------------------------------------------------------------------

    def username(self, user_id: str) -> str | None:
        info = self._users.get(user_id)
        return info.label if info else None

    def avatar(self, user_id: str) -> str:
        info = self._users.get(user_id)
        return info.avatar if info else ""

    def channel_id_by_name(self, name: str) -> str | None:
        for ch in self._channels.values():
            if ch.name == name:
                return ch.id
        return None

    # ------------------------------------------------------------------
    # Bulk population
    # ------------------------------------------------------------------

    async def _paged(self, method, key: str, **kwargs) -> list[dict]:
        items: list[dict] = []
        cursor = ""
        while True:
            resp = await method(cursor=cursor, limit=_PAGE_SIZE, **kwargs)
            items.extend(resp.get(key) or [])
            cursor = (resp.get("response_metadata") or {}).get("next_cursor", "")
            if not cursor:
                return items

    async def populate_users(self) -> int:
        """Reload the user cache; a call made while a refresh runs is a no-op."""
        if self._web is None:
            return 0
        if self._refresh_lock.locked():
            l.debug(f"Slack [{self.instance_id}] user refresh already in progress")
            return 0
        async with self._refresh_lock:
            try:
                members = await self._paged(self._web.users_list, "members")
            except _API_ERRORS as e:
                l.error(f"Slack [{self.instance_id}] users.list failed: {_reason(e)}")
                return 0
            users = {u["id"]: _user_from_api(u) for u in members if u.get("id")}
            self._users = users
            l.debug(f"Slack [{self.instance_id}] cached {len(users)} user(s)")
            return len(users)

    async def populate_channels(self) -> int:
        if self._web is None:
            return 0
        try:
            chans = await self._paged(
                self._web.conversations_list, "channels", types=_CHANNEL_TYPES
            )
        except _API_ERRORS as e:
            l.error(f"Slack [{self.instance_id}] conversations.list failed: {_reason(e)}")
            return 0
        for ch in chans:
            if ch.get("id"):
                self._channels[ch["id"]] = ChannelInfo(id=ch["id"], name=ch.get("name", ""))
        l.debug(f"Slack [{self.instance_id}] cached {len(self._channels)} channel(s)")
        return len(chans)
