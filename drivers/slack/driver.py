import asyncio
import dataclasses
import uuid
from typing import AsyncIterator

import aiohttp
from slack_sdk.errors import SlackApiError
from slack_sdk.socket_mode.aiohttp import SocketModeClient
from slack_sdk.socket_mode.request import SocketModeRequest
from slack_sdk.socket_mode.response import SocketModeResponse
from slack_sdk.web.async_client import AsyncWebClient

import services.logger as log
from services.cache import LoopCache
from services.config_schema import SlackConfig
from services.message import EXTRA_SLACK_ATTACHMENT, CanonicalMessage, EventKind
from drivers import BaseDriver
from drivers.slack.classifier import Classifier
from drivers.slack.directory import Directory
from drivers.slack.dispatcher import IngestionDispatcher, IngestMode, choose_mode
from drivers.slack.events import SessionEvent, SessionEventKind
from drivers.slack.files import FileRelay
from drivers.slack.skip import SkipFilter

l = log.get_logger()

# auth.test errors after which retrying is pointless.
FATAL_AUTH_ERRORS = frozenset({
    "invalid_auth",
    "not_authed",
    "account_inactive",
    "token_revoked",
    "token_expired",
})


class SlackDriver(BaseDriver[SlackConfig]):

    def __init__(
        self,
        instance_id: str,
        config: SlackConfig,
        gateway,
        cache: LoopCache | None = None,
        web: AsyncWebClient | None = None,
    ):
        super().__init__(instance_id, config, gateway)
        self.uuid = uuid.uuid4().hex
        self.cache = cache or LoopCache()
        if web is None and config.token:
            web = AsyncWebClient(token=config.token)
        self._web = web
        self._sm: SocketModeClient | None = None
        self._session: aiohttp.ClientSession | None = None
        self._events: asyncio.Queue[SessionEvent] = asyncio.Queue()

        self.directory = Directory(instance_id, self._web)
        self.relay = FileRelay(instance_id, config, self.cache, self._web)
        self.skip = SkipFilter(config, self.cache, self.uuid)
        self.classifier = Classifier(instance_id, config, self.directory, self.relay)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _forward(self, msg: CanonicalMessage) -> None:
        await self.gateway.on_message(msg)

    async def start(self):
        # Register early so the gateway can route to us; send helpers
        # guard against uninitialized state.
        self.gateway.register_sender(self.instance_id, self.send)
        self._session = aiohttp.ClientSession()

        mode = choose_mode(self.config)
        if mode is IngestMode.SESSION and not self.config.app_token:
            if not self._web and not self.config.webhook_url:
                l.error(f"Slack [{self.instance_id}] needs app_token or webhook_bind_address")
                await self._session.close()
                return
            l.info(f"Slack [{self.instance_id}] no app_token, running in send-only mode")
            # Session stays open; send() keeps working via the gateway.
            return

        dispatcher = IngestionDispatcher(
            self.instance_id,
            self.config,
            self.skip,
            self.classifier,
            self.directory,
            self._forward,
            events=self._iter_events(),
        )

        try:
            if mode is IngestMode.SESSION:
                await self._connect_session()
            await dispatcher.run()
        finally:
            if self._sm is not None:
                await self._sm.close()
            await self._session.close()

    # ------------------------------------------------------------------
    # Receive: Socket Mode session
    # ------------------------------------------------------------------

    async def _connect_session(self) -> None:
        self._sm = SocketModeClient(
            app_token=self.config.app_token,
            web_client=self._web,
            auto_reconnect_enabled=True,
        )
        self._sm.socket_mode_request_listeners.append(self._on_request)
        self._sm.on_error_listeners.append(self._on_socket_error)
        await self._sm.connect_to_new_endpoint()
        l.info(f"Slack [{self.instance_id}] Socket Mode connected")
        await self._events.put(await self._whoami())

    async def _whoami(self) -> SessionEvent:
        if self._web is None:
            return SessionEvent(SessionEventKind.CONNECTED, {})
        try:
            resp = await self._web.auth_test()
        except SlackApiError as e:
            error = e.response.get("error", "")
            if error in FATAL_AUTH_ERRORS:
                return SessionEvent(SessionEventKind.INVALID_AUTH, {"error": error})
            return SessionEvent(SessionEventKind.CONNECTION_ERROR, {"error": error})
        l.info(f"Slack [{self.instance_id}] authenticated as {resp.get('user')} ({resp.get('user_id')})")
        return SessionEvent(
            SessionEventKind.CONNECTED,
            {"user": resp.get("user", ""), "user_id": resp.get("user_id", "")},
        )

    async def _on_request(self, client: SocketModeClient, req: SocketModeRequest) -> None:
        # Slack wants the ack within 3 seconds
        await client.send_socket_mode_response(
            SocketModeResponse(envelope_id=req.envelope_id)
        )
        if req.type != "events_api":
            return
        event = req.payload.get("event", {})
        if isinstance(event, dict):
            await self._events.put(SessionEvent.from_event(event))

    async def _on_socket_error(self, message) -> None:
        error = str(getattr(message, "data", message))
        await self._events.put(SessionEvent(SessionEventKind.CONNECTION_ERROR, {"error": error}))

    async def _iter_events(self) -> AsyncIterator[SessionEvent]:
        while True:
            yield await self._events.get()

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    def _channel_id(self, channel: dict) -> str:
        if channel.get("channel_id"):
            return channel["channel_id"]
        name = channel.get("channel", "")
        if name.startswith("ID:"):
            return name[3:]
        return self.directory.channel_id_by_name(name) or name

    async def send(self, channel: dict, msg: CanonicalMessage):
        # Deletions and edits need an id mapping we don't keep.
        if msg.event is EventKind.MSG_DELETE:
            l.debug(f"Slack [{self.instance_id}] send: dropping delete {msg.id}")
            return

        # The gateway hands the same message to every target.
        msg = dataclasses.replace(msg)

        if self._web is None:
            await self._send_webhook(msg)
            return

        channel_id = self._channel_id(channel)
        if not channel_id:
            l.warning(f"Slack [{self.instance_id}] send: no channel in {channel}")
            return

        if msg.files:
            await self.relay.upload(msg, channel_id)

        if not msg.text:
            return

        attachments = [{"callback_id": self.skip.callback_id, "fallback": ""}]
        for group in msg.extra.get(EXTRA_SLACK_ATTACHMENT, []):
            attachments.extend(group)

        text = msg.text
        if msg.event is EventKind.USER_ACTION:
            text = f"_{text}_"

        post: dict = {"channel": channel_id, "text": text, "attachments": attachments}
        if msg.username:
            post["username"] = msg.username
        if msg.avatar:
            post["icon_url"] = msg.avatar
        try:
            resp = await self._web.chat_postMessage(**post)
            return resp.get("ts")
        except SlackApiError as e:
            l.error(f"Slack [{self.instance_id}] chat_postMessage failed: {e}")

    async def _send_webhook(self, msg: CanonicalMessage):
        webhook_url = self.config.webhook_url
        if not webhook_url:
            l.warning(f"Slack [{self.instance_id}] send: no token or webhook_url configured")
            return
        if self._session is None:
            l.warning(f"Slack [{self.instance_id}] send: driver not started")
            return

        # Incoming webhooks are text-only; name the files inline
        text = msg.text
        for fi in msg.files:
            text += f"\n[File: {fi.name}]"
        if not text.strip():
            return

        payload = {"text": text, "username": msg.username}
        if msg.avatar:
            payload["icon_url"] = msg.avatar
        try:
            async with self._session.post(webhook_url, json=payload) as resp:
                if resp.status not in (200, 204):
                    body = await resp.text()
                    l.error(
                        f"Slack [{self.instance_id}] incoming webhook error "
                        f"HTTP {resp.status}: {body}"
                    )
        except aiohttp.ClientError as e:
            l.error(f"Slack [{self.instance_id}] incoming webhook request failed: {e}")
