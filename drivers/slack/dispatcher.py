"""
Ingestion dispatcher.

Exactly one producer runs per instance: the outgoing-webhook receiver when
``webhook_bind_address`` is configured, the live session reader otherwise.
The producer pushes canonical messages onto an unbounded queue and a single
consumer drains it in arrival order.  Edit and delete messages rewrite ids
that downstream matches against earlier posts, so that order must hold:
there is never more than one consumer.
"""

import asyncio
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable

from pydantic import ValidationError

import services.logger as log
from services.config_schema import SlackConfig
from services.error import FatalAuthError, RelayError
from services.message import CanonicalMessage
from drivers.slack.classifier import Classifier
from drivers.slack.directory import Directory
from drivers.slack.events import QUIET_TYPES, MessageEvent, SessionEvent, SessionEventKind
from drivers.slack.matterhook import WebhookReceiver
from drivers.slack.sanitize import Sanitizer
from drivers.slack.skip import SkipFilter

l = log.get_logger()

# Gives the producer time to connect before the consumer starts.
WARMUP_DELAY = 1.0

_STOP = object()


class IngestMode(str, Enum):
    WEBHOOK = "webhook"
    SESSION = "session"


def choose_mode(config: SlackConfig) -> IngestMode:
    if config.webhook_bind_address:
        return IngestMode.WEBHOOK
    return IngestMode.SESSION


class IngestionDispatcher:

    def __init__(
        self,
        instance_id: str,
        config: SlackConfig,
        skip: SkipFilter,
        classifier: Classifier,
        directory: Directory,
        forward: Callable[[CanonicalMessage], Awaitable[object]],
        events: AsyncIterator[SessionEvent] | None = None,
        receiver: WebhookReceiver | None = None,
        warmup: float = WARMUP_DELAY,
    ):
        self.instance_id = instance_id
        self.config = config
        self.skip = skip
        self.classifier = classifier
        self.directory = directory
        self.forward = forward
        self.events = events
        self.receiver = receiver
        self.warmup = warmup
        self.sanitizer = Sanitizer(directory.username)
        self.mode = choose_mode(config)

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------

    async def handle_message(self, data: dict) -> CanonicalMessage | None:
        """Skip-check and classify one raw message event; None if dropped."""
        try:
            event = MessageEvent.from_payload(data)
        except ValidationError as e:
            l.error(f"Slack [{self.instance_id}] malformed message event: {e}")
            return None

        reason = self.skip.reason(event)
        if reason is not None:
            l.debug(f"Slack [{self.instance_id}] skipped message ({reason}): {data!r}")
            return None

        try:
            return await self.classifier.classify(event)
        except RelayError as e:
            l.error(f"Slack [{self.instance_id}] dropped event {event.ts}: {e}")
            return None

    async def read_session(self, events: AsyncIterator[SessionEvent], out: asyncio.Queue) -> None:
        async for ev in events:
            etype = ev.data.get("type", ev.kind.value)
            if etype not in QUIET_TYPES:
                l.debug(f"Slack [{self.instance_id}] == receiving event {ev.data!r}")

            if ev.kind is SessionEventKind.MESSAGE:
                msg = await self.handle_message(ev.data)
                if msg is not None:
                    await out.put(msg)
            elif ev.kind is SessionEventKind.CHANNEL_JOINED:
                await self.directory.populate_users()
            elif ev.kind is SessionEventKind.CONNECTED:
                self.skip.own_username = ev.data.get("user", "")
                await self.directory.populate_channels()
                await self.directory.populate_users()
            elif ev.kind is SessionEventKind.INVALID_AUTH:
                l.critical(f"Slack [{self.instance_id}] invalid token: {ev.data!r}")
                raise FatalAuthError(f"invalid token: {ev.data.get('error', '')}")
            elif ev.kind is SessionEventKind.CONNECTION_ERROR:
                l.error(f"Slack [{self.instance_id}] connection failed: {ev.data.get('error', ev.data)!r}")

    def _producer(self, queue: asyncio.Queue):
        if self.mode is IngestMode.WEBHOOK:
            l.debug(f"Slack [{self.instance_id}] choosing webhook based receiving")
            if self.receiver is None:
                self.receiver = WebhookReceiver(
                    self.instance_id,
                    self.config.webhook_bind_address,
                    self.config.webhook_path,
                    self.config.webhook_token,
                )
            return self.receiver.serve(queue)
        l.debug(f"Slack [{self.instance_id}] choosing token based receiving")
        if self.events is None:
            raise RuntimeError("session mode needs an event stream")
        return self.read_session(self.events, queue)

    async def _run_producer(self, queue: asyncio.Queue) -> None:
        try:
            await self._producer(queue)
        finally:
            queue.put_nowait(_STOP)

    # ------------------------------------------------------------------
    # Consumer
    # ------------------------------------------------------------------

    async def process(self, msg: CanonicalMessage) -> None:
        l.debug(f"Slack [{self.instance_id}] <= sending message from {msg.username} to gateway")
        msg.text = self.sanitizer.clean(msg.text)
        msg.avatar = self.directory.avatar(msg.user_id)
        l.debug(f"Slack [{self.instance_id}] <= message is {msg!r}")
        try:
            await self.forward(msg)
        except Exception as e:
            l.error(f"Slack [{self.instance_id}] forwarding failed: {e}")

    async def drain(self, queue: asyncio.Queue) -> None:
        while True:
            msg = await queue.get()
            if msg is _STOP:
                return
            await self.process(msg)

    async def run(self) -> None:
        """Run producer and consumer until the producer stops.

        Messages queued before the producer stopped are still forwarded;
        a producer failure (``FatalAuthError``) is then re-raised.
        """
        queue: asyncio.Queue = asyncio.Queue()
        producer = asyncio.create_task(
            self._run_producer(queue), name=f"slack/{self.instance_id}/{self.mode.value}"
        )
        try:
            await asyncio.sleep(self.warmup)
            l.debug(f"Slack [{self.instance_id}] start listening for Slack messages")
            await self.drain(queue)
            await producer
        finally:
            if not producer.done():
                producer.cancel()
                await asyncio.gather(producer, return_exceptions=True)
