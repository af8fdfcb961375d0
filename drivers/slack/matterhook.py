# Receiver for Slack outgoing webhooks.
#
# Slack POSTs an application/x-www-form-urlencoded body per message:
#   token, team_id, channel_id, channel_name, timestamp, user_id,
#   user_name, text, trigger_word
# Only user_name, text and channel_name make it into the canonical message;
# this path carries no subtypes, files or edit information.

import asyncio
import hmac
from typing import Mapping

from aiohttp import web

import services.logger as log
from services.message import CanonicalMessage

l = log.get_logger()

# Slack's own bot answers in channels too; never relay it.
SLACKBOT = "slackbot"


def parse_bind_address(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid bind address {address!r}, expected host:port")
    return host or "0.0.0.0", int(port)


def message_from_form(form: Mapping[str, str], account: str = "") -> CanonicalMessage | None:
    """Turn one outgoing-webhook post into a message, or None if it is ignored."""
    username = form.get("user_name", "")
    if username == SLACKBOT:
        return None
    return CanonicalMessage(
        username=username,
        text=form.get("text", ""),
        channel=form.get("channel_name", ""),
        user_id=form.get("user_id", ""),
        account=account,
    )


class WebhookReceiver:

    def __init__(self, instance_id: str, bind_address: str, path: str = "/", token: str = ""):
        self.instance_id = instance_id
        self.host, self.port = parse_bind_address(bind_address)
        self.path = path
        self.token = token
        self._queue: asyncio.Queue | None = None

    async def _handle(self, request: web.Request) -> web.Response:
        form = await request.post()
        if self.token and not hmac.compare_digest(str(form.get("token", "")), self.token):
            l.warning(f"Slack [{self.instance_id}] webhook post with bad token rejected")
            return web.Response(status=403, text="Invalid token")

        l.debug(f"Slack [{self.instance_id}] receiving from outgoing webhook {dict(form)!r}")
        msg = message_from_form({k: str(v) for k, v in form.items()}, self.instance_id)
        if msg is not None and self._queue is not None:
            await self._queue.put(msg)
        return web.Response(status=200)

    def make_app(self, queue: asyncio.Queue) -> web.Application:
        self._queue = queue
        app = web.Application()
        app.router.add_post(self.path, self._handle)
        return app

    async def serve(self, queue: asyncio.Queue) -> None:
        """Run the HTTP listener forever, pushing messages onto *queue*."""
        runner = web.AppRunner(self.make_app(queue))
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        await site.start()
        l.info(
            f"Slack [{self.instance_id}] outgoing webhook listening on "
            f"{self.host}:{self.port}{self.path}"
        )
        try:
            await asyncio.Event().wait()
        finally:
            await runner.cleanup()
