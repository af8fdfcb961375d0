"""
Event classifier: folds one Slack ``MessageEvent`` into a ``CanonicalMessage``.

Classification is an ordered table of rules.  Each rule has a predicate and
a transform over a working draft; every rule whose predicate holds runs, in
table order, so later rules refine or override what earlier ones set (a
deletion, for instance, overrides any text and id assigned before it).

The raw event is never mutated: edit folding writes to the draft, so the
same event classifies to the same message every time.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, NamedTuple

import services.logger as log
from services.config_schema import SlackConfig
from services.error import DownloadError, EmptyMessage, LookupFailed, UnresolvedEcho
from services.message import (
    DELETE_MARKER,
    EXTRA_SLACK_ATTACHMENT,
    SYSTEM_USER,
    CanonicalMessage,
    EventKind,
)
from drivers.slack.directory import Directory
from drivers.slack.events import JOIN_LEAVE, TOPIC_EVENTS, MessageEvent, SubType
from drivers.slack.files import FileRelay

l = log.get_logger()

PLATFORM = "slack"


def message_id(ts: str) -> str:
    return f"{PLATFORM} {ts}"


@dataclass
class Draft:
    event: MessageEvent
    user: str               # user id to resolve; replaced by edit folding
    msg: CanonicalMessage


class Rule(NamedTuple):
    name: str
    applies: Callable[["Classifier", Draft], bool]
    apply: Callable[["Classifier", Draft], Awaitable[None]]


# ---------------------------------------------------------------------------
# Rules, in precedence order
# ---------------------------------------------------------------------------

def _is_join(c: "Classifier", d: Draft) -> bool:
    return d.event.subtype == SubType.CHANNEL_JOIN


async def _refresh_members(c: "Classifier", d: Draft) -> None:
    c.schedule_user_refresh()


def _is_edit(c: "Classifier", d: Draft) -> bool:
    return not c.config.edit_disable and d.event.is_edit_shaped


async def _fold_edit(c: "Classifier", d: Draft) -> None:
    sub = d.event.message
    l.debug(f"Slack [{c.instance_id}] submessage {sub!r}")
    d.user = sub.user
    d.msg.text = sub.text + c.config.edit_suffix


def _always(c: "Classifier", d: Draft) -> bool:
    return True


async def _resolve_channel(c: "Classifier", d: Draft) -> None:
    info = await c.directory.channel_info(d.event.channel)
    d.msg.channel = "ID:" + info.id if c.config.use_channel_id else info.name


def _names_user(c: "Classifier", d: Draft) -> bool:
    return bool(d.user) and d.event.subtype not in (SubType.MESSAGE_DELETED, SubType.FILE_COMMENT)


async def _resolve_user(c: "Classifier", d: Draft) -> None:
    user = await c.directory.user_info(d.user)
    d.msg.user_id = user.id
    d.msg.username = user.label


def _needs_attachment_text(c: "Classifier", d: Draft) -> bool:
    return not d.msg.text and bool(d.event.attachments)


async def _attachment_text(c: "Classifier", d: Draft) -> None:
    att = d.event.attachments[0]
    if att.text:
        d.msg.text = (att.title + "\n" if att.title else "") + att.text
    else:
        d.msg.text = att.fallback


def _is_unresolved_bot(c: "Classifier", d: Draft) -> bool:
    # With an outgoing webhook we can't tell our own posts from others.
    return not d.msg.username and bool(d.event.bot_id) and not c.config.webhook_url


async def _resolve_bot(c: "Classifier", d: Draft) -> None:
    try:
        bot = await c.directory.bot_info(d.event.bot_id)
    except LookupFailed as e:
        l.debug(f"Slack [{c.instance_id}] bot lookup failed: {e}")
        return
    if bot.name:
        d.msg.username = d.event.username or bot.name
        d.msg.user_id = bot.id

    # Some IRC bridges post through a generic API bot; the human is in "user".
    if bot.name in c.config.irc_bridge_bot_names and d.user:
        user = await c.directory.user_info(d.user)
        d.msg.user_id = user.id
        d.msg.username = user.label


def _is_file_comment(c: "Classifier", d: Draft) -> bool:
    return d.event.subtype == SubType.FILE_COMMENT


async def _system_user(c: "Classifier", d: Draft) -> None:
    d.msg.username = SYSTEM_USER


def _is_join_leave(c: "Classifier", d: Draft) -> bool:
    return d.event.subtype in JOIN_LEAVE


async def _join_leave(c: "Classifier", d: Draft) -> None:
    d.msg.username = SYSTEM_USER
    d.msg.event = EventKind.JOIN_LEAVE


def _is_action(c: "Classifier", d: Draft) -> bool:
    return d.event.subtype == SubType.ME_MESSAGE


async def _user_action(c: "Classifier", d: Draft) -> None:
    d.msg.event = EventKind.USER_ACTION


def _has_submessage(c: "Classifier", d: Draft) -> bool:
    return d.event.message is not None


async def _edit_id(c: "Classifier", d: Draft) -> None:
    d.msg.id = message_id(d.event.message.ts)


def _is_delete(c: "Classifier", d: Draft) -> bool:
    return d.event.subtype == SubType.MESSAGE_DELETED


async def _delete(c: "Classifier", d: Draft) -> None:
    d.msg.text = DELETE_MARKER
    d.msg.event = EventKind.MSG_DELETE
    d.msg.id = message_id(d.event.deleted_ts)


def _is_topic(c: "Classifier", d: Draft) -> bool:
    return d.event.subtype in TOPIC_EVENTS


async def _topic_change(c: "Classifier", d: Draft) -> None:
    d.msg.event = EventKind.TOPIC_CHANGE


def _is_invalid(c: "Classifier", d: Draft) -> bool:
    # Only deletions and file posts may lack text or a username.
    return (
        (not d.msg.text or not d.msg.username)
        and d.event.subtype != SubType.MESSAGE_DELETED
        and not d.event.files
    )


async def _reject(c: "Classifier", d: Draft) -> None:
    if d.event.bot_id:
        raise UnresolvedEcho()
    raise EmptyMessage()


def _has_payloads(c: "Classifier", d: Draft) -> bool:
    return bool(d.event.attachments or d.event.files)


async def _capture_payloads(c: "Classifier", d: Draft) -> None:
    if d.event.attachments:
        # Kept verbatim for other Slack-compatible bridges.
        d.msg.add_extra(EXTRA_SLACK_ATTACHMENT, [a.raw() for a in d.event.attachments])
    for f in d.event.files:
        try:
            await c.relay.download(d.msg, f)
        except DownloadError as e:
            l.error(f"Slack [{c.instance_id}] download failed: {e}")


RULES: list[Rule] = [
    Rule("membership_refresh", _is_join, _refresh_members),
    Rule("edit_folding", _is_edit, _fold_edit),
    Rule("channel", _always, _resolve_channel),
    Rule("identity", _names_user, _resolve_user),
    Rule("attachment_text", _needs_attachment_text, _attachment_text),
    Rule("bot_identity", _is_unresolved_bot, _resolve_bot),
    Rule("file_comment", _is_file_comment, _system_user),
    Rule("join_leave", _is_join_leave, _join_leave),
    Rule("user_action", _is_action, _user_action),
    Rule("edit_id", _has_submessage, _edit_id),
    Rule("delete", _is_delete, _delete),
    Rule("topic_change", _is_topic, _topic_change),
    Rule("validity", _is_invalid, _reject),
    Rule("payloads", _has_payloads, _capture_payloads),
]


class Classifier:

    def __init__(
        self,
        instance_id: str,
        config: SlackConfig,
        directory: Directory,
        relay: FileRelay,
        rules: list[Rule] | None = None,
    ):
        self.instance_id = instance_id
        self.config = config
        self.directory = directory
        self.relay = relay
        self.rules = RULES if rules is None else rules
        self._background: set[asyncio.Task] = set()

    def schedule_user_refresh(self) -> None:
        task = asyncio.create_task(self.directory.populate_users())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def classify(self, event: MessageEvent) -> CanonicalMessage:
        """Normalize *event*.

        Raises ``LookupFailed`` when the channel or user can't be resolved
        and a ``ValidationRejected`` subclass when the result is empty.
        """
        draft = Draft(
            event=event,
            user=event.user,
            msg=CanonicalMessage(
                id=message_id(event.ts),
                text=event.text,
                account=self.instance_id,
            ),
        )
        for rule in self.rules:
            if rule.applies(self, draft):
                await rule.apply(self, draft)
        return draft.msg
