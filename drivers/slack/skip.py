"""
Decides which inbound message events are dropped before classification.

Every rule is a predicate over the raw event; the first one that fires
names the reason.  Nothing here touches the network.
"""

from typing import Callable, NamedTuple

import services.logger as log
from services.cache import LoopCache
from services.config_schema import SlackConfig
from drivers.slack.events import JOIN_LEAVE, PIN_EVENTS, MessageEvent

l = log.get_logger()

# Prefix of the callback_id stamped on every message this bridge posts.
CALLBACK_PREFIX = "slackrelay_"


class SkipRule(NamedTuple):
    name: str
    applies: Callable[["SkipFilter", MessageEvent], bool]


def _join_leave_disabled(f: "SkipFilter", ev: MessageEvent) -> bool:
    return ev.subtype in JOIN_LEAVE and f.config.no_send_join_part


def _pinned(f: "SkipFilter", ev: MessageEvent) -> bool:
    return ev.subtype in PIN_EVENTS


def _own_username(f: "SkipFilter", ev: MessageEvent) -> bool:
    if f.config.webhook_url or f.config.webhook_bind_address:
        return False
    return bool(f.own_username) and ev.username == f.own_username


def _own_callback(f: "SkipFilter", ev: MessageEvent) -> bool:
    return bool(ev.attachments) and ev.attachments[0].callback_id == f.callback_id


def _unfurl(f: "SkipFilter", ev: MessageEvent) -> bool:
    # Link unfurls arrive as message_changed without an "edited" marker.
    if f.config.edit_disable or not ev.is_edit_shaped:
        return False
    return ev.message.edited is None


def _own_upload(f: "SkipFilter", ev: MessageEvent) -> bool:
    for file in ev.files:
        if f.cache.is_own_file(file.id, file.name):
            l.debug(f"Not downloading file {file.id or file.name!r} which we uploaded")
            return True
    return False


SKIP_RULES: list[SkipRule] = [
    SkipRule("join_leave_disabled", _join_leave_disabled),
    SkipRule("pinned_item", _pinned),
    SkipRule("own_username", _own_username),
    SkipRule("own_callback_id", _own_callback),
    SkipRule("unedited_submessage", _unfurl),
    SkipRule("own_upload", _own_upload),
]


class SkipFilter:

    def __init__(self, config: SlackConfig, cache: LoopCache, instance_uuid: str):
        self.config = config
        self.cache = cache
        self.callback_id = CALLBACK_PREFIX + instance_uuid
        # Set once the live session reports who we are.
        self.own_username = ""

    def reason(self, ev: MessageEvent) -> str | None:
        for rule in SKIP_RULES:
            if rule.applies(self, ev):
                return rule.name
        return None

    def should_skip(self, ev: MessageEvent) -> bool:
        return self.reason(ev) is not None
