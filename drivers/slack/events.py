"""
Raw Slack events as seen by the ingestion pipeline.

``MessageEvent`` is the tagged variant the classifier works on: ``subtype``
is the tag, the remaining fields are the payload.  Models are frozen so a
single event can be classified any number of times with the same result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


class SubType(str, Enum):
    NONE = ""
    BOT_MESSAGE = "bot_message"
    ME_MESSAGE = "me_message"
    MESSAGE_CHANGED = "message_changed"
    MESSAGE_DELETED = "message_deleted"
    CHANNEL_JOIN = "channel_join"
    CHANNEL_LEAVE = "channel_leave"
    CHANNEL_TOPIC = "channel_topic"
    CHANNEL_PURPOSE = "channel_purpose"
    FILE_COMMENT = "file_comment"
    FILE_SHARE = "file_share"
    PINNED_ITEM = "pinned_item"
    UNPINNED_ITEM = "unpinned_item"
    THREAD_BROADCAST = "thread_broadcast"
    OTHER = "<other>"

    @classmethod
    def _missing_(cls, value):
        return cls.OTHER


JOIN_LEAVE = frozenset({SubType.CHANNEL_JOIN, SubType.CHANNEL_LEAVE})
PIN_EVENTS = frozenset({SubType.PINNED_ITEM, SubType.UNPINNED_ITEM})
TOPIC_EVENTS = frozenset({SubType.CHANNEL_TOPIC, SubType.CHANNEL_PURPOSE})


def _to_subtype(v: object) -> object:
    if v is None:
        return SubType.NONE
    if isinstance(v, str):
        return SubType(v)
    return v


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class SlackFile(_Payload):
    id:                   str = ""
    name:                 str = ""
    size:                 int = 0
    url_private_download: str = ""
    url_private:          str = ""

    @property
    def download_url(self) -> str:
        return self.url_private_download or self.url_private


class SlackAttachment(BaseModel):
    """Legacy message attachment; unknown keys are kept for pass-through."""
    model_config = ConfigDict(extra="allow", frozen=True)

    title:       str = ""
    text:        str = ""
    fallback:    str = ""
    callback_id: str = ""

    def raw(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class SubMessage(_Payload):
    ts:        str                   = ""
    thread_ts: str                   = ""
    user:      str                   = ""
    text:      str                   = ""
    edited:    dict[str, Any] | None = None


class MessageEvent(_Payload):
    subtype:     Annotated[SubType, BeforeValidator(_to_subtype)] = SubType.NONE
    channel:     str                   = ""
    user:        str                   = ""
    username:    str                   = ""
    text:        str                   = ""
    ts:          str                   = ""
    deleted_ts:  str                   = ""
    bot_id:      str                   = ""
    message:     SubMessage | None     = None
    attachments: list[SlackAttachment] = Field(default_factory=list)
    files:       list[SlackFile]       = Field(default_factory=list)

    @classmethod
    def from_payload(cls, data: dict) -> MessageEvent:
        return cls.model_validate(data)

    @property
    def is_edit_shaped(self) -> bool:
        """A sub-event whose thread timestamp differs from its own."""
        return self.message is not None and self.message.thread_ts != self.message.ts


# ---------------------------------------------------------------------------
# Live session stream
# ---------------------------------------------------------------------------

class SessionEventKind(str, Enum):
    MESSAGE = "message"
    CHANNEL_JOINED = "channel_joined"
    CONNECTED = "connected"
    CONNECTION_ERROR = "connection_error"
    INVALID_AUTH = "invalid_auth"
    OTHER = "other"


# Event API types that mean "we joined a channel": refresh the user list.
_JOIN_TYPES = {"channel_joined", "group_joined", "member_joined_channel"}

# Noise never worth a debug line.
QUIET_TYPES = frozenset({"user_typing", "latency_report"})


@dataclass(frozen=True)
class SessionEvent:
    kind: SessionEventKind
    data: dict = field(default_factory=dict)

    @classmethod
    def from_event(cls, event: dict) -> SessionEvent:
        """Wrap an Events API ``event`` object."""
        etype = event.get("type", "")
        if etype == "message":
            return cls(SessionEventKind.MESSAGE, event)
        if etype in _JOIN_TYPES:
            return cls(SessionEventKind.CHANNEL_JOINED, event)
        return cls(SessionEventKind.OTHER, event)
