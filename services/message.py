from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventKind(str, Enum):
    """Closed set of event markers carried by a CanonicalMessage."""
    NONE = ""
    USER_ACTION = "user_action"
    JOIN_LEAVE = "join_leave"
    TOPIC_CHANGE = "topic_change"
    MSG_DELETE = "msg_delete"


# Text of every deletion message; receivers match on it together with the event.
DELETE_MARKER = EventKind.MSG_DELETE.value

# Username given to messages the platform itself produces (joins, topic...).
SYSTEM_USER = "system"

EXTRA_FILE = "file"
EXTRA_SLACK_ATTACHMENT = "slack_attachment"


@dataclass
class FileInfo:
    """A downloaded file carried in ``CanonicalMessage.extra["file"]``."""
    name: str
    size: int
    data: bytes
    comment: str = ""
    url: str = ""   # source URL, informational only


@dataclass
class CanonicalMessage:
    """Platform-agnostic message handed to the gateway."""
    id: str = ""        # "<platform> <timestamp>"
    text: str = ""
    username: str = ""
    user_id: str = ""
    channel: str = ""   # channel name or "ID:<channel id>"
    avatar: str = ""
    event: EventKind = EventKind.NONE
    account: str = ""   # instance id that produced the message
    extra: dict[str, list[Any]] = field(default_factory=dict)

    def add_extra(self, key: str, value: Any) -> None:
        self.extra.setdefault(key, []).append(value)

    @property
    def files(self) -> list[FileInfo]:
        return [f for f in self.extra.get(EXTRA_FILE, []) if isinstance(f, FileInfo)]
