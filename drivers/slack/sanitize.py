import html
import re
from typing import Callable

# <@U024BE7LH>
MENTION_RE = re.compile(r"<@([a-zA-Z0-9]+)>")
# <!here>, <!channel>, <!subteam^S012|@team>
VARIABLE_RE = re.compile(r"<!((?:subteam\^)?[a-zA-Z0-9]+)(?:\|@?(.+?))?>")
# <#C024BE7LR|general>
CHANNEL_RE = re.compile(r"<#[a-zA-Z0-9]+\|(.+?)>")
# <https://example.com|example.com>, <mailto:a@b.c>
URL_RE = re.compile(r"<([^<>|\s]+)(?:\|[^<>]*)?>")


class Sanitizer:
    """Turns Slack's escaped message markup into plain text.

    Passes run in a fixed order: mentions, variables, channel references,
    URLs, then HTML entities.
    """

    def __init__(self, username_for: Callable[[str], str | None]):
        self._username_for = username_for

    def replace_mention(self, text: str) -> str:
        def _sub(m: re.Match) -> str:
            name = self._username_for(m.group(1))
            return "@" + name if name else m.group(0)
        return MENTION_RE.sub(_sub, text)

    @staticmethod
    def replace_variable(text: str) -> str:
        def _sub(m: re.Match) -> str:
            if m.group(2):
                return "@" + m.group(2)
            return "@" + m.group(1)
        return VARIABLE_RE.sub(_sub, text)

    @staticmethod
    def replace_channel(text: str) -> str:
        return CHANNEL_RE.sub(lambda m: "#" + m.group(1), text)

    @staticmethod
    def replace_url(text: str) -> str:
        return URL_RE.sub(lambda m: m.group(1), text)

    def clean(self, text: str) -> str:
        if not text:
            return text
        text = self.replace_mention(text)
        text = self.replace_variable(text)
        text = self.replace_channel(text)
        text = self.replace_url(text)
        return html.unescape(text)
