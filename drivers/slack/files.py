"""
File relay: inbound attachment download and outbound upload.

Uploads register the file in the loop-suppression cache *before* the API
call, by name, and again by id once Slack returns one.  Slack's own
``file_share`` echo can reach us before ``files.upload`` returns, so the
name entry is what catches the early echo.
"""

import asyncio
import re

import aiohttp
from slack_sdk.web.async_client import AsyncWebClient

import services.logger as log
import services.media as media
from services.cache import LoopCache
from services.config_schema import SlackConfig
from services.error import DownloadError
from services.message import EXTRA_FILE, CanonicalMessage, FileInfo
from drivers.slack.events import SlackFile

l = log.get_logger()

COMMENT_RE = re.compile(r".*?commented: (.*)")


def extract_comment(text: str) -> str:
    m = COMMENT_RE.search(text or "")
    return m.group(1) if m else ""


class FileRelay:

    def __init__(
        self,
        instance_id: str,
        config: SlackConfig,
        cache: LoopCache,
        web: AsyncWebClient | None,
    ):
        self.instance_id = instance_id
        self.config = config
        self.cache = cache
        self._web = web
        self._blacklist = [re.compile(p) for p in config.media_download_blacklist if p]

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    def check_download(self, name: str, size: int) -> None:
        """Raise ``DownloadError`` if the file must not be fetched."""
        for pattern in self._blacklist:
            if pattern.search(name):
                raise DownloadError(f"matching blacklist {pattern.pattern}, not downloading {name}")
        l.debug(f"Slack [{self.instance_id}] trying to download {name!r} with size {size}")
        if size > self.config.max_file_size:
            raise DownloadError(
                f"file {name!r} too large to download ({size}), "
                f"max_file_size is {self.config.max_file_size}"
            )

    async def download(self, msg: CanonicalMessage, file: SlackFile) -> FileInfo:
        self.check_download(file.name, file.size)
        comment = extract_comment(msg.text)
        try:
            data = await media.fetch_auth(
                file.download_url,
                "Bearer " + self.config.token,
                self.config.max_file_size,
            )
        except asyncio.TimeoutError as e:
            raise DownloadError(f"download of {file.name!r} timed out") from e
        except aiohttp.ClientError as e:
            raise DownloadError(f"download of {file.name!r} failed: {e}") from e
        info = FileInfo(
            name=file.name,
            size=len(data),
            data=data,
            comment=comment,
            url=file.download_url,
        )
        msg.add_extra(EXTRA_FILE, info)
        return info

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def upload(self, msg: CanonicalMessage, channel_id: str) -> list[str]:
        """Upload every file carried by *msg*; return the ids Slack assigned."""
        if self._web is None:
            l.warning(f"Slack [{self.instance_id}] upload: token not configured")
            return []

        self.cache.sweep()
        ids: list[str] = []
        for fi in msg.files:
            # The comment travels with the file; don't post it twice.
            if msg.text == fi.comment:
                msg.text = ""

            l.debug(f"Slack [{self.instance_id}] adding file {fi.name!r} to cache")
            self.cache.remember_upload_name(fi.name)
            try:
                resp = await self._web.files_upload_v2(
                    channel=channel_id,
                    filename=fi.name,
                    content=fi.data,
                    initial_comment=fi.comment or None,
                )
            except Exception as e:
                l.error(f"Slack [{self.instance_id}] file upload failed: {e}")
                continue

            file_id = (resp.get("file") or {}).get("id", "")
            if file_id:
                l.debug(f"Slack [{self.instance_id}] adding file id {file_id} to cache")
                self.cache.remember_upload_id(file_id)
                ids.append(file_id)
        return ids
