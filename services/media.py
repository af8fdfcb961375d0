# Shared download helper for inbound attachments.
#
# Usage:
#   from services.media import fetch_auth
#   data = await fetch_auth(url, "Bearer xoxb-...", max_bytes=1_000_000)

import asyncio

import aiohttp

import services.logger as log
from services.error import DownloadError

l = log.get_logger()

_CHUNK = 65536

_session: aiohttp.ClientSession | None = None


def _get_session() -> aiohttp.ClientSession:
    global _session
    if _session is None or _session.closed:
        _session = aiohttp.ClientSession()
    return _session


async def close_session() -> None:
    global _session
    if _session is not None and not _session.closed:
        await _session.close()
    _session = None


async def fetch_auth(
    url: str,
    authorization: str,
    max_bytes: int,
    timeout: float | None = None,
) -> bytes:
    """
    Download *url* sending *authorization* as the ``Authorization`` header.

    The body is streamed and the transfer aborted as soon as it grows past
    *max_bytes*.  Raises ``DownloadError`` on any failure; never returns
    partial data. *timeout* caps the whole transfer; None keeps the
    session default.
    """
    if not url:
        raise DownloadError("no download URL")

    session = _get_session()
    headers = {"Authorization": authorization} if authorization else {}
    kwargs = {"timeout": aiohttp.ClientTimeout(total=timeout)} if timeout is not None else {}

    try:
        async with session.get(url, headers=headers, **kwargs) as resp:
            if resp.status != 200:
                raise DownloadError(f"download {url} failed: HTTP {resp.status}")
            chunks: list[bytes] = []
            total = 0
            async for chunk in resp.content.iter_chunked(_CHUNK):
                total += len(chunk)
                if total > max_bytes:
                    raise DownloadError(f"download {url} exceeded {max_bytes} bytes")
                chunks.append(chunk)
    except asyncio.TimeoutError as e:
        raise DownloadError(f"download {url} timed out") from e
    except aiohttp.ClientError as e:
        raise DownloadError(f"download {url} failed: {e}") from e

    l.debug(f"media.fetch_auth: {url!r} {total} bytes")
    return b"".join(chunks)
