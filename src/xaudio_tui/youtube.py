"""YouTube Data API lookups and stream URL resolution."""
from __future__ import annotations

import asyncio
import http.client
import json
import re
from typing import Optional, Sequence
from urllib import error, request
from urllib.parse import urlencode

from .logging_utils import get_logger
from .playlist import PlaylistEntry

log = get_logger(__name__)

API_BASE_URL = "https://youtube.googleapis.com/youtube/v3"
WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
DEFAULT_MAX_RESULTS = 50
DEFAULT_TIMEOUT = 10.0
DEFAULT_RESOLVER = "yt-dlp"

_DURATION_PATTERN = re.compile(
    r"^P(?:(?P<days>\d+)D)?"
    r"(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)


class YouTubeError(RuntimeError):
    """Raised when an API request fails or returns an unusable payload."""


class ResolutionError(RuntimeError):
    """Raised when a video id cannot be turned into a playable URL."""


def parse_duration(value: str) -> int:
    """Convert an ISO-8601 duration such as ``PT1H2M3S`` into seconds."""

    match = _DURATION_PATTERN.match(value.strip())
    if match is None:
        raise ValueError(f"Unsupported duration: {value!r}")
    parts = {key: int(raw) if raw else 0 for key, raw in match.groupdict().items()}
    return (
        parts["days"] * 86400
        + parts["hours"] * 3600
        + parts["minutes"] * 60
        + parts["seconds"]
    )


def parse_search_items(payload: object) -> list[PlaylistEntry]:
    """Extract ``(videoId, title)`` pairs from a search response."""

    if not isinstance(payload, dict):
        return []
    items = payload.get("items")
    if not isinstance(items, list):
        return []
    entries: list[PlaylistEntry] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        snippet = item.get("snippet")
        identifier = item.get("id")
        if not isinstance(snippet, dict) or not isinstance(identifier, dict):
            continue
        video_id = identifier.get("videoId")
        title = snippet.get("title")
        if isinstance(video_id, str) and video_id and isinstance(title, str):
            entries.append(PlaylistEntry(id=video_id, title=title))
    return entries


def _fetch_json(url: str, timeout: float) -> object:
    req = request.Request(url, headers={"Accept": "application/json"})
    with request.urlopen(req, timeout=timeout) as response:  # type: ignore[call-arg]
        payload = response.read().decode("utf8")
    return json.loads(payload)


class YouTubeClient:
    """Thin asynchronous wrapper over the search and videos endpoints."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_results: int = DEFAULT_MAX_RESULTS,
        base_url: str = API_BASE_URL,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._max_results = max_results
        self._base_url = base_url.rstrip("/")

    def _url(self, endpoint: str, params: dict[str, object]) -> str:
        if not self._api_key:
            raise YouTubeError("YOUTUBE_API_KEY is not configured")
        query = urlencode({**params, "key": self._api_key})
        return f"{self._base_url}/{endpoint}?{query}"

    async def _get(self, endpoint: str, params: dict[str, object]) -> object:
        url = self._url(endpoint, params)
        log.debug("Requesting %s (timeout=%s)", endpoint, self._timeout)
        try:
            return await asyncio.to_thread(_fetch_json, url, self._timeout)
        except (error.URLError, http.client.HTTPException, OSError, ValueError) as exc:
            log.error("YouTube %s request failed: %s", endpoint, exc)
            raise YouTubeError(str(exc)) from exc

    async def search(self, keyword: str) -> list[PlaylistEntry]:
        """Return videos matching *keyword*, most relevant first."""

        payload = await self._get(
            "search",
            {
                "part": "snippet",
                "order": "relevance",
                "type": "video",
                "q": keyword,
                "maxResults": self._max_results,
            },
        )
        entries = parse_search_items(payload)
        log.info("Search for %r returned %d result(s)", keyword, len(entries))
        return entries

    async def lookup_duration(self, video_id: str) -> int:
        """Return the length of *video_id* in seconds."""

        payload = await self._get(
            "videos", {"id": video_id, "part": "contentDetails"}
        )
        try:
            raw = payload["items"][0]["contentDetails"]["duration"]  # type: ignore[index]
            return parse_duration(str(raw))
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise YouTubeError(f"No duration available for {video_id}") from exc


async def resolve_stream_url(
    video_id: str,
    *,
    resolver: str = DEFAULT_RESOLVER,
    extra_args: Sequence[str] = (),
) -> str:
    """Ask ``yt-dlp`` for a directly playable audio URL for *video_id*."""

    watch_url = WATCH_URL.format(video_id=video_id)
    argv = [resolver, "-x", "--get-url", *extra_args, watch_url]
    log.debug("Resolving %s with %s", watch_url, resolver)
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise ResolutionError(f"Cannot run {resolver}: {exc}") from exc
    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        detail = stderr.decode("utf8", errors="replace").strip()
        raise ResolutionError(
            f"{resolver} exited with {process.returncode} for {video_id}: {detail}"
        )
    lines = [line.strip() for line in stdout.decode("utf8", errors="replace").splitlines()]
    urls = [line for line in lines if line]
    if not urls:
        raise ResolutionError(f"{resolver} returned no URL for {video_id}")
    return urls[0]


__all__ = [
    "ResolutionError",
    "YouTubeClient",
    "YouTubeError",
    "parse_duration",
    "parse_search_items",
    "resolve_stream_url",
]
