import html
import logging
import random
import re
from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests

from .data_models import ChannelResult, Item, MediaKind
from .errors import APIRequestError, ResponseFormatError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://oauth.reddit.com"
DEFAULT_USER_AGENT = "python:slideshow-core:v0.1.0 (by /u/slideshow_dev)"
REQUEST_TIMEOUT = 10  # seconds
SORT_TYPES = ("hot", "top?t=day")
LIMIT_PER_SORT = 15
DEFAULT_RETRY_AFTER = 60.0

_IMAGE_EXT = re.compile(r"\.(?:jpg|jpeg|png|gif)$", re.IGNORECASE)
_VIDEO_EXT = re.compile(r"\.(?:mp4|webm)$", re.IGNORECASE)
_IMAGE_EXT_WITH_QUERY = re.compile(r"\.(?:jpg|jpeg|png|gif|webp)\?", re.IGNORECASE)
_NO_THUMBNAIL = {"", "self", "default", "nsfw", "spoiler", "image"}


def clean_media_url(url: Optional[str]) -> str:
    """Normalise a media URL taken from a listing."""
    if not url:
        return ""

    cleaned = html.unescape(url).replace('\\"', '"').replace("\\/", "/")

    if "preview.redd.it" in cleaned:
        cleaned = cleaned.replace("preview.redd.it", "i.redd.it").split("?")[0]

    if _IMAGE_EXT_WITH_QUERY.search(cleaned) and "v.redd.it" not in cleaned:
        cleaned = cleaned.split("?")[0]

    if cleaned.startswith("http://"):
        cleaned = "https://" + cleaned[len("http://"):]

    return cleaned


def _path(url: str) -> str:
    return url.split("?")[0]


def _preview_source(post: Dict[str, Any]) -> Optional[str]:
    images = (post.get("preview") or {}).get("images") or []
    if images:
        return ((images[0] or {}).get("source") or {}).get("url")
    return None


def _thumbnail(post: Dict[str, Any]) -> Optional[str]:
    thumb = post.get("thumbnail")
    if isinstance(thumb, str) and thumb not in _NO_THUMBNAIL:
        return thumb
    return None


def _reddit_video_url(fallback: Optional[str]) -> Optional[str]:
    if not fallback:
        return None
    url = fallback
    if "DASHPlaylist.mpd" in url:
        url = url.split("DASHPlaylist.mpd")[0] + "DASH_720.mp4"
    return url.replace("?source=fallback", "")


def classify_post(post: Dict[str, Any]) -> Optional[Tuple[MediaKind, str, Optional[str], Optional[str]]]:
    """
    Work out what kind of media a listing entry carries.

    Explicit hints from the provider win; filename extensions are only
    consulted when no hint matches.

    Args:
        post: The ``data`` object of one listing child

    Returns:
        ``(kind, display_url, video_url, thumbnail_url)`` or None when the
        post has nothing worth showing
    """
    url = post.get("url") or ""
    hint = post.get("post_hint") or ""
    thumbnail = _thumbnail(post)
    media = post.get("media") or {}

    # Reddit-hosted video
    reddit_video = media.get("reddit_video") or {}
    if post.get("is_video") and reddit_video:
        video_url = _reddit_video_url(reddit_video.get("fallback_url"))
        display = clean_media_url(_preview_source(post) or thumbnail)
        return MediaKind.VIDEO, display, video_url, thumbnail or display or None

    # Galleries show their first image
    gallery_items = (post.get("gallery_data") or {}).get("items") or []
    metadata = post.get("media_metadata") or {}
    if post.get("is_gallery") and gallery_items and metadata:
        first = metadata.get(gallery_items[0].get("media_id"), {}) or {}
        source = first.get("s") or {}
        previews = first.get("p") or []
        display = source.get("u") or source.get("gif") or (previews[-1].get("u") if previews else None)
        if display:
            display = clean_media_url(display)
            return MediaKind.IMAGE, display, None, thumbnail or display

    # Embedded and hosted videos
    if hint in ("rich:video", "hosted:video") or _path(url).lower().endswith(".gifv"):
        preview_video = ((post.get("preview") or {}).get("reddit_video_preview") or {}).get("fallback_url")
        if preview_video:
            video_url = clean_media_url(preview_video.replace("?source=fallback", ""))
        elif _path(url).lower().endswith(".gifv"):
            video_url = clean_media_url(url[: -len(".gifv")] + ".mp4")
        else:
            video_url = None
        display = clean_media_url((media.get("oembed") or {}).get("thumbnail_url") or thumbnail)
        if video_url or display:
            return MediaKind.VIDEO, display, video_url, thumbnail or display or None

    if hint == "image" or _IMAGE_EXT.search(_path(url)):
        if "i.redd.it" in url or "i.imgur.com" in url or _IMAGE_EXT.search(_path(url)):
            display = clean_media_url(url)
        else:
            display = clean_media_url(_preview_source(post) or url)
        return MediaKind.IMAGE, display, None, thumbnail or display

    if _VIDEO_EXT.search(_path(url)):
        video_url = clean_media_url(url)
        return MediaKind.VIDEO, thumbnail or "", video_url, thumbnail

    parents = post.get("crosspost_parent_list") or []
    if parents:
        parent = classify_post(parents[0])
        if parent:
            kind, display, video_url, parent_thumb = parent
            return kind, display, video_url, thumbnail or parent_thumb

    if thumbnail:
        return MediaKind.IMAGE, clean_media_url(thumbnail), None, thumbnail

    return None


def _retry_after_seconds(value: Optional[str]) -> float:
    if not value:
        return DEFAULT_RETRY_AFTER
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(10.0, (when - datetime.now(timezone.utc)).total_seconds())


def describe_channel_error(name: str, error: Exception) -> str:
    """Map a fetch failure onto a message suitable for the UI."""
    if isinstance(error, APIRequestError):
        status = error.status_code or 0
        if status == 401:
            return f"Not authorised to read r/{name}. Please reconnect your account."
        if status == 403:
            return f"Unable to access r/{name} - private or quarantined?"
        if status == 404:
            return f"Subreddit r/{name} not found."
        if status == 429:
            return f"Reddit API rate limit hit for r/{name}."
        if status >= 500:
            return f"Reddit server error for r/{name}."
        return f"Failed to fetch r/{name} ({status})."
    if isinstance(error, ResponseFormatError):
        return f"Unexpected response from content source for r/{name}."
    if isinstance(error, requests.Timeout):
        return f"Timed out fetching r/{name}."
    if isinstance(error, requests.RequestException):
        return f"Network error fetching r/{name}."
    return f"Failed to fetch r/{name}: {error}"


class ContentAPIClient:
    """Fetches channel listings and maps them onto Items."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        user_agent: str = DEFAULT_USER_AGENT,
        *,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
        sort_types: Iterable[str] = SORT_TYPES,
        limit: int = LIMIT_PER_SORT,
        shuffle: bool = False,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.timeout = timeout
        self.sort_types = tuple(sort_types)
        self.limit = limit
        self.session = session or requests.Session()
        self.shuffle = shuffle
        self._rng = rng or random.Random()

    def _get_auth_headers(self, credential: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {credential}",
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
        }

    def fetch_channel(self, name: str, credential: str) -> ChannelResult:
        """
        Fetch one channel and normalise its posts.

        Never raises: every failure is reported through ``ChannelResult.error``.

        Args:
            name: Channel name without the ``r/`` prefix
            credential: Bearer token for the content API

        Returns:
            ChannelResult with the channel's items, or an error and no items.
            Items keep listing order unless the client was built with
            ``shuffle=True``; a partial 429 still carries ``retry_after``.
        """
        children: List[Dict[str, Any]] = []
        errors: List[Exception] = []
        retry_after: Optional[float] = None

        for sort in self.sort_types:
            try:
                children.extend(self._fetch_listing(name, sort, credential))
            except (APIRequestError, ResponseFormatError, requests.RequestException) as exc:
                logger.warning(f"Fetch failed for r/{name}/{sort}: {exc}")
                errors.append(exc)
                if isinstance(exc, APIRequestError) and exc.retry_after is not None:
                    retry_after = max(retry_after or 0.0, exc.retry_after)

        if errors and len(errors) == len(self.sort_types):
            return ChannelResult(name=name, error=describe_channel_error(name, errors[0]), retry_after=retry_after)

        try:
            items = self._build_items(name, children)
        except (AttributeError, TypeError, KeyError, ValueError) as exc:
            logger.error(f"Malformed listing for r/{name}: {exc}")
            return ChannelResult(name=name, error=describe_channel_error(name, ResponseFormatError(str(exc))))

        if self.shuffle:
            self._rng.shuffle(items)

        logger.info(f"Loaded {len(items)} items from r/{name}")
        return ChannelResult(name=name, items=tuple(items), retry_after=retry_after)

    def _fetch_listing(self, name: str, sort: str, credential: str) -> List[Dict[str, Any]]:
        separator = "&" if "?" in sort else "?"
        url = f"{self.base_url}/r/{name}/{sort}{separator}limit={self.limit}&raw_json=1"
        response = self.session.get(url, headers=self._get_auth_headers(credential), timeout=self.timeout)

        if response.status_code != 200:
            retry_after = None
            if response.status_code == 429:
                retry_after = _retry_after_seconds(response.headers.get("Retry-After"))
            raise APIRequestError(
                f"Fetch r/{name}/{sort} failed: {response.status_code}",
                status_code=response.status_code,
                retry_after=retry_after,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ResponseFormatError(f"Invalid JSON for r/{name}/{sort}") from exc

        listing = data.get("data") if isinstance(data, dict) else None
        if not isinstance(listing, dict):
            raise ResponseFormatError(f"Missing listing data for r/{name}/{sort}")
        children = listing.get("children")
        if not isinstance(children, list):
            raise ResponseFormatError(f"Missing listing children for r/{name}/{sort}")
        return children

    def _build_items(self, channel: str, children: List[Dict[str, Any]]) -> List[Item]:
        items: List[Item] = []
        seen = set()
        for child in children:
            post = child.get("data") if isinstance(child, dict) else None
            if not isinstance(post, dict):
                continue
            item = self._parse_post(channel, post)
            if item is None or item.id in seen:
                continue
            seen.add(item.id)
            items.append(item)
        return items

    def _parse_post(self, channel: str, post: Dict[str, Any]) -> Optional[Item]:
        if post.get("removed_by_category") or post.get("removed"):
            return None

        post_id = post.get("id")
        if not post_id:
            return None

        media = classify_post(post)
        if media is None:
            logger.debug("Skipping %s: no media", post_id)
            return None

        kind, display_url, video_url, thumbnail_url = media
        if not display_url and not video_url:
            return None

        permalink = post.get("permalink") or ""
        return Item(
            id=str(post_id),
            title=post.get("title") or "",
            channel=post.get("subreddit") or channel,
            url=display_url or video_url or "",
            kind=kind,
            video_url=video_url,
            thumbnail_url=thumbnail_url or None,
            created=float(post.get("created_utc") or 0.0),
            author=post.get("author") or "",
            nsfw=bool(post.get("over_18")),
            permalink=f"https://reddit.com{permalink}" if permalink.startswith("/") else permalink,
        )

    def close(self) -> None:
        self.session.close()
        logger.info("ContentAPIClient closed")
