"""Core data structures for the slideshow engine.

Contains the fundamental data models shared by the content adapter, the
transition controller, the caption coordinator and any UI built on top.
"""
import re
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union


class MediaKind(Enum):
    IMAGE = "image"
    VIDEO = "video"


class TransitionStyle(Enum):
    FADE = "fade"
    SLIDE = "slide"
    ZOOM = "zoom"
    FLIP = "flip"


# Seconds per phase. Renderers must read the same table.
TRANSITION_DURATIONS: Dict[TransitionStyle, float] = {
    TransitionStyle.FADE: 0.3,
    TransitionStyle.SLIDE: 0.3,
    TransitionStyle.ZOOM: 0.3,
    TransitionStyle.FLIP: 0.4,
}
DEFAULT_TRANSITION_DURATION = 0.3


def transition_duration(style: TransitionStyle) -> float:
    """Return the canonical phase duration for a transition style."""
    return TRANSITION_DURATIONS.get(style, DEFAULT_TRANSITION_DURATION)


class TransitionPhase(Enum):
    IDLE = "idle"
    EXITING = "exiting"
    ENTERING = "entering"


class Direction(Enum):
    NEXT = "next"
    PREVIOUS = "previous"


@dataclass(frozen=True)
class Item:
    """A single piece of media shown by the slideshow."""
    id: str
    title: str
    channel: str
    url: str
    kind: MediaKind = MediaKind.IMAGE
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    created: float = 0.0
    author: str = ""
    permalink: str = ""
    nsfw: bool = False
    error: Optional[str] = None

    @property
    def is_image(self) -> bool:
        return self.kind is MediaKind.IMAGE

    @property
    def is_video(self) -> bool:
        return self.kind is MediaKind.VIDEO


@dataclass(frozen=True)
class ChannelResult:
    """Outcome of fetching one channel during a poll cycle."""
    name: str
    items: Tuple[Item, ...] = ()
    error: Optional[str] = None
    retry_after: Optional[float] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class CaptionStatus(Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class CaptionRecord:
    """Caption state for whatever item is current."""
    status: CaptionStatus = CaptionStatus.IDLE
    text: str = ""
    error: str = ""
    item_id: Optional[str] = None

    @property
    def loading(self) -> bool:
        return self.status is CaptionStatus.LOADING


class ContentState(Enum):
    LOADING = "loading"
    READY = "ready"
    WARNING = "warning"
    EMPTY = "empty"
    NO_CHANNELS = "no_channels"
    CREDENTIAL_REQUIRED = "credential_required"
    RATE_LIMITED = "rate_limited"


BLOCKING_CONTENT_STATES = frozenset({
    ContentState.EMPTY,
    ContentState.NO_CHANNELS,
    ContentState.CREDENTIAL_REQUIRED,
})


@dataclass(frozen=True)
class ContentStatus:
    """User-facing summary of the last poll."""
    state: ContentState = ContentState.LOADING
    message: str = ""
    failed_channels: Tuple[str, ...] = ()

    @property
    def blocking(self) -> bool:
        return self.state in BLOCKING_CONTENT_STATES


MIN_INTERVAL = 3
MAX_INTERVAL = 30
DEFAULT_INTERVAL = 12

DEFAULT_SYSTEM_PROMPT = (
    "You are a witty commentator for a slideshow.\n"
    "Given an image or post from Reddit, provide a short,\n"
    "insightful, and sometimes humorous caption.\n"
    "Keep it concise (2-3 sentences maximum) and engaging.\n"
    "Acknowledge the subreddit it comes from when relevant."
)

DEFAULT_CHANNELS: Tuple[str, ...] = (
    "EarthPorn", "CityPorn", "SpacePorn", "itookapicture", "travel",
)


def clamp_interval(value: int) -> int:
    return max(MIN_INTERVAL, min(MAX_INTERVAL, int(value)))


_SEPARATORS = re.compile(r"[,;\n]+")
_PREFIX = re.compile(r"^/?r/", re.IGNORECASE)
_INVALID = re.compile(r"[^\w-]")


def parse_channel_names(text: str) -> List[str]:
    """
    Parse free-form user input into channel names.

    Accepts comma, semicolon or newline separated names, with or without
    an ``r/`` prefix.
    """
    if not text or not text.strip():
        return []

    names = []
    for chunk in _SEPARATORS.split(text):
        name = _PREFIX.sub("", chunk.strip())
        name = _INVALID.sub("", name.replace("/", ""))
        if name:
            names.append(name)
    return names


def normalize_channels(value: Union[str, Iterable[str]]) -> Tuple[str, ...]:
    """Channel names from a free-form string or a list, cleaned and de-duplicated in order."""
    entries = [value] if isinstance(value, str) else value
    names: List[str] = []
    for entry in entries:
        for name in parse_channel_names(str(entry)):
            if name not in names:
                names.append(name)
    return tuple(names)


@dataclass(frozen=True)
class Preferences:
    """Immutable snapshot of the user's slideshow settings."""
    channels: Tuple[str, ...] = DEFAULT_CHANNELS
    interval: int = DEFAULT_INTERVAL
    transition: TransitionStyle = TransitionStyle.FADE
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    api_key: Optional[str] = None

    def __post_init__(self) -> None:
        # Callers may pass lists, comma separated text and plain transition names.
        object.__setattr__(self, "channels", normalize_channels(self.channels))
        object.__setattr__(self, "interval", clamp_interval(self.interval))
        if not isinstance(self.transition, TransitionStyle):
            object.__setattr__(self, "transition", TransitionStyle(self.transition))
        if self.api_key is not None and not self.api_key.strip():
            object.__setattr__(self, "api_key", None)

    def with_updates(self, **partial: Any) -> "Preferences":
        """
        Return a copy with the given fields replaced.

        Raises:
            ValueError: for unknown field names or invalid transition styles
        """
        known = {f.name for f in fields(self)}
        unknown = set(partial) - known
        if unknown:
            raise ValueError(f"Unknown preference fields: {', '.join(sorted(unknown))}")
        return replace(self, **partial)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channels": list(self.channels),
            "interval": self.interval,
            "transition": self.transition.value,
            "system_prompt": self.system_prompt,
            "api_key": self.api_key,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Preferences":
        defaults = cls()
        return cls(
            channels=data.get("channels", defaults.channels),
            interval=data.get("interval", defaults.interval),
            transition=TransitionStyle(data.get("transition", defaults.transition.value)),
            system_prompt=data.get("system_prompt", defaults.system_prompt),
            api_key=data.get("api_key"),
        )


@dataclass(frozen=True)
class SlideshowSnapshot:
    """Read-only view of the whole engine for UIs and listeners."""
    item: Optional[Item]
    position: Optional[int]
    total: int
    phase: TransitionPhase
    direction: Direction
    paused: bool
    caption: CaptionRecord
    content: ContentStatus
    transition: TransitionStyle
    channels: Tuple[str, ...] = field(default_factory=tuple)



@dataclass(frozen=True)
class RetryPolicy:
    """Attempt cap and exponential backoff for retried operations."""
    max_attempts: int = 3
    backoff: float = 0.3
    multiplier: float = 2.0

    def delays(self) -> Tuple[float, ...]:
        """Delays to wait before each retry (one fewer than the attempts)."""
        return tuple(self.backoff * self.multiplier ** n for n in range(max(0, self.max_attempts - 1)))
