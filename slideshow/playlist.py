"""
Playlist aggregation.

Flattens per-channel poll results into the ordered playlist and summarises
the poll for the UI. Pure functions; no I/O.
"""
from typing import Iterable, Sequence, Tuple

from .data_models import ChannelResult, ContentState, ContentStatus, Item, parse_channel_names

# Channels are never polled faster than this, whatever the interval.
MIN_POLL_INTERVAL = 30.0


def aggregate(results: Iterable[ChannelResult]) -> Tuple[Item, ...]:
    """
    Flatten channel results into one playlist.

    Items keep channel-declaration order, then item order. Nothing is
    sorted or de-duplicated, so the playlist length always equals the sum
    of the per-channel item counts.
    """
    return tuple(item for result in results for item in result.items)


def summarize(results: Sequence[ChannelResult]) -> ContentStatus:
    """
    Derive the content status shown next to the slideshow.

    Args:
        results: Channel results from one poll cycle

    Returns:
        EMPTY (blocking) when every channel failed and nothing loaded,
        WARNING (non-blocking) when only some channels failed, READY otherwise
    """
    failed = tuple(r.name for r in results if r.failed)
    has_items = any(r.items for r in results)

    if not results:
        return ContentStatus(ContentState.NO_CHANNELS, "No channels configured.")

    if failed and not has_items and len(failed) == len(results):
        details = "; ".join(r.error for r in results if r.error)
        return ContentStatus(
            ContentState.EMPTY,
            f"Failed to load any channels. {details}".strip(),
            failed,
        )

    if not has_items:
        return ContentStatus(ContentState.EMPTY, "No media found in the selected channels.", failed)

    if failed:
        return ContentStatus(
            ContentState.WARNING,
            f"Some channels could not be loaded: {', '.join(failed)}",
            failed,
        )

    return ContentStatus(ContentState.READY)


def poll_interval(slide_interval: float) -> float:
    """Refresh cadence for a given slide interval (twice the interval, 30 s floor)."""
    return max(MIN_POLL_INTERVAL, 2.0 * slide_interval)


__all__ = [
    'MIN_POLL_INTERVAL',
    'aggregate',
    'parse_channel_names',
    'poll_interval',
    'summarize',
]
