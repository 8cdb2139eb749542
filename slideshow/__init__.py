"""
Slideshow engine.

Polls media channels, rotates through the items with timed transitions and
captions whatever is on screen.
"""
from .data_models import (
    CaptionRecord,
    CaptionStatus,
    ChannelResult,
    ContentState,
    ContentStatus,
    Item,
    MediaKind,
    Preferences,
    TransitionStyle,
)
from .slideshow_coordinator import SlideshowCoordinator

__all__ = [
    'CaptionRecord',
    'CaptionStatus',
    'ChannelResult',
    'ContentState',
    'ContentStatus',
    'Item',
    'MediaKind',
    'Preferences',
    'SlideshowCoordinator',
    'TransitionStyle',
]
