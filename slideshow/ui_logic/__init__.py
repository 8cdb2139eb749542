"""
UI logic package - portable across front ends.

Slideshow position and transition state, and caption state for the visible
item. No UI framework dependencies.
"""
from .slideshow_controller import SlideshowController, SlideshowEvent
from .caption_coordinator import CaptionCoordinator

__all__ = [
    'SlideshowController',
    'SlideshowEvent',
    'CaptionCoordinator',
]
