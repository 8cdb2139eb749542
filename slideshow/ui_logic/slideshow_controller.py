"""
Position and transition state for the slideshow.

Owns the current position in the playlist, drives the timed auto-advance
and the exit/enter transition phases, and tells listeners when the visible
item changes. No UI framework dependencies; all timing goes through a
Scheduler.
"""
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from ..data_models import (
    Direction,
    Item,
    TransitionPhase,
    TransitionStyle,
    transition_duration,
)
from ..scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


@dataclass
class SlideshowEvent:
    """Represents a controller state change."""
    kind: str  # "item_changed", "phase_changed", "paused_changed"
    item: Optional[Item]
    position: Optional[int]
    phase: TransitionPhase
    direction: Direction

    def __str__(self) -> str:
        title = self.item.title if self.item else None
        return f"SlideshowEvent(kind={self.kind}, position={self.position}, item='{title}', phase={self.phase.value})"


# Type alias for controller event callbacks
SlideshowCallback = Callable[[SlideshowEvent], None]


class SlideshowController:
    """
    Rotating position over a playlist with serialized transitions.

    A transition runs EXITING -> (position commit) -> ENTERING -> IDLE, each
    phase lasting the canonical duration for the configured style. Only one
    transition can be in flight; navigation requests made meanwhile, or with
    fewer than two items, are ignored. The auto-advance timer is measured
    from the end of the last transition.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        interval: float = 12,
        style: TransitionStyle = TransitionStyle.FADE,
        paused: bool = False,
    ) -> None:
        """
        Initialize the controller.

        Args:
            scheduler: Deferred-callback primitive for all timers
            interval: Seconds between automatic advances; 0 disables
            style: Transition style, selects the phase duration
            paused: Start with auto-advance suspended
        """
        self._scheduler = scheduler
        self.interval = interval
        self.style = style
        self._paused = paused

        self._items: Tuple[Item, ...] = ()
        self._position = 0
        self._phase = TransitionPhase.IDLE
        self._direction = Direction.NEXT
        self._target: Optional[int] = None

        self._phase_timer: Optional[TimerHandle] = None
        self._advance_timer: Optional[TimerHandle] = None
        self._last_item: Optional[Item] = None
        self._callbacks: List[SlideshowCallback] = []
        self._closed = False

    # ------------------------------------------------------------------
    def register_callback(self, callback: SlideshowCallback) -> None:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: SlideshowCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    # ------------------------------------------------------------------
    @property
    def items(self) -> Tuple[Item, ...]:
        return self._items

    @property
    def total(self) -> int:
        return len(self._items)

    @property
    def position(self) -> Optional[int]:
        """Current index, or None when the playlist is empty."""
        return self._position if self._items else None

    @property
    def current_item(self) -> Optional[Item]:
        return self._items[self._position] if self._items else None

    @property
    def phase(self) -> TransitionPhase:
        return self._phase

    @property
    def direction(self) -> Direction:
        return self._direction

    @property
    def is_transitioning(self) -> bool:
        return self._phase is not TransitionPhase.IDLE

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def auto_advance_armed(self) -> bool:
        return self._advance_timer is not None

    # ------------------------------------------------------------------
    def next(self) -> bool:
        """
        Start a transition to the following item, wrapping at the end.

        Returns:
            True if a transition was started
        """
        return self._begin_transition(Direction.NEXT)

    def previous(self) -> bool:
        """
        Start a transition to the preceding item, wrapping at the start.

        Returns:
            True if a transition was started
        """
        return self._begin_transition(Direction.PREVIOUS)

    def pause(self) -> None:
        """Stop auto-advance. A transition already running is allowed to finish."""
        if self._paused:
            return
        self._paused = True
        self._cancel_advance()
        self._notify("paused_changed")

    def resume(self) -> None:
        if not self._paused:
            return
        self._paused = False
        self._reschedule_advance()
        self._notify("paused_changed")

    def set_playlist(self, items: Sequence[Item]) -> None:
        """
        Replace the playlist without animating.

        The position is kept when still in range and clamped to the last
        index otherwise.
        """
        self._items = tuple(items)
        if not self._items:
            self._position = 0
        elif self._position >= len(self._items):
            self._position = len(self._items) - 1

        if len(self._items) < 2:
            self._cancel_advance()
        elif self._advance_timer is None:
            self._reschedule_advance()

        self._notify_if_item_changed()

    def configure(self, *, interval: Optional[float] = None,
                  style: Optional[TransitionStyle] = None) -> None:
        """
        Apply new timing settings without moving the position.

        A new style applies from the next phase; a new interval restarts the
        pending auto-advance countdown.
        """
        if style is not None:
            self.style = style
        if interval is not None and interval != self.interval:
            self.interval = interval
            self._reschedule_advance()

    def close(self) -> None:
        """Cancel every pending timer; the controller stays inert afterwards."""
        self._closed = True
        self._cancel_advance()
        if self._phase_timer is not None:
            self._phase_timer.cancel()
            self._phase_timer = None
        self._phase = TransitionPhase.IDLE
        self._target = None

    # ------------------------------------------------------------------
    def _begin_transition(self, direction: Direction) -> bool:
        if self._closed or self.is_transitioning or len(self._items) < 2:
            logger.debug("Ignoring %s request (phase=%s, items=%d)",
                         direction.value, self._phase.value, len(self._items))
            return False

        total = len(self._items)
        if direction is Direction.NEXT:
            self._target = (self._position + 1) % total
        else:
            self._target = (self._position - 1 + total) % total

        self._cancel_advance()
        self._direction = direction
        self._phase = TransitionPhase.EXITING
        self._phase_timer = self._scheduler.call_later(transition_duration(self.style), self._on_exit_complete)
        self._notify("phase_changed")
        return True

    def _on_exit_complete(self) -> None:
        self._phase_timer = None
        target = self._target if self._target is not None else self._position
        self._target = None

        # The playlist may have shrunk while the exit phase was running.
        if self._items:
            self._position = min(target, len(self._items) - 1)
        else:
            self._position = 0

        self._phase = TransitionPhase.ENTERING
        self._notify_if_item_changed()
        self._notify("phase_changed")
        self._phase_timer = self._scheduler.call_later(transition_duration(self.style), self._on_enter_complete)

    def _on_enter_complete(self) -> None:
        self._phase_timer = None
        self._phase = TransitionPhase.IDLE
        self._notify("phase_changed")
        self._reschedule_advance()

    def _on_advance_timer(self) -> None:
        self._advance_timer = None
        self._begin_transition(Direction.NEXT)

    def _can_auto_advance(self) -> bool:
        return (
            not self._closed
            and not self._paused
            and not self.is_transitioning
            and len(self._items) >= 2
            and self.interval > 0
        )

    def _reschedule_advance(self) -> None:
        self._cancel_advance()
        if self._can_auto_advance():
            self._advance_timer = self._scheduler.call_later(self.interval, self._on_advance_timer)

    def _cancel_advance(self) -> None:
        if self._advance_timer is not None:
            self._advance_timer.cancel()
            self._advance_timer = None

    # ------------------------------------------------------------------
    def _notify_if_item_changed(self) -> None:
        item = self.current_item
        if item != self._last_item:
            self._last_item = item
            self._notify("item_changed")

    def _notify(self, kind: str) -> None:
        event = SlideshowEvent(
            kind=kind,
            item=self.current_item,
            position=self.position,
            phase=self._phase,
            direction=self._direction,
        )
        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception as e:
                # Log error but don't let callback failures break the slideshow
                logger.error(f"Slideshow callback error: {e}")

    def get_state_summary(self) -> dict[str, str | int | bool | None]:
        """
        Get summary of controller state for debugging.

        Returns:
            Dictionary with controller state information
        """
        return {
            'position': self.position,
            'total': len(self._items),
            'phase': self._phase.value,
            'direction': self._direction.value,
            'paused': self._paused,
            'auto_advance_armed': self.auto_advance_armed,
            'callback_count': len(self._callbacks),
        }
