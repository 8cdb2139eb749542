import logging
import time
from functools import partial
from typing import Callable, List, Optional, Sequence, Tuple

from .caption_client import CaptionClient
from .content_client import ContentAPIClient
from .data_models import (
    CaptionRecord,
    ChannelResult,
    ContentState,
    ContentStatus,
    Preferences,
    RetryPolicy,
    SlideshowSnapshot,
)
from .errors import AuthenticationError, PreferencesError
from .playlist import aggregate, poll_interval, summarize
from .preferences import PreferencesStore
from .scheduler import Scheduler, TimerHandle
from .token_broker import TokenBroker
from .ui_logic.caption_coordinator import CaptionCoordinator
from .ui_logic.slideshow_controller import SlideshowController, SlideshowEvent

logger = logging.getLogger(__name__)

CONNECT_MESSAGE = "Please connect your Reddit account to view content"


class SlideshowCoordinator:
    """Wires preferences, channel polling, the controller and captions together."""

    def __init__(
        self,
        content_client: ContentAPIClient,
        caption_client: CaptionClient,
        token_broker: TokenBroker,
        preferences_store: PreferencesStore,
        scheduler: Scheduler,
        *,
        default_caption_key: Optional[str] = None,
        retry_policy: RetryPolicy = RetryPolicy(),
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.content_client = content_client
        self.caption_client = caption_client
        self.token_broker = token_broker
        self.preferences_store = preferences_store
        self.scheduler = scheduler
        self.default_caption_key = default_caption_key
        self.retry_policy = retry_policy
        self._sleep = sleep

        self.controller = SlideshowController(scheduler)
        self.captions = CaptionCoordinator(
            caption_client,
            scheduler,
            credential_provider=self._caption_credential,
        )
        self.controller.register_callback(self.captions.handle_slideshow_event)
        self.controller.register_callback(self._on_slideshow_event)
        self.captions.add_listener(self._on_caption_changed)

        self.preferences: Optional[Preferences] = None
        self.content_status = ContentStatus()
        self.persist_error: Optional[str] = None

        self._results: Tuple[ChannelResult, ...] = ()
        self._poll_timer: Optional[TimerHandle] = None
        self._poll_in_flight: Optional[Tuple[str, ...]] = None
        self._repoll_requested = False
        self._rate_limited_until = 0.0
        self._offline_notice_shown = False
        self._save_in_flight = False
        self._pending_save: Optional[Preferences] = None
        self._started = False
        self._callbacks: List[Callable[[], None]] = []

    def start(self) -> None:
        """Load preferences and start polling."""
        self._started = True
        self.apply_preferences(self.preferences_store.load())
        logger.info(f"Slideshow coordinator started with {len(self.preferences.channels)} channels")

    def stop(self) -> None:
        """Cancel polling and every controller timer."""
        self._started = False
        self._cancel_poll()
        self.controller.close()
        logger.info("Slideshow coordinator stopped")

    # ------------------------------------------------------------------
    def add_listener(self, callback: Callable[[], None]) -> None:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def remove_listener(self, callback: Callable[[], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_listeners(self) -> None:
        for callback in list(self._callbacks):
            try:
                callback()
            except Exception as exc:  # pragma: no cover - best effort
                logger.error(f"Listener error: {exc}")

    def _on_slideshow_event(self, event: SlideshowEvent) -> None:
        logger.debug("%s", event)
        self._notify_listeners()

    def _on_caption_changed(self, record: CaptionRecord) -> None:
        self._notify_listeners()

    # ------------------------------------------------------------------
    def apply_preferences(self, preferences: Preferences) -> None:
        """
        Push a preferences snapshot into the live components.

        Timing and style changes keep the current position; a new system
        prompt is used from the next caption request; a new channel list
        drops results for removed channels and triggers a poll.
        """
        previous = self.preferences
        self.preferences = preferences

        if previous is None or (previous.interval, previous.transition) != (preferences.interval, preferences.transition):
            self.controller.configure(interval=preferences.interval, style=preferences.transition)

        self.captions.configure(system_prompt=preferences.system_prompt)

        if previous is None or previous.channels != preferences.channels:
            by_name = {r.name: r for r in self._results}
            self._results = tuple(by_name[name] for name in preferences.channels if name in by_name)
            self._publish_playlist()
            self.refresh()

        self._notify_listeners()

    def update_preferences(self, **partial_update) -> Preferences:
        """
        Apply a partial settings change and persist it in the background.

        Raises:
            ValueError: for unknown fields or invalid values
        """
        current = self.preferences or self.preferences_store.load()
        updated = current.with_updates(**partial_update)
        self.apply_preferences(updated)
        self._pending_save = updated
        if not self._save_in_flight:
            self._start_save()
        return updated

    def switch_store(self, preferences_store: PreferencesStore) -> None:
        """Swap to another user's store, e.g. after a login change."""
        self.preferences_store = preferences_store
        self._pending_save = None
        self._offline_notice_shown = False
        self.persist_error = None
        self.apply_preferences(preferences_store.load())

    def _start_save(self) -> None:
        # One save at a time; edits made meanwhile collapse into the newest snapshot
        preferences, self._pending_save = self._pending_save, None
        self._save_in_flight = True
        self.scheduler.run_in_background(
            self._save_with_retry, self.preferences_store, preferences, on_done=self._on_saved
        )

    def _save_with_retry(self, store: PreferencesStore, preferences: Preferences) -> None:
        delays = self.retry_policy.delays()
        for attempt in range(len(delays) + 1):
            try:
                store.save(preferences)
                return
            except PreferencesError as exc:
                if attempt == len(delays):
                    raise
                logger.debug("Preferences save attempt %d failed: %s", attempt + 1, exc)
                self._sleep(delays[attempt])

    def _on_saved(self, result, error: Optional[BaseException]) -> None:
        self._save_in_flight = False
        if error is None:
            if self._offline_notice_shown:
                logger.info("Preferences saved again after earlier failures")
            self._offline_notice_shown = False
            self.persist_error = None
        else:
            self.persist_error = "Changes saved locally only."
            if not self._offline_notice_shown:
                self._offline_notice_shown = True
                logger.warning(f"Could not save preferences, keeping them locally: {error}")
            self._notify_listeners()

        if self._pending_save is not None:
            self._start_save()

    def _caption_credential(self) -> Optional[str]:
        if self.preferences and self.preferences.api_key:
            return self.preferences.api_key
        return self.default_caption_key

    # ------------------------------------------------------------------
    def refresh(self) -> None:
        """Poll every configured channel now, unless a poll is already running."""
        if not self._started or self.preferences is None:
            return
        self._cancel_poll()

        channels = self.preferences.channels
        if not channels:
            self._set_status(ContentStatus(
                ContentState.NO_CHANNELS,
                "No channels specified. Please add at least one channel.",
            ))
            return

        remaining = self._rate_limited_until - self.scheduler.time()
        if remaining > 0:
            self._set_status(ContentStatus(
                ContentState.RATE_LIMITED,
                f"Reddit API rate limited. Retrying in {int(remaining + 0.999)} seconds.",
            ))
            self._schedule_poll(remaining)
            return

        if self._poll_in_flight is not None:
            self._repoll_requested = True
            return

        if not self.token_broker.is_authenticated():
            self._credential_missing()
            return

        if not self.controller.items:
            self._set_status(ContentStatus(ContentState.LOADING, "Loading..."))

        self._poll_in_flight = channels
        self.scheduler.run_in_background(
            self._fetch_all,
            channels,
            on_done=partial(self._on_poll_done, channels),
        )

    def _fetch_all(self, channels: Sequence[str]) -> Tuple[ChannelResult, ...]:
        results = []
        for name in channels:
            token = self.token_broker.get_access_token()
            if not token:
                raise AuthenticationError("No content credential available")
            results.append(self.content_client.fetch_channel(name, token))
        return tuple(results)

    def _on_poll_done(self, channels: Tuple[str, ...], results, error: Optional[BaseException]) -> None:
        self._poll_in_flight = None
        if not self._started:
            return

        if channels != self.preferences.channels:
            logger.debug("Discarding poll for outdated channel list %s", channels)
            self._repoll_requested = False
            self.refresh()
            return

        if isinstance(error, AuthenticationError):
            self._credential_missing()
            return

        if error is not None:
            logger.error(f"Channel poll failed: {error}")
            if self.controller.items:
                self._set_status(ContentStatus(ContentState.WARNING, "Refresh failed, showing earlier content."))
            else:
                self._set_status(ContentStatus(ContentState.EMPTY, "Failed to load any channels. Please try again."))
        else:
            self._results = tuple(results)
            retry_after = max((r.retry_after for r in results if r.retry_after), default=0)
            if retry_after:
                self._rate_limited_until = self.scheduler.time() + retry_after
                logger.warning(f"Rate limited, pausing polls for {retry_after:.0f} seconds")
            self._publish_playlist()
            self._set_status(summarize(self._results))

        if self._repoll_requested:
            self._repoll_requested = False
            self.refresh()
        else:
            self._schedule_poll()

    def _credential_missing(self) -> None:
        self._results = ()
        self._publish_playlist()
        self._set_status(ContentStatus(ContentState.CREDENTIAL_REQUIRED, CONNECT_MESSAGE))
        self._schedule_poll()

    def _publish_playlist(self) -> None:
        self.controller.set_playlist(aggregate(self._results))

    def _schedule_poll(self, delay: Optional[float] = None) -> None:
        self._cancel_poll()
        if delay is None:
            delay = poll_interval(self.preferences.interval)
        self._poll_timer = self.scheduler.call_later(delay, self._on_poll_timer)

    def _on_poll_timer(self) -> None:
        self._poll_timer = None
        self.refresh()

    def _cancel_poll(self) -> None:
        if self._poll_timer is not None:
            self._poll_timer.cancel()
            self._poll_timer = None

    def _set_status(self, status: ContentStatus) -> None:
        if status != self.content_status:
            self.content_status = status
            if status.state is not ContentState.READY:
                logger.info("Content status: %s %s", status.state.value, status.message)
            self._notify_listeners()

    # ------------------------------------------------------------------
    def next(self) -> bool:
        return self.controller.next()

    def previous(self) -> bool:
        return self.controller.previous()

    def pause(self) -> None:
        self.controller.pause()

    def resume(self) -> None:
        self.controller.resume()

    def toggle_pause(self) -> bool:
        """Flip the paused state; returns the new value."""
        if self.controller.paused:
            self.controller.resume()
        else:
            self.controller.pause()
        return self.controller.paused

    def regenerate_caption(self) -> bool:
        return self.captions.regenerate()

    @property
    def offline_notice_shown(self) -> bool:
        return self._offline_notice_shown

    def snapshot(self) -> SlideshowSnapshot:
        prefs = self.preferences or Preferences()
        return SlideshowSnapshot(
            item=self.controller.current_item,
            position=self.controller.position,
            total=self.controller.total,
            phase=self.controller.phase,
            direction=self.controller.direction,
            paused=self.controller.paused,
            caption=self.captions.record,
            content=self.content_status,
            transition=prefs.transition,
            channels=prefs.channels,
        )
