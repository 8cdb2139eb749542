"""
Caption state for the visible slideshow item.

Requests a caption whenever the current item changes and keeps one
CaptionRecord. Results are applied only while the item they were requested
for is still current; anything else is dropped.
"""
import logging
from functools import partial
from typing import Any, Callable, List, Optional

from ..caption_client import CaptionClient
from ..data_models import CaptionRecord, CaptionStatus, Item
from ..errors import CaptionError
from ..scheduler import Scheduler
from .slideshow_controller import SlideshowEvent

logger = logging.getLogger(__name__)

CAPTION_TIMEOUT = 10.0  # seconds
NO_CREDENTIAL_MESSAGE = "Captions unavailable - no API key configured."

CredentialProvider = Callable[[], Optional[str]]
CaptionCallback = Callable[[CaptionRecord], None]


class CaptionCoordinator:
    """Keeps the caption record for whatever item the slideshow currently shows."""

    def __init__(
        self,
        client: CaptionClient,
        scheduler: Scheduler,
        *,
        system_prompt: str = "",
        credential_provider: CredentialProvider = lambda: None,
        timeout: float = CAPTION_TIMEOUT,
    ) -> None:
        self._client = client
        self._scheduler = scheduler
        self.system_prompt = system_prompt
        self._credential_provider = credential_provider
        self.timeout = timeout

        self._current: Optional[Item] = None
        self._record = CaptionRecord()
        self._callbacks: List[CaptionCallback] = []
        self.requests_issued = 0

    # ------------------------------------------------------------------
    def add_listener(self, callback: CaptionCallback) -> None:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def remove_listener(self, callback: CaptionCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    @property
    def record(self) -> CaptionRecord:
        return self._record

    @property
    def current_item(self) -> Optional[Item]:
        return self._current

    def configure(self, *, system_prompt: Optional[str] = None,
                  credential_provider: Optional[CredentialProvider] = None) -> None:
        """Update settings used by the next request; the current caption is left alone."""
        if system_prompt is not None:
            self.system_prompt = system_prompt
        if credential_provider is not None:
            self._credential_provider = credential_provider

    # ------------------------------------------------------------------
    def handle_slideshow_event(self, event: SlideshowEvent) -> None:
        """Controller callback; only item changes matter here."""
        if event.kind == "item_changed":
            self.on_item_changed(event.item)

    def on_item_changed(self, item: Optional[Item]) -> None:
        self._current = item
        if item is None:
            self._set_record(CaptionRecord())
            return
        self._request(item, keep_text=False)

    def regenerate(self) -> bool:
        """
        Re-request a caption for the current item, even if one is loading.

        Returns:
            True if a request was issued
        """
        if self._current is None:
            return False
        return self._request(self._current, keep_text=True)

    # ------------------------------------------------------------------
    def _request(self, item: Item, *, keep_text: bool) -> bool:
        credential = self._credential_provider()
        if not credential:
            self._set_record(CaptionRecord(
                status=CaptionStatus.UNAVAILABLE,
                error=NO_CREDENTIAL_MESSAGE,
                item_id=item.id,
            ))
            return False

        text = self._record.text if keep_text and self._record.item_id == item.id else ""
        self._set_record(CaptionRecord(status=CaptionStatus.LOADING, text=text, item_id=item.id))

        self.requests_issued += 1
        logger.debug("Requesting caption for %s", item.id)
        self._scheduler.run_in_background(
            self._client.generate_caption,
            item,
            self.system_prompt,
            credential,
            on_done=partial(self._on_caption_done, item.id),
            timeout=self.timeout,
        )
        return True

    def _on_caption_done(self, item_id: str, result: Any, error: Optional[BaseException]) -> None:
        current_id = self._current.id if self._current else None
        if current_id != item_id:
            logger.debug("Discarding stale caption for %s (current %s)", item_id, current_id)
            return

        if error is None:
            self._set_record(CaptionRecord(status=CaptionStatus.READY, text=str(result), item_id=item_id))
            return

        if isinstance(error, CaptionError):
            message = str(error)
        elif isinstance(error, TimeoutError):
            message = "Caption request timed out."
        else:
            logger.error(f"Unexpected caption failure for {item_id}: {error}")
            message = "Failed to generate caption"
        self._set_record(CaptionRecord(status=CaptionStatus.ERROR, error=message, item_id=item_id))

    def _set_record(self, record: CaptionRecord) -> None:
        if record == self._record:
            return
        self._record = record
        for callback in list(self._callbacks):
            try:
                callback(record)
            except Exception as exc:  # pragma: no cover - best effort
                logger.error(f"Caption listener error: {exc}")
