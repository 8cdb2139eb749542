"""Persistence backends for slideshow preferences."""
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from .data_models import Preferences
from .errors import PreferencesError

logger = logging.getLogger(__name__)


class PreferencesStore(ABC):
    """Read/write interface the coordinator consumes preferences through."""

    @abstractmethod
    def load(self) -> Preferences:
        ...

    @abstractmethod
    def save(self, preferences: Preferences) -> None:
        """
        Persist a snapshot.

        Raises:
            PreferencesError: if the snapshot could not be stored
        """


class InMemoryPreferencesStore(PreferencesStore):

    def __init__(self, preferences: Optional[Preferences] = None) -> None:
        self._preferences = preferences or Preferences()
        self.save_count = 0

    def load(self) -> Preferences:
        return self._preferences

    def save(self, preferences: Preferences) -> None:
        self._preferences = preferences
        self.save_count += 1


class JsonPreferencesStore(PreferencesStore):
    """Stores preferences as a JSON document on disk."""

    def __init__(self, path: Path, defaults: Optional[Preferences] = None) -> None:
        self.path = Path(path)
        self.defaults = defaults or Preferences()

    def load(self) -> Preferences:
        if not self.path.exists():
            logger.info("No preferences at %s, using defaults", self.path)
            return self.defaults

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return Preferences.from_dict(data)
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Failed to load preferences from {self.path}: {e}")
            return self.defaults

    def save(self, preferences: Preferences) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(preferences.to_dict(), indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise PreferencesError(f"Failed to save preferences to {self.path}: {e}") from e
        logger.debug("Saved preferences to %s", self.path)
