"""Progress observers for translation batches."""

from __future__ import annotations

import logging
from typing import List, Optional, Set

from tqdm import tqdm

from .models import BatchStatus, SubtitleEntry, TranslationError

logger = logging.getLogger(__name__)


class ProgressObserver:
    """
    Receives pipeline events. All hooks are no-ops by default.

    Hooks are called from the batch's own task, one event at a time, in
    the order things happen.
    """

    def on_entry_update(
        self,
        entry_id: int,
        text: str,
        error: Optional[TranslationError],
    ) -> None:
        """Partial text while streaming, then the final text or error."""

    def on_attempt(self, entry_id: int, attempt: int) -> None:
        """A new attempt (0-based) is about to be sent."""

    def on_retry_scheduled(self, entry_id: int, next_attempt: int, delay: float) -> None:
        """An attempt failed with a retryable error; the next one starts after delay seconds."""

    def on_entry_finished(self, entry: SubtitleEntry) -> None:
        """The entry reached its final state for this batch."""

    def on_batch_status(self, status: BatchStatus, current_entry_id: Optional[int]) -> None:
        """Batch status or the current entry changed."""


class LoggingProgressObserver(ProgressObserver):
    """Logs every event at debug level."""

    def on_entry_update(self, entry_id, text, error):
        if error is not None:
            logger.debug(f"#{entry_id} error: {error.describe()}")
        else:
            logger.debug(f"#{entry_id} text ({len(text)} chars)")

    def on_attempt(self, entry_id, attempt):
        logger.debug(f"#{entry_id} attempt {attempt}")

    def on_retry_scheduled(self, entry_id, next_attempt, delay):
        logger.debug(f"#{entry_id} retry {next_attempt} in {delay:g}s")

    def on_batch_status(self, status, current_entry_id):
        logger.debug(f"Batch {status.value}, current entry: {current_entry_id}")


class TqdmProgressObserver(ProgressObserver):
    """Console progress bar: one tick per finished entry."""

    def __init__(self, total: int, desc: str = "Translating"):
        self.total = total
        self.desc = desc
        self.failed: Set[int] = set()
        self._bar: Optional[tqdm] = None

    def _ensure_bar(self) -> tqdm:
        if self._bar is None:
            self._bar = tqdm(total=self.total, desc=self.desc, unit="entry")
        return self._bar

    def on_retry_scheduled(self, entry_id, next_attempt, delay):
        self._ensure_bar().set_postfix(entry=entry_id, retry=next_attempt, failed=len(self.failed))

    def on_entry_finished(self, entry):
        if entry.error is not None:
            self.failed.add(entry.id)
        else:
            self.failed.discard(entry.id)
        bar = self._ensure_bar()
        bar.update(1)
        bar.set_postfix(failed=len(self.failed))

    def on_batch_status(self, status, current_entry_id):
        if status is not BatchStatus.RUNNING:
            self.close()

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None


class MultiProgressObserver(ProgressObserver):
    """Forwards every event to each wrapped observer, in order."""

    def __init__(self, *observers: ProgressObserver):
        self.observers: List[ProgressObserver] = list(observers)

    def on_entry_update(self, entry_id, text, error):
        for observer in self.observers:
            observer.on_entry_update(entry_id, text, error)

    def on_attempt(self, entry_id, attempt):
        for observer in self.observers:
            observer.on_attempt(entry_id, attempt)

    def on_retry_scheduled(self, entry_id, next_attempt, delay):
        for observer in self.observers:
            observer.on_retry_scheduled(entry_id, next_attempt, delay)

    def on_entry_finished(self, entry):
        for observer in self.observers:
            observer.on_entry_finished(entry)

    def on_batch_status(self, status, current_entry_id):
        for observer in self.observers:
            observer.on_batch_status(status, current_entry_id)
