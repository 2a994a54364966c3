"""Sequential, cancellable translation batches."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import httpx

from .cancellation import CancellationToken
from .config import ApiConfig, RunOptions
from .llm_client import ChatStreamClient, create_client
from .models import BatchStatus, SubtitleEntry
from .progress import ProgressObserver
from .translator import translate_entry

logger = logging.getLogger(__name__)


class BatchAlreadyRunning(RuntimeError):
    """Raised when a batch is started while another one is running."""


@dataclass
class BatchState:
    """Observable run state of the orchestrator."""
    status: BatchStatus = BatchStatus.IDLE
    current_entry_id: Optional[int] = None
    token: Optional[CancellationToken] = None


@dataclass
class BatchSummary:
    """Outcome counts for one batch."""
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: bool = False
    failed_ids: List[int] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return self.succeeded + self.failed


class BatchTranslator:
    """
    Drives translate_entry over a list of entries, one at a time.

    Two entry points share the same per-entry machinery:

    - run_all: every entry, in document order
    - retry_failed: only entries that currently carry an error, with
      context still taken from the full document

    Settings are passed in as frozen ApiConfig / RunOptions values, so
    changing live settings never affects a batch in flight.
    """

    def __init__(
        self,
        observer: Optional[ProgressObserver] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.observer = observer or ProgressObserver()
        self.state = BatchState()
        self._http_client = http_client
        self._timeout = timeout

    @property
    def is_running(self) -> bool:
        return self.state.status is BatchStatus.RUNNING

    def stop(self) -> None:
        """
        Request cancellation of the running batch.

        In-flight work is not interrupted; it ends at its next checkpoint.
        """
        token = self.state.token
        if token is None or token.cancelled:
            return
        logger.info("Stop translation signal sent.")
        token.cancel()

    async def run_all(
        self,
        entries: Sequence[SubtitleEntry],
        api_config: ApiConfig,
        options: RunOptions,
    ) -> BatchSummary:
        """Translate every entry in order, discarding earlier results."""
        self._check_can_start(options)
        for entry in entries:
            entry.reset()
        return await self._run(list(entries), entries, api_config, options)

    async def retry_failed(
        self,
        entries: Sequence[SubtitleEntry],
        api_config: ApiConfig,
        options: RunOptions,
    ) -> BatchSummary:
        """Re-translate only the entries that currently carry an error."""
        self._check_can_start(options)
        to_retry = [e for e in entries if e.failed]
        if not to_retry:
            logger.info("No failed entries to retry.")
            return BatchSummary()

        logger.info(f"Retrying entries: {[e.id for e in to_retry]}")
        for entry in to_retry:
            entry.reset()
            self.observer.on_entry_update(entry.id, "", None)
        return await self._run(to_retry, entries, api_config, options)

    def _check_can_start(self, options: RunOptions) -> None:
        if self.is_running:
            raise BatchAlreadyRunning("A translation batch is already running")
        error = options.validate()
        if error:
            raise ValueError(error)

    def _set_status(self, status: BatchStatus, current_entry_id: Optional[int] = None) -> None:
        self.state.status = status
        self.state.current_entry_id = current_entry_id
        self.observer.on_batch_status(status, current_entry_id)

    async def _run(
        self,
        batch: List[SubtitleEntry],
        all_entries: Sequence[SubtitleEntry],
        api_config: ApiConfig,
        options: RunOptions,
    ) -> BatchSummary:
        self._check_can_start(options)

        openai_client = create_client(api_config, http_client=self._http_client, timeout=self._timeout)
        client = ChatStreamClient(api_config, openai_client)

        token = CancellationToken()
        self.state.token = token
        self._set_status(BatchStatus.RUNNING)

        summary = BatchSummary(total=len(batch))

        logger.info(f"Translating {len(batch)} entries with {api_config.model_name}...")

        try:
            for position, entry in enumerate(batch):
                if token.cancelled:
                    logger.info("Translation aborted by user.")
                    break

                self._set_status(BatchStatus.RUNNING, entry.id)
                await translate_entry(
                    entry,
                    all_entries,
                    position,
                    client,
                    api_config,
                    options,
                    token,
                    self.observer,
                )

                self.observer.on_entry_update(entry.id, entry.translated_text, entry.error)
                self.observer.on_entry_finished(entry)

                if entry.error is None:
                    summary.succeeded += 1
                else:
                    summary.failed += 1
                    summary.failed_ids.append(entry.id)
        finally:
            if self._http_client is None:
                await client.close()
            summary.cancelled = token.cancelled
            self.state.token = None
            self._set_status(BatchStatus.CANCELLED if token.cancelled else BatchStatus.IDLE)

        logger.info(
            f"Batch finished: {summary.succeeded} succeeded, {summary.failed} failed"
            f"{' (cancelled)' if summary.cancelled else ''}"
        )
        return summary
