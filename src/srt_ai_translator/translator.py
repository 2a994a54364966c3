"""Per-entry translation with bounded, fixed-delay retry."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from .cancellation import CancellationToken
from .config import ApiConfig, RunOptions
from .llm_client import ChatStreamClient
from .models import SubtitleEntry, TranslationError
from .progress import ProgressObserver
from .prompt_builder import build_prompt, render_system_prompt

logger = logging.getLogger(__name__)


async def translate_entry(
    entry: SubtitleEntry,
    all_entries: Sequence[SubtitleEntry],
    position: int,
    client: ChatStreamClient,
    api_config: ApiConfig,
    options: RunOptions,
    token: CancellationToken,
    observer: Optional[ProgressObserver] = None,
) -> SubtitleEntry:
    """
    Translate one entry, retrying retryable failures.

    Attempts are numbered 0..options.max_retries. Only errors classified
    as retryable are retried, and only when auto-retry is enabled. If the
    token is cancelled before an attempt, during the delay, or while
    streaming, the entry ends with the last genuine error, or an abort
    error if there was none.

    The entry is updated in place (translated_text / error) and returned.
    """
    observer = observer or ProgressObserver()

    if options.max_retries < 0:
        raise ValueError(f"Max retries must be >= 0, got {options.max_retries}")

    entry.reset()
    last_error: Optional[TranslationError] = None

    system_prompt = render_system_prompt(
        api_config.system_prompt_template,
        options.source_language,
        options.target_language,
    )
    prompt = build_prompt(
        entry,
        all_entries,
        position,
        options.preceding_context_count,
        options.succeeding_context_count,
        options.context_enabled,
    )

    def on_delta(accumulated: str) -> None:
        entry.translated_text = accumulated
        observer.on_entry_update(entry.id, accumulated, None)

    for attempt in range(options.max_retries + 1):
        if token.cancelled:
            entry.error = last_error or TranslationError.abort(
                "Translation process aborted before/during retry attempt."
            )
            break

        if attempt > 0:
            logger.info(
                f"Retrying entry {entry.id}, attempt {attempt}/{options.max_retries} "
                f"after {options.retry_delay:g}s delay..."
            )
            if await token.sleep(options.retry_delay):
                entry.error = last_error or TranslationError.abort(
                    "Translation process aborted during retry delay."
                )
                break
            entry.translated_text = ""

        # Clear previous attempt's error before new try
        entry.error = None
        observer.on_attempt(entry.id, attempt)
        observer.on_entry_update(entry.id, entry.translated_text, None)

        outcome = await client.send(prompt, system_prompt, token, on_delta=on_delta)
        entry.translated_text = outcome.text

        if outcome.ok:
            logger.debug(f"Entry {entry.id} translated on attempt {attempt}")
            return entry

        error = outcome.error
        if error.aborted:
            entry.error = last_error or error
            break

        last_error = error
        entry.error = error

        if options.auto_retry_enabled and error.retryable and attempt < options.max_retries:
            logger.warning(f"Entry {entry.id} failed with retryable error ({error.describe()}), will retry")
            observer.on_entry_update(entry.id, entry.translated_text, error)
            observer.on_retry_scheduled(entry.id, attempt + 1, options.retry_delay)
            continue

        break

    logger.warning(f"Entry {entry.id} failed: {entry.error.describe()}")
    return entry
