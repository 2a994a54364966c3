"""Prompt construction: system prompt rendering and context windows."""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence

from .models import SubtitleEntry

logger = logging.getLogger(__name__)


LANGUAGE_OPTIONS: Dict[str, str] = {
    "auto": "Auto Detect",
    "en": "English",
    "zh-CN": "Chinese (Simplified)",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "ja": "Japanese",
    "ko": "Korean",
}

FALLBACK_SOURCE_LABEL = "the original language"
FALLBACK_TARGET_LABEL = "English"

PRECEDING_HEADER = "Context (Previous):"
TARGET_HEADER = "Translate THIS Subtitle:"
SUCCEEDING_HEADER = "Context (Succeeding):"
SECTION_DELIMITER = "---"


def source_language_label(code: str) -> str:
    if code == "auto":
        return FALLBACK_SOURCE_LABEL
    return LANGUAGE_OPTIONS.get(code, FALLBACK_SOURCE_LABEL)


def target_language_label(code: str) -> str:
    if code == "auto":
        return FALLBACK_TARGET_LABEL
    return LANGUAGE_OPTIONS.get(code, FALLBACK_TARGET_LABEL)


def render_system_prompt(template: str, source_language: str, target_language: str) -> str:
    """Substitute language labels into the system prompt template."""
    return (
        template
        .replace("{source_language}", source_language_label(source_language))
        .replace("{target_language}", target_language_label(target_language))
    )


def build_prompt(
    entry: SubtitleEntry,
    all_entries: Sequence[SubtitleEntry],
    position: int,
    preceding_count: int,
    succeeding_count: int,
    context_enabled: bool,
) -> str:
    """
    Build the user prompt for one entry.

    The entry is located in all_entries by id, not by position: retry
    batches iterate over a filtered subset, so position is only the index
    within the current batch.

    Args:
        entry: Entry to translate
        all_entries: Full, ordered document
        position: Index of the entry within the current batch
        preceding_count: Context lines to include before the entry
        succeeding_count: Context lines to include after the entry
        context_enabled: Whether contextual translation is on

    Returns:
        Prompt text; just entry.text when no context applies
    """
    if not context_enabled or (preceding_count <= 0 and succeeding_count <= 0):
        return entry.text

    index = next((i for i, e in enumerate(all_entries) if e.id == entry.id), -1)
    if index == -1:
        logger.warning(
            f"Entry {entry.id} (batch position {position}) not found in document, "
            f"translating without context"
        )
        return entry.text

    lines: List[str] = []

    if preceding_count > 0:
        lines.append(PRECEDING_HEADER)
        for prev in all_entries[max(0, index - preceding_count):index]:
            lines.append(prev.text)
        lines.append(SECTION_DELIMITER)

    lines.append(TARGET_HEADER)
    lines.append(entry.text)

    if succeeding_count > 0:
        lines.append(SECTION_DELIMITER)
        lines.append(SUCCEEDING_HEADER)
        for nxt in all_entries[index + 1:index + 1 + succeeding_count]:
            lines.append(nxt.text)

    return "\n".join(lines).strip()


def build_messages(system_prompt: str, user_prompt: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]
