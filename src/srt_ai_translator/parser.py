"""SRT file parsing and saving utilities."""

from __future__ import annotations

import re
import logging
from pathlib import Path
from typing import List, Sequence, Optional

from .config import RECOVERY_LOOKAHEAD, SUPPORTED_EXTENSIONS
from .models import SubtitleEntry

logger = logging.getLogger(__name__)

TIMING_SEPARATOR = "-->"

# Leading integer, read the way a lenient integer parse would ("12 ", "+3")
_INDEX_RE = re.compile(r"^\s*([+-]?\d+)")
_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")


class SrtParseError(ValueError):
    """Raised when non-empty content yields no subtitle entries."""


def _parse_index(line: str) -> Optional[int]:
    match = _INDEX_RE.match(line)
    if not match:
        return None
    return int(match.group(1))


def _is_block_start(lines: List[str], i: int) -> bool:
    """True if lines[i] is an index line followed by a timing line."""
    if _parse_index(lines[i]) is None:
        return False
    return i + 1 < len(lines) and TIMING_SEPARATOR in lines[i + 1]


def _recover(lines: List[str], i: int, max_lookahead: int) -> Optional[int]:
    """
    Scan forward for the next block start.

    Returns:
        Line number of the next block, or None if none was found within
        max_lookahead lines.
    """
    skipped = 0
    while i < len(lines):
        if _is_block_start(lines, i):
            return i
        i += 1
        skipped += 1
        if skipped > max_lookahead:
            return None
    return i


def _split_timing(line: str) -> tuple[str, str]:
    if " --> " in line:
        start, _, end = line.partition(" --> ")
    else:
        start, _, end = line.partition(TIMING_SEPARATOR)
        start, end = start.strip(), end.strip()
    return start, end


def parse_srt(content: str, max_lookahead: int = RECOVERY_LOOKAHEAD) -> List[SubtitleEntry]:
    """
    Parse SRT file content into list of SubtitleEntry objects.

    Malformed blocks are skipped. If no valid block can be found within
    max_lookahead lines of a broken one, parsing stops and the entries
    collected so far are returned.

    Args:
        content: Raw SRT file content as string
        max_lookahead: Lines to scan when recovering from a malformed block

    Returns:
        List of parsed SubtitleEntry objects, in source order
    """
    if not content:
        return []

    lines = _LINE_BREAK_RE.split(content.lstrip('\ufeff'))
    entries: List[SubtitleEntry] = []
    i = 0

    while i < len(lines):
        if not lines[i].strip():
            i += 1
            continue

        entry_id = _parse_index(lines[i])
        if entry_id is None or not (i + 1 < len(lines) and TIMING_SEPARATOR in lines[i + 1]):
            logger.debug(f"Skipping malformed block at line {i + 1}: {lines[i]!r}")
            found = _recover(lines, i, max_lookahead)
            if found is None:
                logger.warning(
                    f"Malformed SRT: no valid entry within {max_lookahead} lines "
                    f"after line {i + 1}, stopping with {len(entries)} entries"
                )
                break
            i = found
            continue

        start, end = _split_timing(lines[i + 1])
        i += 2

        text_lines: List[str] = []
        while i < len(lines) and lines[i].strip():
            text_lines.append(lines[i])
            i += 1

        entries.append(SubtitleEntry(entry_id, start, end, "\n".join(text_lines)))

    if not entries and content.strip():
        logger.warning("No valid SRT entries found in content")

    return entries


def parse_srt_strict(content: str, max_lookahead: int = RECOVERY_LOOKAHEAD) -> List[SubtitleEntry]:
    """
    Parse SRT content, treating zero entries from non-empty input as a failure.

    Raises:
        SrtParseError: if the content is not blank but nothing could be parsed
    """
    entries = parse_srt(content, max_lookahead)
    if not entries and content and content.strip():
        raise SrtParseError("Failed to parse SRT file. Ensure it is a valid SRT format.")
    return entries


def validate_srt_file(path: Path) -> Optional[str]:
    """
    Validate SRT file before processing.

    Args:
        path: Path to SRT file

    Returns:
        Error message if invalid, None if valid
    """
    if not path.exists():
        return f"File not found: {path}"

    if not path.is_file():
        return f"Not a file: {path}"

    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_EXTENSIONS:
        return f"Invalid file extension: {suffix} (expected .srt)"

    # 检查文件大小
    size = path.stat().st_size
    if size == 0:
        return "File is empty"
    if size > 50 * 1024 * 1024:  # 50MB
        return f"File too large: {size / 1024 / 1024:.1f}MB (max 50MB)"

    return None


def format_srt(entries: Sequence[SubtitleEntry]) -> str:
    """Render entries as SRT text, using translations where available."""
    return "\n".join(e.to_srt() for e in entries)


def save_srt(entries: Sequence[SubtitleEntry], path: Path) -> None:
    """
    Save SubtitleEntry list to SRT file.

    Args:
        entries: Sequence of SubtitleEntry objects to save
        path: Output file path
    """
    # 确保父目录存在
    path.parent.mkdir(parents=True, exist_ok=True)

    with path.open("w", encoding="utf-8") as f:
        f.write(format_srt(entries))

    logger.info(f"Saved {len(entries)} entries to {path}")
