"""Data models for subtitle entries and translation errors."""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Translation error categories."""
    NETWORK = "NetworkError"
    API = "APIError"
    PERMISSION = "PermissionError"
    RATE_LIMIT = "RateLimitError"
    MODEL = "ModelError"
    SERVER = "ServerError"
    STREAM_PARSE = "StreamParseError"
    UNKNOWN = "UnknownError"


class BatchStatus(Enum):
    """Run state of a translation batch."""
    IDLE = "idle"
    RUNNING = "running"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TranslationError:
    """A classified failure of a single translation attempt."""

    kind: ErrorKind
    message: str
    code: Optional[int] = None
    retryable: bool = False
    aborted: bool = False

    @classmethod
    def abort(cls, message: str = "Translation process aborted.") -> "TranslationError":
        """Error recorded when the user stops a batch."""
        return cls(ErrorKind.UNKNOWN, message, aborted=True)

    def describe(self) -> str:
        status = f" (status {self.code})" if self.code is not None else ""
        return f"{self.kind.value}{status}: {self.message}"


@dataclass
class SubtitleEntry:
    """Represents a single subtitle entry in SRT format."""

    id: int
    start_time: str
    end_time: str
    text: str
    translated_text: str = ""
    error: Optional[TranslationError] = None

    @property
    def timecode(self) -> str:
        """Return the timecode line in SRT format."""
        return f"{self.start_time} --> {self.end_time}"

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def output_text(self) -> str:
        """Text used for export: the translation if it completed, else the original."""
        if self.translated_text and self.error is None:
            return self.translated_text
        return self.text

    def reset(self) -> None:
        """Drop any translation result or error."""
        self.translated_text = ""
        self.error = None

    def to_srt(self) -> str:
        """Convert entry to an SRT block (without the separating blank line)."""
        timecode = self.timecode.replace('.', ',')
        return f"{self.id}\n{timecode}\n{self.output_text}\n"
