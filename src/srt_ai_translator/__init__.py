"""
SRT AI Translator - streaming LLM subtitle translator.

Features:
- Line-by-line translation through any OpenAI-compatible chat endpoint
- Optional surrounding-context prompts
- Live streamed progress
- Automatic retry of transient failures, and retry of failed entries
- Cooperative cancellation
"""

__version__ = "1.0.0"

from .models import BatchStatus, ErrorKind, SubtitleEntry, TranslationError
from .config import ApiConfig, RunOptions, TranslatorConfig
from .parser import SrtParseError, format_srt, parse_srt, parse_srt_strict, save_srt, validate_srt_file
from .prompt_builder import build_prompt, render_system_prompt
from .cancellation import CancellationToken
from .llm_client import ChatStreamClient, StreamOutcome, check_connectivity, classify_error, classify_status
from .translator import translate_entry
from .batch import BatchAlreadyRunning, BatchState, BatchSummary, BatchTranslator
from .progress import LoggingProgressObserver, MultiProgressObserver, ProgressObserver, TqdmProgressObserver

__all__ = [
    # Models
    "SubtitleEntry",
    "TranslationError",
    "ErrorKind",
    "BatchStatus",
    # Config
    "ApiConfig",
    "RunOptions",
    "TranslatorConfig",
    # Parsing
    "SrtParseError",
    "parse_srt",
    "parse_srt_strict",
    "format_srt",
    "save_srt",
    "validate_srt_file",
    # Prompts
    "build_prompt",
    "render_system_prompt",
    # Network
    "CancellationToken",
    "ChatStreamClient",
    "StreamOutcome",
    "check_connectivity",
    "classify_error",
    "classify_status",
    # Translation
    "translate_entry",
    "BatchTranslator",
    "BatchState",
    "BatchSummary",
    "BatchAlreadyRunning",
    # Progress
    "ProgressObserver",
    "LoggingProgressObserver",
    "MultiProgressObserver",
    "TqdmProgressObserver",
]
