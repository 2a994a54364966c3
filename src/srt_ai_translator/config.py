"""Configuration and constants."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load environment variables once
load_dotenv()


# Retry policy
MAX_RETRIES = 3
RETRY_DELAY = 3.0  # seconds

# Parser recovery: how many lines to scan for the next valid block
RECOVERY_LOOKAHEAD = 10

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-3.5-turbo"

DEFAULT_SYSTEM_PROMPT = (
    "You will be provided with a main subtitle entry to translate, potentially "
    "accompanied by preceding and succeeding subtitle lines for context. "
    "Translate *only* the main subtitle entry, which will be clearly indicated. "
    "Use the context to improve the accuracy and naturalness of the translation "
    "for the main entry. Original format: {source_language}. "
    "Target format: {target_language}. "
    "Only provide the translated text for the main entry."
)

# Output settings
OUTPUT_PREFIX = "translated_"

# Supported file extensions
SUPPORTED_EXTENSIONS = {".srt"}


@dataclass(frozen=True)
class ApiConfig:
    """Endpoint settings captured once per batch."""

    base_url: str
    api_key: str
    model_name: str = DEFAULT_MODEL
    system_prompt_template: str = DEFAULT_SYSTEM_PROMPT

    @property
    def api_root(self) -> str:
        return self.base_url.rstrip("/")


@dataclass(frozen=True)
class RunOptions:
    """Per-batch translation options."""

    source_language: str = "auto"
    target_language: str = "en"
    auto_retry_enabled: bool = True
    context_enabled: bool = False
    preceding_context_count: int = 1
    succeeding_context_count: int = 1
    max_retries: int = MAX_RETRIES
    retry_delay: float = RETRY_DELAY

    def validate(self) -> Optional[str]:
        """
        Validate options.

        Returns:
            Error message if invalid, None if valid
        """
        if self.target_language == "auto":
            return "Target language cannot be 'auto'"
        if self.preceding_context_count < 0 or self.succeeding_context_count < 0:
            return "Context line counts must be non-negative"
        if self.max_retries < 0:
            return f"Max retries must be >= 0, got {self.max_retries}"
        if self.retry_delay < 0:
            return f"Retry delay must be >= 0, got {self.retry_delay}"
        return None


@dataclass
class TranslatorConfig:
    """Live, mutable settings. Use snapshot() to freeze them for a batch."""

    # API settings
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    model_name: str = DEFAULT_MODEL
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    # Language settings
    source_language: str = "auto"
    target_language: str = "en"

    # Retry settings
    auto_retry: bool = True
    max_retries: int = MAX_RETRIES
    retry_delay: float = RETRY_DELAY

    # Context settings
    context_enabled: bool = False
    preceding_lines: int = 1
    succeeding_lines: int = 1

    # Network
    timeout: Optional[float] = None

    def __post_init__(self):
        """Load API key and base URL from environment if not provided."""
        if self.api_key is None:
            self.api_key = os.environ.get("OPENAI_API_KEY")
        if self.base_url is None:
            self.base_url = os.environ.get("OPENAI_BASE_URL", DEFAULT_BASE_URL)

    @classmethod
    def from_args(cls, args) -> "TranslatorConfig":
        """Create config from argparse namespace."""
        api_key = getattr(args, 'api_key', None)
        if not api_key:
            api_key = os.environ.get("OPENAI_API_KEY")

        system_prompt = getattr(args, 'system_prompt', None) or DEFAULT_SYSTEM_PROMPT

        return cls(
            api_key=api_key,
            base_url=getattr(args, 'base_url', None),
            model_name=getattr(args, 'model_name', DEFAULT_MODEL),
            system_prompt=system_prompt,
            source_language=getattr(args, 'source_language', "auto"),
            target_language=getattr(args, 'target_language', "en"),
            auto_retry=not getattr(args, 'no_auto_retry', False),
            max_retries=getattr(args, 'max_retries', MAX_RETRIES),
            retry_delay=getattr(args, 'retry_delay', RETRY_DELAY),
            context_enabled=getattr(args, 'context', False),
            preceding_lines=getattr(args, 'preceding_lines', 1),
            succeeding_lines=getattr(args, 'succeeding_lines', 1),
            timeout=getattr(args, 'timeout', None),
        )

    def validate(self) -> Optional[str]:
        """
        Validate configuration.

        Returns:
            Error message if invalid, None if valid
        """
        if not self.api_key:
            return "API key is required. Set OPENAI_API_KEY or use --api-key"

        if not self.base_url:
            return "Base URL is required. Set OPENAI_BASE_URL or use --base-url"

        if not self.model_name:
            return "Model name is required"

        if self.timeout is not None and self.timeout <= 0:
            return f"Timeout must be positive, got {self.timeout}"

        _, options = self.snapshot()
        return options.validate()

    def snapshot(self) -> tuple[ApiConfig, RunOptions]:
        """Freeze the current settings for one batch."""
        api = ApiConfig(
            base_url=self.base_url or DEFAULT_BASE_URL,
            api_key=self.api_key or "",
            model_name=self.model_name,
            system_prompt_template=self.system_prompt,
        )
        options = RunOptions(
            source_language=self.source_language,
            target_language=self.target_language,
            auto_retry_enabled=self.auto_retry,
            context_enabled=self.context_enabled,
            preceding_context_count=self.preceding_lines,
            succeeding_context_count=self.succeeding_lines,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
        )
        return api, options
