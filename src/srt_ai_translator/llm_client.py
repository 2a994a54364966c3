"""Streaming chat client for OpenAI-compatible endpoints."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx
from openai import (
    AsyncOpenAI,
    APIConnectionError,
    APIError,
    APIStatusError,
)

from .cancellation import CancellationToken, OperationAborted, run_until_cancelled
from .config import ApiConfig
from .models import ErrorKind, TranslationError
from .prompt_builder import build_messages

logger = logging.getLogger(__name__)

DeltaCallback = Callable[[str], None]


@dataclass
class StreamOutcome:
    """Result of one request: the accumulated text and, on failure, the error."""
    text: str = ""
    error: Optional[TranslationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def extract_delta(chunk: Any) -> str:
    """Pull choices[0].delta.content out of a stream chunk, if present."""
    choices = getattr(chunk, "choices", None) or []
    if not choices:
        return ""
    delta = getattr(choices[0], "delta", None)
    content = getattr(delta, "content", None)
    return content if isinstance(content, str) else ""


def classify_status(
    status: int,
    message: str,
    error_code: Optional[str] = None,
) -> TranslationError:
    """Classify a non-2xx response by status code and body."""
    if status in (401, 403):
        return TranslationError(ErrorKind.PERMISSION, message, code=status)
    if status == 429:
        return TranslationError(ErrorKind.RATE_LIMIT, message, code=status, retryable=True)
    if status == 404 and (
        "model not found" in message.lower() or error_code == "model_not_found"
    ):
        return TranslationError(ErrorKind.MODEL, message, code=status)
    if status >= 500:
        return TranslationError(ErrorKind.SERVER, message, code=status, retryable=True)
    return TranslationError(ErrorKind.API, message, code=status)


def _status_details(error: APIStatusError) -> tuple[str, Optional[str]]:
    """Best-effort (message, error code) from an error response body."""
    body = error.body
    if isinstance(body, dict):
        message = body.get("message")
        code = body.get("code")
        if message:
            return str(message), str(code) if code is not None else None
    elif isinstance(body, str) and body.strip():
        return body.strip(), None

    reason = error.response.reason_phrase if error.response is not None else ""
    return reason or "No specific error message from API.", None


def classify_error(error: Exception) -> TranslationError:
    """
    分类 API 错误并判断是否可重试。

    Returns:
        A TranslationError; retryable is decided here, not by the caller
    """
    if isinstance(error, APIStatusError):
        message, code = _status_details(error)
        return classify_status(error.status_code, message, code)
    elif isinstance(error, (APIConnectionError, httpx.TransportError)):
        # APITimeoutError is a subclass of APIConnectionError
        return TranslationError(
            ErrorKind.NETWORK, f"Network error: {error}", retryable=True
        )
    elif isinstance(error, APIError):
        # error event inside an otherwise successful stream
        return TranslationError(
            ErrorKind.API, error.message or "An error occurred during streaming"
        )
    elif isinstance(error, json.JSONDecodeError):
        return TranslationError(
            ErrorKind.STREAM_PARSE, f"Error parsing stream: {error}"
        )
    else:
        return TranslationError(
            ErrorKind.UNKNOWN,
            str(error) or "An unknown error occurred during translation.",
        )


def create_client(
    config: ApiConfig,
    http_client: Optional[httpx.AsyncClient] = None,
    timeout: Optional[float] = None,
) -> AsyncOpenAI:
    """
    Create an AsyncOpenAI client for one batch.

    Args:
        config: Endpoint settings
        http_client: Optional preconfigured transport (used by tests)
        timeout: Request timeout in seconds; None waits indefinitely

    Returns:
        Configured AsyncOpenAI client with SDK-level retries disabled
    """
    kwargs: dict = {
        "api_key": config.api_key,
        "base_url": config.api_root,
        "timeout": timeout,
        "max_retries": 0,
    }
    if http_client is not None:
        kwargs["http_client"] = http_client
    return AsyncOpenAI(**kwargs)


class ChatStreamClient:
    """Sends one streaming chat completion per translation attempt."""

    def __init__(self, config: ApiConfig, client: Optional[AsyncOpenAI] = None):
        self.config = config
        self._client = client if client is not None else create_client(config)

    async def close(self) -> None:
        await self._client.close()

    async def send(
        self,
        prompt: str,
        system_prompt: str,
        token: CancellationToken,
        on_delta: Optional[DeltaCallback] = None,
    ) -> StreamOutcome:
        """
        Stream a translation for one prompt.

        Never raises for network, API or stream problems: every failure is
        returned as a classified error alongside any partial text.

        Args:
            prompt: User message
            system_prompt: Rendered system message
            token: Batch cancellation token, checked before the request and
                after every chunk
            on_delta: Called with the accumulated text after every delta

        Returns:
            StreamOutcome with the accumulated text, and an error on failure
        """
        accumulated = ""

        try:
            if token.cancelled:
                raise OperationAborted("cancelled before request")

            stream = await run_until_cancelled(
                self._client.chat.completions.create(
                    model=self.config.model_name,
                    messages=build_messages(system_prompt, prompt),
                    stream=True,
                ),
                token,
            )
            try:
                async for chunk in stream:
                    if token.cancelled:
                        raise OperationAborted("cancelled during streaming")
                    delta = extract_delta(chunk)
                    if delta:
                        accumulated += delta
                        if on_delta is not None:
                            on_delta(accumulated)
            finally:
                await stream.close()

        except OperationAborted:
            logger.debug(f"Request aborted with {len(accumulated)} chars received")
            return StreamOutcome(
                accumulated,
                TranslationError.abort("Translation aborted by user during streaming."),
            )
        except json.JSONDecodeError as e:
            logger.error(f"Error parsing stream data: {e}")
            return StreamOutcome(accumulated, classify_error(e))
        except Exception as e:
            error = classify_error(e)
            logger.debug(f"Request failed: {error.describe()}")
            return StreamOutcome(accumulated, error)

        if not accumulated.strip():
            return StreamOutcome(
                accumulated,
                TranslationError(ErrorKind.UNKNOWN, "Empty translation"),
            )

        return StreamOutcome(accumulated)


async def check_connectivity(
    config: ApiConfig,
    http_client: Optional[httpx.AsyncClient] = None,
    timeout: Optional[float] = 30.0,
) -> Optional[TranslationError]:
    """
    Validate endpoint settings by listing models.

    Returns:
        None if the endpoint answered, otherwise the classified error
    """
    if not config.api_key or not config.base_url:
        return TranslationError(
            ErrorKind.API,
            "API key and base URL are required for the connectivity test.",
        )

    client = create_client(config, http_client=http_client, timeout=timeout)
    try:
        await client.models.list()
    except Exception as e:
        error = classify_error(e)
        logger.warning(f"Connectivity test failed: {error.describe()}")
        return error
    finally:
        if http_client is None:
            await client.close()

    logger.info(f"Connectivity test successful: {config.api_root}")
    return None
