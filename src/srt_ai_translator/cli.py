"""Command-line interface for SRT AI Translator."""

from __future__ import annotations

import asyncio
import argparse
import logging
import signal
import sys
from pathlib import Path

from .config import (
    TranslatorConfig,
    DEFAULT_MODEL,
    MAX_RETRIES,
    OUTPUT_PREFIX,
    RETRY_DELAY,
)
from .batch import BatchTranslator
from .llm_client import check_connectivity
from .parser import SrtParseError, parse_srt_strict, save_srt, validate_srt_file
from .progress import LoggingProgressObserver, MultiProgressObserver, TqdmProgressObserver
from .prompt_builder import LANGUAGE_OPTIONS


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S"
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def parse_arguments(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    languages = ", ".join(LANGUAGE_OPTIONS)
    parser = argparse.ArgumentParser(
        description="Streaming LLM Subtitle Translator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Languages: {languages}

Examples:
  %(prog)s video.srt                          # Translate to English
  %(prog)s video.srt -o out.srt -t zh-CN      # Choose target and output
  %(prog)s video.srt --context --prev 2       # Add surrounding lines as context
  %(prog)s video.srt --retry-rounds 2         # Re-run failed entries twice
  %(prog)s --check                            # Only test API connectivity
        """
    )

    # Positional arguments
    parser.add_argument("input_path", nargs='?', default=None, help="Input SRT file path")
    parser.add_argument("output_path", nargs='?', default=None, help="Output SRT file path")
    parser.add_argument("-o", "--output", dest="output_option", default=None, help="Output SRT file path")

    # Languages
    parser.add_argument("-s", "--source-lang", dest="source_language", default="auto")
    parser.add_argument("-t", "--target-lang", dest="target_language", default="en")

    # API options
    parser.add_argument("--api-key", help="API key (or set OPENAI_API_KEY)")
    parser.add_argument("--base-url", default=None, help="API base URL (or set OPENAI_BASE_URL)")
    parser.add_argument("--model", dest="model_name", default=DEFAULT_MODEL)
    parser.add_argument("--system-prompt", default=None,
                        help="System prompt template with {source_language} and {target_language}")
    parser.add_argument("--timeout", type=float, default=None, help="Request timeout in seconds (default: none)")
    parser.add_argument("--check", action="store_true", help="Test API connectivity and exit")

    # Context
    parser.add_argument("--context", action="store_true", help="Send surrounding lines as context")
    parser.add_argument("--prev", dest="preceding_lines", type=int, default=1)
    parser.add_argument("--next", dest="succeeding_lines", type=int, default=1)

    # Retry
    parser.add_argument("--no-auto-retry", action="store_true", help="Do not retry transient errors")
    parser.add_argument("--max-retries", type=int, default=MAX_RETRIES)
    parser.add_argument("--retry-delay", type=float, default=RETRY_DELAY, help="Seconds between attempts")
    parser.add_argument("--retry-rounds", type=int, default=0,
                        help="Extra passes over failed entries after the main run")

    # Misc
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    return parser.parse_args(argv)


def _install_stop_handler(translator: BatchTranslator) -> bool:
    """Route Ctrl+C / SIGTERM to a cooperative stop."""
    loop = asyncio.get_running_loop()
    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, translator.stop)
    except (NotImplementedError, RuntimeError):
        # Windows event loops have no signal handlers
        return False
    return True


async def main_async(args: argparse.Namespace) -> int:
    """Main async workflow."""
    logger = logging.getLogger(__name__)
    config = TranslatorConfig.from_args(args)

    # 验证配置
    error = config.validate()
    if error:
        logger.error(error)
        return 1

    api_config, options = config.snapshot()

    if args.check:
        failure = await check_connectivity(api_config, timeout=config.timeout or 30.0)
        if failure:
            logger.error(f"Connectivity test failed: {failure.describe()}")
            return 1
        return 0

    if not args.input_path:
        logger.error("Input SRT file path is required")
        return 1

    # 验证输入文件
    in_path = Path(args.input_path).expanduser().resolve()
    error = validate_srt_file(in_path)
    if error:
        logger.error(error)
        return 1

    logger.info(f"Reading: {in_path}")
    content = in_path.read_text(encoding="utf-8-sig")
    try:
        entries = parse_srt_strict(content)
    except SrtParseError as e:
        logger.error(str(e))
        return 1

    if not entries:
        logger.error("No valid subtitle entries found")
        return 1

    logger.info(f"Parsed {len(entries)} subtitle entries")

    observer = TqdmProgressObserver(total=len(entries))
    if args.verbose:
        translator = BatchTranslator(
            observer=MultiProgressObserver(observer, LoggingProgressObserver()),
            timeout=config.timeout,
        )
    else:
        translator = BatchTranslator(observer=observer, timeout=config.timeout)
    _install_stop_handler(translator)

    summary = await translator.run_all(entries, api_config, options)

    rounds = 0
    while not summary.cancelled and summary.failed and rounds < args.retry_rounds:
        rounds += 1
        logger.info(f"Retry round {rounds}/{args.retry_rounds}: {summary.failed} failed entries")
        observer.total = summary.failed
        observer.desc = f"Retry {rounds}"
        summary = await translator.retry_failed(entries, api_config, options)

    # 保存结果
    out = args.output_option or args.output_path
    out_path = Path(out) if out else in_path.with_name(f"{OUTPUT_PREFIX}{in_path.name}")
    save_srt(entries, out_path)

    failed = [e for e in entries if e.failed]
    for entry in failed:
        logger.warning(f"#{entry.id} not translated: {entry.error.describe()}")

    done = sum(1 for e in entries if e.translated_text and e.error is None)
    logger.info(f"Done! {done}/{len(entries)} translated. Saved to {out_path}")

    if summary.cancelled:
        logger.warning("Translation was stopped before completion")
        return 130
    return 0 if not failed else 2


def main(argv=None) -> None:
    """CLI entry point."""
    args = parse_arguments(argv)
    setup_logging(args.verbose)

    try:
        exit_code = asyncio.run(main_async(args))
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nInterrupted by user.")
        sys.exit(130)
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
