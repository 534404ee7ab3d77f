"""
Command-line interface for EPUB translation
"""
import argparse
import asyncio
import logging
import signal
import sys

from epub_translator import config
from epub_translator.config import (
    AUTO_SOURCE_LANGUAGE, DEFAULT_SOURCE_LANGUAGE, DEFAULT_TARGET_LANGUAGE, LLM_PROVIDER,
    SUPPORTED_LANGUAGES, SUPPORTED_PROVIDERS, TranslationConfig,
)
from epub_translator.core.epub.exceptions import ArchiveError
from epub_translator.core.epub.pipeline import CancellationToken
from epub_translator.core.epub.translator import translate_epub_file
from epub_translator.utils.file_utils import default_output_path, get_unique_output_path
from epub_translator.utils.unified_logger import setup_cli_logger, LogType


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Translate EPUB files with an LLM, keeping their markup intact.")
    parser.add_argument("-i", "--input", required=True, nargs="+", help="Path(s) to the input EPUB. Several files are translated one after another.")
    parser.add_argument("-o", "--output", default=None, help="Path to the output EPUB (single input only). If not specified, uses input filename with the target language as suffix.")
    parser.add_argument("-sl", "--source_lang", default=DEFAULT_SOURCE_LANGUAGE, choices=sorted(SUPPORTED_LANGUAGES) + [AUTO_SOURCE_LANGUAGE], help=f"Source language code, or '{AUTO_SOURCE_LANGUAGE}' to detect ja/zh/en from the text (default: {DEFAULT_SOURCE_LANGUAGE}).")
    parser.add_argument("-tl", "--target_lang", default=DEFAULT_TARGET_LANGUAGE, choices=sorted(SUPPORTED_LANGUAGES), help=f"Target language code (default: {DEFAULT_TARGET_LANGUAGE}). Same as source means format conversion only.")
    parser.add_argument("--provider", default=LLM_PROVIDER, choices=SUPPORTED_PROVIDERS, help=f"Translation backend (default: {LLM_PROVIDER}).")
    parser.add_argument("--api_key", default=None, help="API key for the selected provider (defaults to the provider's environment variable).")
    parser.add_argument("--model", default=None, help="Model name for zhipu or openrouter.")
    parser.add_argument("--api_endpoint", default=None, help="Override the provider endpoint (required for the custom provider unless CUSTOM_API_ENDPOINT is set).")
    parser.add_argument("--max_concurrent", type=int, default=None, help=f"Maximum concurrent backend requests (default: {config.MAX_CONCURRENT_REQUESTS}).")
    parser.add_argument("--batch_min", type=int, default=None, help=f"Soft minimum batch size in characters (default: {config.BATCH_MIN_CHARS}).")
    parser.add_argument("--batch_max", type=int, default=None, help=f"Hard maximum batch size in characters (default: {config.BATCH_MAX_CHARS}).")
    parser.add_argument("--horizontal", action="store_true", help="Convert vertical (top-to-bottom) layout to horizontal.")
    parser.add_argument("--detect_vertical", action="store_true", help="Convert to horizontal only when a vertical layout is found in the book.")
    parser.add_argument("--debug", action="store_true", help="Print every prompt and raw response.")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output.")
    return parser


def _install_sigint_handler(token: CancellationToken) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel, "interrupted by user (Ctrl+C)")
    except (NotImplementedError, RuntimeError):
        # Windows event loops do not support signal handlers
        pass


async def translate_one(input_path: str, output_path: str, translation_config: TranslationConfig,
                        logger, token: CancellationToken) -> int:
    """Translate a single file; returns its exit code."""
    try:
        summary = await translate_epub_file(
            input_path,
            output_path,
            translation_config,
            log_callback=logger.create_legacy_callback(),
            progress_callback=logger.create_progress_callback(),
            cancellation=token,
        )
    except ArchiveError as e:
        logger.error(f"Translation failed: {e}", LogType.ERROR_DETAIL, {
            'details': str(e),
            'document': input_path,
        })
        return 1

    logger.info("Translation Completed", LogType.TRANSLATION_END, {
        'output_file': output_path,
        'stats': summary.to_dict(),
    })
    logger.info("Token usage", LogType.TOKEN_USAGE, {
        'prompt_tokens': summary.prompt_tokens,
        'completion_tokens': summary.completion_tokens,
    })
    if summary.failed_documents:
        logger.warning(f"Documents copied untranslated: {', '.join(summary.failed_documents)}")
    if summary.cancelled:
        logger.warning("Run was cancelled, the output contains partial translations")
    if summary.auth_error:
        logger.error(f"Authentication failed: {summary.auth_error}", LogType.ERROR_DETAIL, {
            'details': "Check the API key of the selected provider",
        })
        token.cancel("authentication failed")
        return 1
    return 0


async def run(args: argparse.Namespace, translation_config: TranslationConfig, logger) -> int:
    """Translate every input in order; a failed file does not stop the next one."""
    token = CancellationToken()
    _install_sigint_handler(token)

    exit_code = 0
    for index, (input_path, output_path) in enumerate(zip(args.input, args.outputs), start=1):
        if token.is_cancelled:
            logger.warning(f"Skipping {len(args.input) - index + 1} remaining file(s): {token.reason}")
            break
        if len(args.input) > 1:
            logger.info(f"[{index}/{len(args.input)}] {input_path}")
        # Ensure output path is unique (add number suffix if file exists)
        output_path = get_unique_output_path(output_path)
        exit_code = max(exit_code, await translate_one(input_path, output_path, translation_config, logger, token))
    return exit_code


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.debug:
        config.DEBUG_MODE = True
        logging.basicConfig(level=logging.DEBUG)

    for input_path in args.input:
        if not input_path.lower().endswith('.epub'):
            parser.error(f"--input must be .epub files, got {input_path}")
    if args.output is not None and len(args.input) > 1:
        parser.error("--output cannot be used with several input files")

    args.outputs = [args.output] if args.output else [default_output_path(p, args.target_lang) for p in args.input]

    logger = setup_cli_logger(enable_colors=not args.no_color)

    try:
        translation_config = TranslationConfig.from_cli_args(args)
    except ValueError as e:
        parser.error(str(e))

    logger.info("Translation Started", LogType.TRANSLATION_START, {
        'source_lang': args.source_lang,
        'target_lang': args.target_lang,
        'input_file': ', '.join(args.input),
        'output_file': ', '.join(args.outputs),
        'provider': translation_config.llm_provider,
    })
    logger.debug(f"Configuration: {translation_config.to_dict()}")

    return asyncio.run(run(args, translation_config, logger))


if __name__ == "__main__":
    sys.exit(main())
