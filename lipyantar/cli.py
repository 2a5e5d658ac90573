"""Command line interface for the Lipyantar transliterator."""

from __future__ import annotations

import argparse
import asyncio
import pathlib
import sys
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import structlog

from .cache import TransliterationCache
from .configuration import LipyantarConfig, get_config
from .controller import TransliterationController
from .documents import HostDocument
from .engine import build_converter
from .errors import ConfigurationError, LipyantarError, OverwriteRefusedError
from .logging_config import setup_logging
from .matcher import URLMatcher
from .policy import ErrorPolicy
from .providers import build_provider
from .settings import DEFAULT_SETTINGS, TRANSLITERATION_MODE, SettingsManager
from .storage import LOCAL_NAMESPACE, SYNC_NAMESPACE, MemoryStorage, open_namespace
from .structures import PassSummary, TransliterationMode

logger = structlog.get_logger(__name__)

DEFAULT_READER_URL = "https://www.lingq.com/en/learn/gu/web/reader/"


@dataclass
class RenderResult:
    """Outcome of rendering one HTML file."""

    input_path: pathlib.Path
    output_path: pathlib.Path
    url: str
    language: str
    summary: Optional[PassSummary]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lipyantar",
        description=(
            "Transliterate Gujarati reader pages to IAST or Hunterian romanization."
        ),
    )
    parser.add_argument(
        "input_file",
        nargs="?",
        help="Path to the saved reader page (.html) to transliterate.",
    )
    parser.add_argument(
        "-u",
        "--url",
        default=DEFAULT_READER_URL,
        help="Address the page was saved from; decides eligibility and language.",
    )
    parser.add_argument(
        "-m",
        "--mode",
        choices=[mode.value for mode in TransliterationMode],
        help="Transliteration mode for this run (default: the stored setting).",
    )
    parser.add_argument(
        "-o",
        "--output",
        help="Output file path. Defaults to appending the mode to the input name.",
    )
    parser.add_argument(
        "-p",
        "--provider",
        help="Conversion provider identifier (default: aksharamukha).",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Allow overwriting the output file if it already exists.",
    )
    parser.add_argument(
        "--ephemeral",
        action="store_true",
        help="Keep settings and cache in memory only for this run.",
    )
    parser.add_argument(
        "-t",
        "--text",
        action="append",
        default=[],
        help="Transliterate a string and print the result (repeatable).",
    )
    parser.add_argument(
        "--show-settings",
        action="store_true",
        help="Print the stored settings.",
    )
    parser.add_argument(
        "--set",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Store a setting, e.g. transliterationMode=hunterian (repeatable).",
    )
    parser.add_argument(
        "--cache-stats",
        action="store_true",
        help="Print transliteration cache statistics.",
    )
    parser.add_argument(
        "--clear-cache",
        action="store_true",
        help="Remove every cached transliteration.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed progress information.",
    )
    parser.add_argument(
        "--debug-provider",
        action="store_true",
        help="Log complete provider requests and responses for troubleshooting.",
    )
    return parser


def derive_output_path(input_path: pathlib.Path, mode: str) -> pathlib.Path:
    return input_path.with_name(f"{input_path.stem}_{mode}{input_path.suffix}")


def validate_paths(
    input_path: pathlib.Path,
    output_path: pathlib.Path,
    force_overwrite: bool,
) -> None:
    """Validate input/output path combinations and overwrite policy."""

    if not input_path.exists():
        raise FileNotFoundError(
            "Input file not found. Please provide a readable .html file."
        )
    if not input_path.is_file():
        raise LipyantarError("Input path must be a file.")

    if input_path.resolve() == output_path.resolve():
        raise OverwriteRefusedError(
            "The output path matches the input page. Refusing to overwrite the source file."
        )

    if output_path.exists() and not force_overwrite:
        raise OverwriteRefusedError(
            "The output file already exists. Rename it or pass --force."
        )


def parse_assignments(assignments: Sequence[str]) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for item in assignments:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ConfigurationError(f"Expected KEY=VALUE, got '{item}'.")
        parsed[key.strip()] = value.strip()
    return parsed


def open_settings(config: LipyantarConfig, *, ephemeral: bool) -> SettingsManager:
    if ephemeral:
        return SettingsManager(MemoryStorage())
    return SettingsManager(
        open_namespace(config.storage_dir, SYNC_NAMESPACE, config.storage_quota_bytes)
    )


def open_cache(
    config: LipyantarConfig,
    *,
    ephemeral: bool,
    error_policy: Optional[ErrorPolicy] = None,
) -> TransliterationCache:
    storage = (
        MemoryStorage(config.storage_quota_bytes)
        if ephemeral
        else open_namespace(config.storage_dir, LOCAL_NAMESPACE, config.storage_quota_bytes)
    )
    return TransliterationCache(
        storage,
        config.cache_key,
        write_policy=config.cache_write_policy,
        sample_rate=config.cache_sample_rate,
        max_entries=config.cache_max_entries,
        error_policy=error_policy,
    )


async def render_page(
    *,
    input_path: pathlib.Path,
    output_path: pathlib.Path,
    url: str,
    settings_manager: SettingsManager,
    cache: TransliterationCache,
    config: LipyantarConfig,
    provider_name: Optional[str],
    provider_debug: bool,
) -> RenderResult:
    """Run one controller session over a saved page and write the result."""

    document = HostDocument.from_file(input_path)
    provider = build_provider(provider_name, config=config, debug=provider_debug)
    controller = TransliterationController(
        document,
        url,
        settings_manager=settings_manager,
        provider=provider,
        cache=cache,
        config=config,
    )
    try:
        await controller.initialize()
        if not controller.is_initialized:
            raise LipyantarError(
                "This page is not supported: the address must be a LingQ reader "
                "page in a language with a transliterator."
            )
        output_path.write_text(document.to_html(), encoding="utf-8")
        language = controller.language.language if controller.language else ""
        return RenderResult(
            input_path=input_path,
            output_path=output_path,
            url=url,
            language=language,
            summary=controller.last_summary,
        )
    finally:
        await controller.shutdown()


async def convert_texts(
    texts: List[str],
    *,
    url: str,
    mode: TransliterationMode,
    cache: TransliterationCache,
    config: LipyantarConfig,
    provider_name: Optional[str],
    provider_debug: bool,
) -> List[str]:
    language = URLMatcher().is_valid_url(url)
    if language is None:
        raise LipyantarError(f"No supported language found in '{url}'.")
    provider = build_provider(provider_name, config=config, debug=provider_debug)
    try:
        converter = build_converter(
            language.language_code,
            provider=provider,
            cache=cache,
            batch_size=config.batch_size,
            error_policy=cache.error_policy,
        )
        if converter is None:
            raise LipyantarError(f"No transliterator available for {language.language}.")
        results = await converter.batch_convert(texts, mode)
        converter.flush_cache()
        return results
    finally:
        await provider.aclose()


def execute_render(
    *,
    input_file: str,
    output_file: str | None,
    url: str,
    mode: str | None,
    provider: str | None,
    force_overwrite: bool,
    ephemeral: bool,
    provider_debug: bool,
    config: LipyantarConfig,
) -> tuple[int, RenderResult | None, str | None]:
    """Execute a render run and return the exit code, result, and message."""

    settings_manager = open_settings(config, ephemeral=ephemeral)
    if mode is not None:
        # A mode given on the command line applies to this run only.
        settings_manager = SettingsManager(MemoryStorage())
        settings_manager.set_setting(TRANSLITERATION_MODE, mode)
    effective_mode = settings_manager.get_settings()[TRANSLITERATION_MODE]

    input_path = pathlib.Path(input_file).expanduser().resolve()
    output_path = (
        pathlib.Path(output_file).expanduser().resolve()
        if output_file
        else derive_output_path(input_path, effective_mode)
    )

    try:
        validate_paths(input_path, output_path, force_overwrite=force_overwrite)
    except (FileNotFoundError, LipyantarError) as exc:
        return 1, None, str(exc)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    cache = open_cache(config, ephemeral=ephemeral)

    try:
        result = asyncio.run(
            render_page(
                input_path=input_path,
                output_path=output_path,
                url=url,
                settings_manager=settings_manager,
                cache=cache,
                config=config,
                provider_name=provider,
                provider_debug=provider_debug,
            )
        )
    except LipyantarError as exc:
        return 1, None, str(exc)
    except KeyboardInterrupt:
        return 2, None, "Transliteration interrupted by user."

    return 0, result, None


def print_summary(result: RenderResult) -> None:
    """Output a friendly report once processing completes."""

    print("\nTransliteration complete.")
    print(f"  Input file:      {result.input_path}")
    print(f"  Output file:     {result.output_path}")
    print(f"  Language:        {result.language}")
    summary = result.summary
    if summary is None:
        print("  Text units:      none found in the reader container")
        return
    print(f"  Mode:            {summary.mode.value}")
    print(
        "  Text units:      "
        f"{summary.transliterated_units} transliterated / {summary.total_units} total "
        f"({summary.skipped_units} skipped) in {summary.total_elements} paragraphs"
    )
    print(f"  Elapsed time:    {summary.elapsed_seconds:.2f} seconds")
    if summary.error_messages:
        print("  Notes:")
        for message in summary.error_messages:
            print(f"    - {message}")


def _run_maintenance(args: argparse.Namespace, config: LipyantarConfig) -> int:
    settings_manager = open_settings(config, ephemeral=args.ephemeral)

    if args.set:
        try:
            assignments = parse_assignments(args.set)
            if not settings_manager.set_settings(assignments):
                print("Settings could not be saved.")
                return 1
        except (ConfigurationError, ValueError) as exc:
            print(exc)
            return 1

    if args.show_settings:
        settings = settings_manager.get_settings()
        for key in DEFAULT_SETTINGS:
            print(f"{key}={settings[key]}")

    if args.clear_cache or args.cache_stats:
        cache = open_cache(config, ephemeral=args.ephemeral)
        if args.clear_cache:
            cache.clear()
            print("Transliteration cache cleared.")
        if args.cache_stats:
            stats = cache.stats()
            print(f"entries={stats.entry_count}")
            print(f"oldest={stats.oldest_entry if stats.oldest_entry is not None else '-'}")
            print(f"newest={stats.newest_entry if stats.newest_entry is not None else '-'}")

    return 0


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        config = get_config()
    except ConfigurationError as exc:
        print(exc)
        return 1
    setup_logging(config, verbose=args.verbose)
    provider_debug = bool(args.debug_provider or config.provider_debug)

    maintenance = args.set or args.show_settings or args.cache_stats or args.clear_cache
    if maintenance:
        exit_code = _run_maintenance(args, config)
        if exit_code or (args.input_file is None and not args.text):
            return exit_code

    if args.text:
        mode_value = args.mode or open_settings(
            config, ephemeral=args.ephemeral
        ).get_settings()[TRANSLITERATION_MODE]
        try:
            results = asyncio.run(
                convert_texts(
                    args.text,
                    url=args.url,
                    mode=TransliterationMode.parse(mode_value),
                    cache=open_cache(config, ephemeral=args.ephemeral),
                    config=config,
                    provider_name=args.provider,
                    provider_debug=provider_debug,
                )
            )
        except LipyantarError as exc:
            print(exc)
            return 1
        for result in results:
            print(result)
        if args.input_file is None:
            return 0

    if args.input_file is None:
        parser.error("the following arguments are required: input_file")

    exit_code, result, message = execute_render(
        input_file=args.input_file,
        output_file=args.output,
        url=args.url,
        mode=args.mode,
        provider=args.provider,
        force_overwrite=args.force,
        ephemeral=args.ephemeral,
        provider_debug=provider_debug,
        config=config,
    )

    if message:
        print(message)
    if result:
        print_summary(result)
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
