"""Command line interface for Transclone."""

from __future__ import annotations

import argparse
import asyncio
import json
import pathlib
import sys
from typing import Dict, Iterable, List, Optional

from .cloner import BatchCloneOrchestrator
from .configuration import (
    TranscloneConfig,
    get_settings,
    validate_provider_settings,
    validate_store_settings,
)
from .documents import FragmentCollector, FragmentInjector, parse_document, serialize_document
from .errors import (
    ContentStoreError,
    MalformedDocumentError,
    TranscloneError,
    TranslationProviderConfigurationError,
)
from .policy import ErrorPolicy
from .providers import TranslationProvider, build_provider
from .stores import ContentStore, WordPressContentStore
from .structures import BatchCloneReport, GroupSyncReport, ProgressEvent, TranslationGroup
from .sync import TranslationGroupSync
from .translator import FragmentTranslator, language_name

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_PARTIAL = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="transclone",
        description=(
            "Clone WordPress and WooCommerce content into other languages while "
            "preserving page-builder layout."
        ),
    )
    parser.add_argument(
        "-p",
        "--provider",
        help="Translation provider identifier (default: openai).",
    )
    parser.add_argument(
        "-m",
        "--model",
        help="Provider-specific model or deployment identifier.",
    )
    parser.add_argument(
        "--fragment-mode",
        choices=("blocks", "joined"),
        help="Send fragments as separate blocks or joined with a separator.",
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
    subparsers = parser.add_subparsers(dest="command", required=True)

    clone = subparsers.add_parser("clone", help="Clone and translate posts, pages, or products.")
    clone.add_argument("ids", nargs="+", type=int, help="Source content ids.")
    clone.add_argument("-t", "--target-language", required=True, help="Language code, e.g. 'fr'.")
    clone.add_argument(
        "-c",
        "--concurrency",
        type=int,
        default=1,
        help="Number of clones translated at the same time (default: 1).",
    )
    clone.add_argument(
        "--jsonl",
        action="store_true",
        help="Print progress events as JSON lines.",
    )

    sync = subparsers.add_parser(
        "sync", help="Push a source post's content to its translated siblings."
    )
    sync.add_argument("source_id", type=int, help="Id of the source post.")
    sync.add_argument(
        "-g",
        "--group",
        action="append",
        required=True,
        metavar="LANG=ID",
        help="Translation group member; repeat for each language.",
    )
    sync.add_argument("--group-id", default="cli", help="Translation group identifier.")
    sync.add_argument("--post-type", choices=("post", "page"), help="Post type of the group.")

    menu = subparsers.add_parser("clone-menu", help="Clone a navigation menu.")
    menu.add_argument("menu_id", type=int)
    menu.add_argument("-t", "--target-language", required=True)

    extract = subparsers.add_parser(
        "extract", help="Print the translatable fragments of an Elementor JSON file."
    )
    extract.add_argument("input_file")

    translate_file = subparsers.add_parser(
        "translate-file", help="Translate an Elementor JSON file offline."
    )
    translate_file.add_argument("input_file")
    translate_file.add_argument("-t", "--target-language", required=True)
    translate_file.add_argument("-o", "--output", help="Output path (default: stdout).")
    return parser


def parse_group(entries: Iterable[str], group_id: str) -> TranslationGroup:
    members: Dict[str, int] = {}
    for entry in entries:
        language, sep, post_id = entry.partition("=")
        if not sep or not language.strip() or not post_id.strip().isdigit():
            raise TranscloneError(
                f"Invalid group member '{entry}'. Expected LANG=ID, e.g. fr=42."
            )
        members[language.strip().lower()] = int(post_id)
    return TranslationGroup(group_id=group_id, members=members)


def build_translator(
    settings: TranscloneConfig,
    *,
    provider: str | None,
    model: str | None,
    fragment_mode: str | None,
    verbose: bool,
    provider_debug: bool,
    error_policy: ErrorPolicy,
) -> FragmentTranslator:
    if (provider or "openai").strip().lower() not in {"echo", "noop", "mock"}:
        validate_provider_settings(settings)
    backend: TranslationProvider = build_provider(provider, settings, debug=provider_debug)
    return FragmentTranslator(
        backend,
        mode=fragment_mode or settings.FRAGMENT_MODE,  # type: ignore[arg-type]
        batch_budget=settings.BATCH_BUDGET,
        model=model or settings.TRANSCLONE_MODEL,
        error_policy=error_policy,
        verbose=verbose,
    )


def build_store(settings: TranscloneConfig) -> ContentStore:
    validate_store_settings(settings)
    return WordPressContentStore(
        base_url=settings.WORDPRESS_URL,  # type: ignore[arg-type]
        username=settings.WORDPRESS_USERNAME,  # type: ignore[arg-type]
        application_password=settings.WORDPRESS_APPLICATION_PASSWORD,  # type: ignore[arg-type]
        consumer_key=settings.WOOCOMMERCE_CONSUMER_KEY,
        consumer_secret=settings.WOOCOMMERCE_CONSUMER_SECRET,
        timeout=settings.REQUEST_TIMEOUT_SECONDS,
    )


def print_progress(event: ProgressEvent) -> None:
    print(json.dumps(event.to_dict(), ensure_ascii=False), flush=True)


def print_clone_report(report: BatchCloneReport) -> None:
    """Output a friendly report once a batch completes."""

    print("\nClone batch complete.")
    print(f"  Requested:  {report.total}")
    print(f"  Succeeded:  {len(report.success)}")
    for pair in report.success:
        print(f"    - {pair.original_id} -> {pair.clone_id}")
    print(f"  Failed:     {len(report.failed)}")
    for failure in report.failed:
        detail = f" ({failure.detail})" if failure.detail else ""
        print(f"    - {failure.id}: {failure.reason}{detail}")
    if report.warnings:
        print("  Notes:")
        for message in report.warnings:
            print(f"    - {message}")


def print_sync_report(report: GroupSyncReport) -> None:
    print(report.message)
    for failure in report.failed:
        print(f"  - {failure.language}: {failure.reason}")
    for message in report.warnings:
        print(f"  - {message}")


async def execute_clone(
    args: argparse.Namespace,
    translator: FragmentTranslator,
    store: ContentStore,
) -> int:
    orchestrator = BatchCloneOrchestrator(
        store,
        translator,
        max_concurrency=args.concurrency,
        on_progress=print_progress if args.jsonl else None,
    )
    report = await orchestrator.clone(args.ids, args.target_language)
    if args.jsonl:
        print(json.dumps(report.to_dict(), ensure_ascii=False))
    else:
        print_clone_report(report)
    return EXIT_PARTIAL if report.failed else EXIT_OK


async def execute_sync(
    args: argparse.Namespace,
    translator: FragmentTranslator,
    store: ContentStore,
) -> int:
    group = parse_group(args.group, args.group_id)
    syncer = TranslationGroupSync(store, translator)
    report = await syncer.sync(group, args.source_id, post_type=args.post_type)
    print_sync_report(report)
    return EXIT_PARTIAL if report.failed else EXIT_OK


async def execute_clone_menu(args: argparse.Namespace, store: ContentStore) -> int:
    message = await store.clone_menu(args.menu_id, args.target_language)
    print(message)
    return EXIT_OK


def execute_extract(args: argparse.Namespace) -> int:
    path = pathlib.Path(args.input_file).expanduser()
    document = parse_document(path.read_text(encoding="utf-8"))
    for fragment in FragmentCollector().collect(document):
        print(json.dumps(fragment, ensure_ascii=False))
    return EXIT_OK


async def execute_translate_file(
    args: argparse.Namespace,
    translator: FragmentTranslator,
) -> int:
    path = pathlib.Path(args.input_file).expanduser()
    document = parse_document(path.read_text(encoding="utf-8"))
    fragments = FragmentCollector().collect(document)
    translation = await translator.translate_content(
        {}, fragments, language_name(args.target_language)
    )
    if not translation.complete:
        print(translation.mismatch_note(), file=sys.stderr)
    translated = FragmentInjector().inject(document, translation.fragments)
    output = serialize_document(translated)
    if args.output:
        pathlib.Path(args.output).expanduser().write_text(output, encoding="utf-8")
    else:
        print(output)
    return EXIT_OK if translation.complete else EXIT_PARTIAL


async def dispatch(args: argparse.Namespace, settings: TranscloneConfig) -> int:
    if args.command == "extract":
        return execute_extract(args)

    if args.command == "clone-menu":
        return await execute_clone_menu(args, build_store(settings))

    error_policy = ErrorPolicy(verbose=args.verbose)
    translator = build_translator(
        settings,
        provider=args.provider,
        model=args.model,
        fragment_mode=args.fragment_mode,
        verbose=args.verbose,
        provider_debug=bool(args.debug_provider or settings.TRANSCLONE_PROVIDER_DEBUG),
        error_policy=error_policy,
    )
    if args.command == "translate-file":
        return await execute_translate_file(args, translator)

    store = build_store(settings)
    if args.command == "clone":
        return await execute_clone(args, translator, store)
    return await execute_sync(args, translator, store)


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    arg_list: Optional[List[str]] = list(argv) if argv is not None else None
    args = parser.parse_args(arg_list)

    try:
        settings = get_settings()
        return asyncio.run(dispatch(args, settings))
    except TranslationProviderConfigurationError as exc:
        print(exc)
        return EXIT_ERROR
    except MalformedDocumentError as exc:
        print(f"The page-builder document could not be read: {exc}")
        return EXIT_ERROR
    except ContentStoreError as exc:
        print(f"The content store rejected the request: {exc}")
        return EXIT_ERROR
    except TranscloneError as exc:
        print(exc)
        return EXIT_ERROR
    except OSError as exc:
        print(exc)
        return EXIT_ERROR
    except KeyboardInterrupt:
        print("Interrupted by user.")
        return 2


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
