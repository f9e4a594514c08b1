"""Command-line interface for staging menu edits and publishing them."""

from __future__ import annotations

import argparse
import json
import signal
import sys
import threading
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Sequence

from ..catalog.models import (
    CURRENCIES,
    DIET_TYPES,
    MAX_IMAGES,
    MAX_VIDEOS,
    CatalogItem,
    LocalMediaRef,
    ProjectedRow,
    RowStatus,
)
from ..catalog.projector import summarize
from ..catalog.snapshot import SnapshotLoader
from ..core.errors import ConfigError, MenuPubError, UnknownItemError
from ..platforms import CatalogStore, UploadClient, build_backends
from ..services.batching import chunked, plan
from ..services.importer import ImportValidationError, import_csv
from ..services.media import MediaResolver
from ..services.publishing import PublishOrchestrator
from ..services.session import EditSession
from ..settings import AppConfig, load_config
from ..utils.logging import configure_logging, get_logger
from .draft_state import DraftStateStore

LOGGER = get_logger(__name__)

# CLI flag -> CatalogItem field for the item editing commands.
_ITEM_FLAGS = {
    "name": "name",
    "section": "section",
    "price": "price",
    "currency": "currency",
    "description": "description",
    "ingredients": "ingredients",
    "diet": "diet_type",
    "spice": "spice_level",
    "sweet": "sweet_level",
    "special": "is_todays_special",
    "unavailable": "is_unavailable",
    "new_badge": "is_new",
}


@dataclass(slots=True)
class CliContext:
    config: AppConfig
    store: CatalogStore
    uploader: UploadClient
    drafts: DraftStateStore
    session: EditSession

    @property
    def tenant(self) -> str:
        return self.config.tenant

    def save_draft(self) -> None:
        self.drafts.save(self.tenant, self.session.ledger)


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(structured=not args.log_plain)

    handler: Callable[[argparse.Namespace], int] | None = getattr(args, "handler", None)
    if handler is None:
        parser.print_help(sys.stderr)
        return 1
    try:
        return handler(args)
    except UnknownItemError as exc:
        LOGGER.error(
            "Unknown item",
            extra={"event": "cli.error", "command": args.command, "item_id": exc.item_id},
        )
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except ImportValidationError as exc:
        for message in exc.errors:
            print(message, file=sys.stderr)
        return 2
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except MenuPubError as exc:
        LOGGER.error(
            "Command failed: %s",
            exc,
            extra={"event": "cli.error", "command": args.command},
        )
        print(f"error: {exc}", file=sys.stderr)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="menupub", description="Stage and publish menu edits")
    parser.add_argument("--config", help="Path to configuration file", default=None)
    parser.add_argument("--tenant", help="Restaurant id; overrides [app] tenant", default=None)
    parser.add_argument(
        "--log-plain",
        action="store_true",
        help="Use plain-text logs instead of JSON",
    )

    subparsers = parser.add_subparsers(dest="command")

    _add_catalog_commands(subparsers)
    _add_stage_commands(subparsers)
    _add_publish_command(subparsers)

    return parser


def _add_format_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--format",
        choices=("table", "json"),
        default="table",
        help="Output format",
    )


def _add_catalog_commands(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    catalog_parser = subparsers.add_parser("catalog", help="Inspect the catalog as the owner sees it")
    catalog_subparsers = catalog_parser.add_subparsers(dest="catalog_command", required=True)

    show_parser = catalog_subparsers.add_parser("show", help="Published items merged with staged edits")
    _add_format_flag(show_parser)
    show_parser.add_argument("--search", default=None, help="Filter by name, section, price...")
    show_parser.set_defaults(handler=_handle_catalog_show)


def _add_item_flags(parser: argparse.ArgumentParser, *, required: bool) -> None:
    parser.add_argument("--name", required=required)
    parser.add_argument("--section", required=required)
    parser.add_argument("--price", required=required, type=_price)
    parser.add_argument("--currency", choices=CURRENCIES, default=None)
    parser.add_argument("--description", default=None)
    parser.add_argument("--ingredients", default=None)
    parser.add_argument("--diet", choices=DIET_TYPES, default=None)
    parser.add_argument("--spice", type=_level, default=None, metavar="1-5")
    parser.add_argument("--sweet", type=_level, default=None, metavar="1-5")
    parser.add_argument("--special", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--unavailable", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument(
        "--new-badge",
        dest="new_badge",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Show the 'new' badge on the item",
    )
    parser.add_argument("--image", action="append", type=Path, default=[], metavar="PATH")
    parser.add_argument("--video", action="append", type=Path, default=[], metavar="PATH")


def _add_stage_commands(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    stage_parser = subparsers.add_parser("stage", help="Stage edits without publishing them")
    stage_subparsers = stage_parser.add_subparsers(dest="stage_command", required=True)

    add_parser = stage_subparsers.add_parser("add", help="Stage a new item")
    _add_item_flags(add_parser, required=True)
    add_parser.set_defaults(handler=_handle_stage_add)

    edit_parser = stage_subparsers.add_parser("edit", help="Stage changes to an item")
    edit_parser.add_argument("item_id")
    _add_item_flags(edit_parser, required=False)
    edit_parser.set_defaults(handler=_handle_stage_edit)

    delete_parser = stage_subparsers.add_parser("delete", help="Stage an item for deletion")
    delete_parser.add_argument("item_id")
    delete_parser.set_defaults(handler=_handle_stage_delete)

    undo_parser = stage_subparsers.add_parser("undo", help="Undo a staged deletion")
    undo_parser.add_argument("item_id")
    undo_parser.set_defaults(handler=_handle_stage_undo)

    import_parser = stage_subparsers.add_parser("import", help="Stage items from a CSV file")
    import_parser.add_argument("csv_path", type=Path)
    import_parser.set_defaults(handler=_handle_stage_import)

    diff_parser = stage_subparsers.add_parser("diff", help="List staged edits")
    _add_format_flag(diff_parser)
    diff_parser.set_defaults(handler=_handle_stage_diff)

    discard_parser = stage_subparsers.add_parser("discard", help="Drop every staged edit")
    discard_parser.set_defaults(handler=_handle_stage_discard)


def _add_publish_command(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    publish_parser = subparsers.add_parser("publish", help="Publish staged edits")
    publish_parser.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    publish_parser.add_argument(
        "--max-batch-size",
        dest="max_batch_size",
        type=int,
        default=None,
        help="Operations per atomic batch",
    )
    publish_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the planned batches without uploading or committing",
    )
    publish_parser.set_defaults(handler=_handle_publish)


def _price(value: str) -> Decimal:
    try:
        price = Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"invalid price: {value!r}") from exc
    if not price.is_finite() or price < 0:
        raise argparse.ArgumentTypeError(f"invalid price: {value!r}")
    return price


def _level(value: str) -> int:
    try:
        level = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid level: {value!r}") from exc
    if not 1 <= level <= 5:
        raise argparse.ArgumentTypeError("level must be between 1 and 5")
    return level


def _open(args: argparse.Namespace) -> CliContext:
    config = load_config(args.config).with_overrides(
        tenant=args.tenant,
        max_batch_size=getattr(args, "max_batch_size", None),
    )
    configure_logging(log_file=config.paths.log_file())
    store, uploader = build_backends(config)
    drafts = DraftStateStore(config.paths.drafts_dir())
    session = EditSession(
        SnapshotLoader(store, config.tenant),
        ledger=drafts.load(config.tenant),
        staging_dir=config.paths.staging_dir(config.tenant),
    )
    return CliContext(config=config, store=store, uploader=uploader, drafts=drafts, session=session)


def _item_fields(args: argparse.Namespace) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for flag, field_name in _ITEM_FLAGS.items():
        value = getattr(args, flag, None)
        if value is not None:
            fields[field_name] = value.strip() if isinstance(value, str) else value
    return fields


def _media_refs(
    ctx: CliContext,
    args: argparse.Namespace,
    existing: Sequence[LocalMediaRef] = (),
    payload: CatalogItem | None = None,
) -> list[LocalMediaRef]:
    images = sum(1 for ref in existing if ref.kind == "image") + len(args.image)
    videos = sum(1 for ref in existing if ref.kind == "video") + len(args.video)
    if payload is not None:
        images += len(payload.images)
        videos += len(payload.videos)
    if images > MAX_IMAGES or videos > MAX_VIDEOS:
        LOGGER.error(
            "Too many media files",
            extra={"event": "cli.error", "images": images, "videos": videos},
        )
        raise SystemExit(2)
    try:
        refs = ctx.session.attach_media(args.image, kind="image")
        refs.extend(ctx.session.attach_media(args.video, kind="video"))
    except FileNotFoundError as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc
    return refs


def _handle_catalog_show(args: argparse.Namespace) -> int:
    ctx = _open(args)
    rows = ctx.session.rows(args.search)
    if args.format == "table":
        _print_rows_table(rows)
    else:
        print(json.dumps([_row_dict(row) for row in rows], ensure_ascii=False, indent=2))
    return 0


def _handle_stage_add(args: argparse.Namespace) -> int:
    ctx = _open(args)
    try:
        payload = CatalogItem(**_item_fields(args))
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    media = _media_refs(ctx, args)
    local_id = ctx.session.create(payload, media)
    ctx.save_draft()
    LOGGER.info(
        "Item staged",
        extra={"event": "cli.command", "command": "stage.add", "item_id": local_id},
    )
    print(local_id)
    return 0


def _handle_stage_edit(args: argparse.Namespace) -> int:
    ctx = _open(args)
    current = ctx.session.payload_for(args.item_id)
    change = ctx.session.ledger.get(args.item_id)
    existing = change.unresolved_media if change is not None else ()
    try:
        payload = current.with_changes(**_item_fields(args))
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    media: list[LocalMediaRef] | None = None
    if args.image or args.video:
        media = [*existing, *_media_refs(ctx, args, existing, current)]
    ctx.session.update(args.item_id, payload, media)
    ctx.save_draft()
    LOGGER.info(
        "Item edit staged",
        extra={"event": "cli.command", "command": "stage.edit", "item_id": args.item_id},
    )
    return 0


def _handle_stage_delete(args: argparse.Namespace) -> int:
    ctx = _open(args)
    ctx.session.delete(args.item_id)
    ctx.save_draft()
    LOGGER.info(
        "Item deletion staged",
        extra={"event": "cli.command", "command": "stage.delete", "item_id": args.item_id},
    )
    return 0


def _handle_stage_undo(args: argparse.Namespace) -> int:
    ctx = _open(args)
    ctx.session.undo_delete(args.item_id)
    ctx.save_draft()
    return 0


def _handle_stage_import(args: argparse.Namespace) -> int:
    ctx = _open(args)
    if not args.csv_path.is_file():
        print(f"error: CSV file not found: {args.csv_path}", file=sys.stderr)
        return 2
    summary = import_csv(ctx.session, args.csv_path)
    ctx.save_draft()
    print(f"Staged {summary.created} new and {summary.updated} updated item(s)")
    return 0


def _handle_stage_diff(args: argparse.Namespace) -> int:
    ctx = _open(args)
    rows = ctx.session.rows()
    pending = [row for row in rows if row.status is not RowStatus.PUBLISHED]
    summary = summarize(rows)
    if args.format == "json":
        data = {
            "summary": {
                "new": summary.new,
                "modified": summary.modified,
                "pending_delete": summary.pending_delete,
                "published": summary.published,
                "pending": summary.pending,
            },
            "changes": [_row_dict(row) for row in pending],
        }
        print(json.dumps(data, ensure_ascii=False, indent=2))
        return 0
    if not summary.pending:
        print("<no staged changes>")
        return 0
    _print_rows_table(pending)
    print(_summary_line(rows))
    return 0


def _handle_stage_discard(args: argparse.Namespace) -> int:
    ctx = _open(args)
    count = ctx.session.discard()
    ctx.drafts.delete(ctx.tenant)
    LOGGER.info(
        "Staged edits discarded",
        extra={"event": "cli.command", "command": "stage.discard", "changes": count},
    )
    print(f"Discarded {count} staged change(s)")
    return 0


def _handle_publish(args: argparse.Namespace) -> int:
    ctx = _open(args)
    ledger = ctx.session.ledger
    if not ledger:
        print("Nothing to publish")
        return 0

    batch_size = ctx.config.store.max_batch_size
    if args.dry_run:
        for index, chunk in enumerate(chunked(plan(ledger.entries()), batch_size)):
            print(f"batch {index}: " + ", ".join(f"{e.kind.value}:{e.change_id}" for e in chunk))
        return 0

    print(_summary_line(ctx.session.rows()))
    if not args.yes and not _confirm(f"Publish {len(ledger)} change(s) to {ctx.tenant}?"):
        print("Publish aborted")
        return 1

    orchestrator = PublishOrchestrator(
        ctx.store,
        SnapshotLoader(ctx.store, ctx.tenant),
        MediaResolver(ctx.uploader, workers=ctx.config.upload.workers),
        max_batch_size=batch_size,
    )
    cancel = threading.Event()
    previous = signal.signal(signal.SIGINT, lambda *_: cancel.set())
    try:
        result = ctx.session.publish(orchestrator, cancel=cancel)
    finally:
        signal.signal(signal.SIGINT, previous)
    ctx.save_draft()

    print(json.dumps(result.as_dict(), ensure_ascii=False, indent=2))
    if result.ok:
        return 0
    if result.committed:
        print(
            f"warning: {result.committed} change(s) were already applied; "
            "reload the catalog before staging the remainder again",
            file=sys.stderr,
        )
    return 1


def _confirm(question: str) -> bool:
    try:
        answer = input(f"{question} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def _row_dict(row: ProjectedRow) -> dict[str, Any]:
    return {"id": row.id, "status": row.status.value, **row.payload.to_document()}


def _summary_line(rows: Sequence[ProjectedRow]) -> str:
    summary = summarize(rows)
    return (
        f"{summary.new} new, {summary.modified} modified, "
        f"{summary.pending_delete} pending delete, {summary.published} unchanged"
    )


def _print_rows_table(rows: Sequence[ProjectedRow]) -> None:
    headers = ("ID", "Status", "Section", "Name", "Price")
    table = [
        (row.id, row.status.value, row.payload.section, row.payload.name,
         f"{row.payload.price} {row.payload.currency}")
        for row in rows
    ]
    widths = [max([len(header), *(len(line[i]) for line in table)]) for i, header in enumerate(headers)]
    print(*(header.ljust(width) for header, width in zip(headers, widths)), sep="  ")
    for line in table:
        print(*(cell.ljust(width) for cell, width in zip(line, widths)), sep="  ")


__all__ = ["main"]
