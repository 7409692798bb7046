# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
sitesnap command line interface.

Usage:
    sitesnap create [--name NAME] [--full | --config-only]
    sitesnap list [--format table|csv|ids|json|count|yaml]
    sitesnap inspect <id|name>
    sitesnap restore <id|name> [--yes]
    sitesnap delete <id|name>
    sitesnap configure [service]
    sitesnap push <id|name> (--service NAME | --peer ALIAS)
    sitesnap pull <filename> [--service NAME]
    sitesnap receive

Logs go to stderr; command output goes to stdout. Exit status is 0 on
success and 1 on any error.
"""

import argparse
import asyncio
import csv
import getpass
import io
import json
import logging
import sys
from pathlib import Path
from typing import Iterable, List, Sequence

import structlog
import yaml

from sitesnap.catalog.store import CatalogStore
from sitesnap.config import BackupType, SnapshotConfig
from sitesnap.engine.core import LIST_FIELDS, SnapshotEngine, initialize_snapshot_root
from sitesnap.env import create_config_from_env
from sitesnap.exceptions import ConfirmationDeclined, RestoreError, SnapshotError, ValidationError
from sitesnap.transport.peer import decode_message, encode_message, error_response

LIST_FORMATS = ("table", "csv", "ids", "json", "count", "yaml")
SECRET_KEYS = ("secret",)


def configure_logging(verbose: bool = False) -> None:
    """Send structlog output to stderr; DEBUG with -v, INFO otherwise."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG if verbose else logging.INFO),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def render_table(rows: Sequence[dict], fields: Sequence[str]) -> str:
    widths = {f: max([len(f)] + [len(str(row.get(f, ""))) for row in rows]) for f in fields}
    border = "+" + "+".join("-" * (widths[f] + 2) for f in fields) + "+"

    def line(values: Iterable[str]) -> str:
        cells = [f" {value:<{widths[f]}} " for f, value in zip(fields, values)]
        return "|" + "|".join(cells) + "|"

    out = [border, line(fields), border]
    out.extend(line(str(row.get(f, "")) for f in fields) for row in rows)
    out.append(border)
    return "\n".join(out)


def render_rows(rows: Sequence[dict], fmt: str, fields: Sequence[str] = LIST_FIELDS) -> str:
    """Render snapshot rows in one of the list formats."""
    if fmt == "count":
        return str(len(rows))
    if fmt == "ids":
        return " ".join(str(row["id"]) for row in rows)

    selected = [{f: row.get(f, "") for f in fields} for row in rows]

    if fmt == "json":
        return json.dumps(selected)
    if fmt == "yaml":
        return yaml.safe_dump(selected, sort_keys=False, default_flow_style=False).rstrip()
    if fmt == "csv":
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=list(fields), lineterminator="\n")
        writer.writeheader()
        writer.writerows(selected)
        return buffer.getvalue().rstrip()
    if fmt == "table":
        return render_table(selected, fields)

    raise ValidationError(f"Unknown format: {fmt}", details={"formats": list(LIST_FORMATS)})


def render_item(item: dict, fmt: str = "table") -> str:
    """Render a single snapshot as Field/Value pairs."""
    if fmt == "json":
        return json.dumps(item)
    if fmt == "yaml":
        return yaml.safe_dump(item, sort_keys=False, default_flow_style=False).rstrip()
    pairs = [{"Field": key, "Value": value} for key, value in item.items()]
    return render_table(pairs, ("Field", "Value"))


def console_confirm(assume_yes: bool):
    async def confirm(question: str, summary: dict) -> bool:
        print("Warning: Please check the snapshot information before proceeding...", file=sys.stderr)
        print(render_item(summary))
        if assume_yes:
            return True
        answer = input(f"{question} [y/n] ")
        return answer.strip().lower() in ("y", "yes")

    return confirm


async def console_prompt(key: str) -> str:
    if key in SECRET_KEYS:
        return getpass.getpass(f"{key}: ")
    return input(f"{key}: ")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sitesnap",
        description="Snapshot, restore and transfer site backups",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--root", help="Snapshot root (default: $SITESNAP_ROOT or ~/.wp-cli/snapshots)")
    parser.add_argument("--path", dest="site_path", help="Site installation path passed to wp")

    commands = parser.add_subparsers(dest="command", required=True)

    create = commands.add_parser("create", help="Create a snapshot")
    create.add_argument("--name", help="Snapshot nice name")
    mode = create.add_mutually_exclusive_group()
    mode.add_argument("--full", action="store_true", help="Archive the whole content tree")
    mode.add_argument("--config-only", action="store_true", help="Store versions and media only (default)")

    list_cmd = commands.add_parser("list", help="List snapshots")
    list_cmd.add_argument("--format", choices=LIST_FORMATS, default="table")

    inspect = commands.add_parser("inspect", help="Show details of a snapshot")
    inspect.add_argument("ref", help="Snapshot id or name")
    inspect.add_argument("--format", choices=("table", "json", "yaml"), default="table")

    restore = commands.add_parser("restore", help="Restore a snapshot")
    restore.add_argument("ref", help="Snapshot id or name")
    restore.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    delete = commands.add_parser("delete", help="Delete a snapshot")
    delete.add_argument("ref", help="Snapshot id or name")

    configure = commands.add_parser("configure", help="Store storage service credentials")
    configure.add_argument("service", nargs="?", default="aws")

    push = commands.add_parser("push", help="Send a snapshot to a storage service or peer")
    push.add_argument("ref", help="Snapshot id or name")
    target = push.add_mutually_exclusive_group(required=True)
    target.add_argument("--service", help="Storage service name, e.g. aws")
    target.add_argument("--peer", help="Peer alias from SITESNAP_PEERS")

    pull = commands.add_parser("pull", help="Download and catalog an archive")
    pull.add_argument("filename", help="Archive name in the storage service")
    pull.add_argument("--service", default="aws")

    commands.add_parser("receive", help="Accept an archive pushed by a peer (reads stdin)")

    return parser


def load_config(args: argparse.Namespace) -> SnapshotConfig:
    config = create_config_from_env()
    overrides = {}
    if args.root:
        overrides["snapshot_root"] = args.root
    if args.site_path:
        overrides["site_path"] = args.site_path
    if overrides:
        config = config.with_updates(
            **{key: Path(value).expanduser().absolute() for key, value in overrides.items()}
        )
    return config


async def serve_receive(engine: SnapshotEngine, stdin=None, stdout=None) -> int:
    """Answer peer request lines from stdin with response lines on stdout."""
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout.buffer
    failures = 0

    for line in stdin:
        if not line.strip():
            continue
        try:
            request = decode_message(line)
        except ValidationError as e:
            response = error_response(e.message)
        else:
            response = await engine.receive(request)

        if response.get("status") != "ok":
            failures += 1
        stdout.write(encode_message(response))
        stdout.flush()

    return 1 if failures else 0


async def run_command(args: argparse.Namespace, config: SnapshotConfig) -> int:
    async with CatalogStore(config.catalog_path) as catalog:
        engine = SnapshotEngine(config, catalog)

        if args.command == "create":
            mode = BackupType.FULL if args.full else BackupType.CONFIG_ONLY
            result = await engine.create(args.name, mode)
            print(f"Success: Site backup completed. id={result.snapshot_id} name={result.name} size={result.archive_size}")

        elif args.command == "list":
            print(render_rows(await engine.list_snapshots(), args.format))

        elif args.command == "inspect":
            print(render_item(await engine.inspect(args.ref), args.format))

        elif args.command == "restore":
            result = await engine.restore(args.ref, console_confirm(args.yes))
            for name in result.skipped_extensions:
                print(f"Warning: {name} must be installed manually", file=sys.stderr)
            print("Success: Site restore completed.")

        elif args.command == "delete":
            record = await engine.delete(args.ref)
            print(f"Success: Deleted backup {record['id']} ({record['name']}).")

        elif args.command == "configure":
            await engine.configure(args.service, console_prompt)
            print(f"Success: Stored settings for {args.service}.")

        elif args.command == "push":
            outcome = await engine.push(args.ref, service=args.service, peer=args.peer)
            print(f"Success: Pushed backup {outcome['snapshot_id']} to {args.service or args.peer}.")

        elif args.command == "pull":
            result = await engine.pull(args.filename, args.service)
            print(f"Success: Imported backup. Restore it with: sitesnap restore {result.snapshot_id}")

        elif args.command == "receive":
            return await serve_receive(engine)

    return 0


def main(argv: List[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = load_config(args)
        initialize_snapshot_root(config)
        return asyncio.run(run_command(args, config))
    except ConfirmationDeclined:
        print("Restore cancelled.", file=sys.stderr)
        return 1
    except RestoreError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        if e.completed_steps:
            print(f"Completed steps: {', '.join(e.completed_steps)}", file=sys.stderr)
        return 1
    except SnapshotError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
