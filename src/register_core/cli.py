from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .config import ConfigError, load_config
from .exceptions import ApiError, ImportDataError, RegisterStateError
from .logging import configure_logging
from .session import RegisterSession


def _session(args: argparse.Namespace) -> RegisterSession:
    return RegisterSession.create(load_config(args.env_file))


def _print(payload: object) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _write_or_print(text: str, output: str | None) -> None:
    if output:
        Path(output).write_text(text, encoding="utf-8")
        _print({"written": output})
    else:
        print(text)


def cmd_status(args: argparse.Namespace) -> None:
    session = _session(args)
    shift = session.shifts.current()
    drawer = session.drawer.state()
    _print(
        {
            "register_id": session.config.register_id,
            "sync": session.sync.sync_status().model_dump(mode="json"),
            "storage": session.sync.storage_usage().model_dump(mode="json"),
            "drawer": {
                "is_open": drawer.is_open,
                "current_balance": drawer.current_balance,
                "expected_balance": drawer.expected_balance,
            },
            "shift": shift.model_dump(mode="json") if shift else None,
            "holds": session.holds.statistics().model_dump(mode="json"),
        }
    )


def cmd_sync(args: argparse.Namespace) -> None:
    session = _session(args)

    async def run():
        await session.sync.check_connection()
        return await session.sync.trigger_sync()

    result = asyncio.run(run())
    _print({**result.model_dump(mode="json"), "failed": result.failed})


def cmd_probe(args: argparse.Namespace) -> None:
    session = _session(args)
    online = asyncio.run(session.monitor.check_connection())
    _print({"online": online})


def cmd_cache_catalog(args: argparse.Namespace) -> None:
    session = _session(args)
    cached = asyncio.run(session.sync.cache_catalog(args.branch_id))
    _print({"branch_id": args.branch_id, "cached": cached})


def cmd_cleanup(args: argparse.Namespace) -> None:
    session = _session(args)
    days = args.days if args.days is not None else session.config.retention_days
    _print(
        {
            "days": days,
            "offline_records_removed": session.sync.cleanup_old_data(days),
            "held_orders_removed": session.holds.cleanup(days),
        }
    )


def cmd_drawer_reset(args: argparse.Namespace) -> None:
    if not args.yes:
        raise SystemExit("refusing to reset the cash drawer without --yes")
    session = _session(args)
    state = session.drawer.reset()
    _print({"is_open": state.is_open, "transactions": len(state.transactions)})


def cmd_holds_export(args: argparse.Namespace) -> None:
    _write_or_print(_session(args).holds.export_orders(), args.output)


def cmd_holds_import(args: argparse.Namespace) -> None:
    payload = Path(args.input).read_text(encoding="utf-8")
    _print({"imported": _session(args).holds.import_orders(payload)})


def cmd_shifts_export(args: argparse.Namespace) -> None:
    _write_or_print(_session(args).shifts.export_shifts(), args.output)


def cmd_shifts_import(args: argparse.Namespace) -> None:
    payload = Path(args.input).read_text(encoding="utf-8")
    _print({"imported": _session(args).shifts.import_shifts(payload)})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="register-core", description="Point-of-sale register maintenance CLI")
    parser.add_argument("--env-file", default=None)
    parser.add_argument("--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    status_parser = subparsers.add_parser("status")
    status_parser.set_defaults(func=cmd_status)

    sync_parser = subparsers.add_parser("sync")
    sync_parser.set_defaults(func=cmd_sync)

    probe_parser = subparsers.add_parser("probe")
    probe_parser.set_defaults(func=cmd_probe)

    catalog_parser = subparsers.add_parser("cache-catalog")
    catalog_parser.add_argument("--branch-id", required=True)
    catalog_parser.set_defaults(func=cmd_cache_catalog)

    cleanup_parser = subparsers.add_parser("cleanup")
    cleanup_parser.add_argument("--days", type=int, default=None)
    cleanup_parser.set_defaults(func=cmd_cleanup)

    reset_parser = subparsers.add_parser("drawer-reset")
    reset_parser.add_argument("--yes", action="store_true")
    reset_parser.set_defaults(func=cmd_drawer_reset)

    for name, func in (("holds-export", cmd_holds_export), ("shifts-export", cmd_shifts_export)):
        export_parser = subparsers.add_parser(name)
        export_parser.add_argument("--output", default=None)
        export_parser.set_defaults(func=func)

    for name, func in (("holds-import", cmd_holds_import), ("shifts-import", cmd_shifts_import)):
        import_parser = subparsers.add_parser(name)
        import_parser.add_argument("--input", required=True)
        import_parser.set_defaults(func=func)

    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)
    try:
        args.func(args)
    except ApiError as exc:
        _print({"error": exc.code, "message": exc.message, "trace_id": exc.trace_id})
        raise SystemExit(1) from exc
    except RegisterStateError as exc:
        _print({"error": exc.code, "message": str(exc), "ref": exc.ref})
        raise SystemExit(1) from exc
    except (ConfigError, ImportDataError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
