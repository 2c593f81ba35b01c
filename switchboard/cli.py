"""Command line interface for the provider switchboard"""

import argparse
import asyncio
import json
import sys
from typing import Any, List, Optional

from switchboard.core.config import get_config
from switchboard.core.database import close_database, init_database
from switchboard.core.exceptions import ExternalApplyError, SwitchboardError
from switchboard.core.http_client import close_http_client
from switchboard.core.logging import get_logger, setup_logging
from switchboard.models import AppType
from switchboard.services import ProviderStore, Switchboard

logger = get_logger()


def _dump(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Switch API providers for Claude, Codex and Gemini CLIs"
    )
    parser.add_argument(
        "--app",
        choices=[a.value for a in AppType],
        default=AppType.CLAUDE.value,
        help="Target app (default: claude)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show database status")
    sub.add_parser("list", help="List providers (credentials masked)")
    sub.add_parser("current", help="Show the current provider")
    sub.add_parser("reapply", help="Write the current provider into the app config again")

    switch = sub.add_parser("switch", help="Make a provider current and apply it")
    switch.add_argument("provider_id")
    switch.add_argument(
        "--expect",
        dest="expected_current_id",
        default=None,
        help="Only switch if this provider id is current ('' for none)",
    )

    probe = sub.add_parser("probe", help="Probe one provider, or all of the app")
    probe.add_argument("provider_id", nargs="?")
    probe.add_argument("--timeout", type=float, default=None, help="Seconds per probe")
    probe.add_argument("--max-concurrent", type=int, default=None)
    return parser


async def run(args: argparse.Namespace) -> int:
    db = await init_database()
    board = Switchboard(ProviderStore(db))
    try:
        if args.command == "status":
            _dump(board.status())
        elif args.command == "list":
            _dump([v.model_dump(mode="json") for v in await board.list_providers(args.app)])
        elif args.command == "current":
            view = await board.current_provider(args.app)
            _dump(view.model_dump(mode="json") if view else None)
        elif args.command == "reapply":
            result = await board.reapply_current(args.app)
            _dump({"written_files": [str(p) for p in result.written_files]})
        elif args.command == "switch":
            result = await board.switch_provider(
                args.provider_id, args.app, args.expected_current_id
            )
            _dump({"success": True, "message": result.message, "previous": result.previous_id})
        elif args.command == "probe":
            if args.provider_id:
                results = [await board.probe_provider(args.provider_id, args.timeout)]
            else:
                results = await board.probe_all(args.app, args.timeout, args.max_concurrent)
            _dump([r.model_dump(mode="json") for r in results])
        return 0
    except ExternalApplyError as e:
        if e.committed:
            logger.error(f"Switch committed but not applied: {e}")
            return 3
        logger.error(str(e))
        return 2
    except SwitchboardError as e:
        logger.error(str(e))
        return 1
    finally:
        await close_http_client()
        await close_database()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    config = get_config()
    setup_logging(log_level=config.log_level, log_file=config.log_file)
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
