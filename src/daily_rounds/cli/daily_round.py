"""Admin command line for generating rounds, reporting winners and reading standings."""

import argparse
import datetime
import json
import logging
import sys
from typing import Any

from dotenv import load_dotenv

from daily_rounds.config import load_settings
from daily_rounds.errors import RoundEngineError
from daily_rounds.logging import configure_logging
from daily_rounds.services.round_service import RoundService, build_round_service

logger = logging.getLogger(__name__)


def valid_date(date_string: str) -> datetime.date:
    """Validate and parse a date string in YYYY-MM-DD format."""
    try:
        return datetime.date.fromisoformat(date_string)
    except ValueError as exc:
        msg = "Not a valid date: '{0}'.".format(date_string)
        raise argparse.ArgumentTypeError(msg) from exc


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(prog="daily-round")
    sub = parser.add_subparsers(dest="command", required=True)

    generate = sub.add_parser("generate", help="Create or replace the day's round")
    generate.add_argument("-m", "--max-players", type=int, default=None, help="Cap the roster size")
    generate.add_argument("-d", "--date", type=valid_date, default=None, help="Round date (YYYY-MM-DD)")

    show = sub.add_parser("show", help="Print the stored round")
    show.add_argument("-d", "--date", type=valid_date, default=None, help="Round date (YYYY-MM-DD)")
    show.add_argument("--auto", action="store_true", help="Generate the round if none exists yet")

    winner = sub.add_parser("winner", help="Record the winning slot")
    winner.add_argument("slot", type=int, help="Winning entrant slot")
    winner.add_argument("-d", "--date", type=valid_date, default=None, help="Round date (YYYY-MM-DD)")

    leaderboard = sub.add_parser("leaderboard", help="Print wins per handle")
    leaderboard.add_argument("-t", "--top", type=int, default=None, help="Only show the first N handles")

    sub.add_parser("bio", help="Print the top-three bio line")
    sub.add_parser("health", help="Check the round store")

    return parser.parse_args(argv)


def run_command(service: RoundService, args: argparse.Namespace) -> Any:
    """Dispatch one sub-command and return its printable result."""
    if args.command == "generate":
        return service.generate(max_players=args.max_players, round_date=args.date).to_dict()
    if args.command == "show":
        if args.auto:
            return service.get_or_generate_round(args.date).to_dict()
        rnd = service.get_current_round(args.date)
        if rnd is None:
            round_date = args.date or service.today()
            raise SystemExit("No round for {} yet. Run 'daily-round generate' first.".format(round_date))
        return rnd.to_dict()
    if args.command == "winner":
        return service.record_winner(args.slot, round_date=args.date).to_dict()
    if args.command == "leaderboard":
        entries = service.leaderboard()
        if args.top is not None:
            entries = entries[: args.top]
        return [entry.to_dict() for entry in entries]
    if args.command == "bio":
        return service.bio_line()
    if args.command == "health":
        return service.health()
    raise SystemExit("Unknown command {}".format(args.command))


def _init_runtime() -> None:
    """Initialize runtime-only side effects for CLI execution."""
    load_dotenv()
    configure_logging()


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    _init_runtime()

    service = build_round_service(load_settings())
    try:
        result = run_command(service, args)
    except RoundEngineError as err:
        logger.error("%s failed: %s", args.command, err)
        raise SystemExit(str(err)) from err
    finally:
        service.store.close()

    if isinstance(result, str):
        sys.stdout.write(result + "\n")
    else:
        sys.stdout.write(json.dumps(result, indent=2, ensure_ascii=False) + "\n")


if __name__ == "__main__":
    main()
