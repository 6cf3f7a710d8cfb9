"""threadkeeper entry point."""

import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from .cli import run_cli
from .config import Settings
from .context import Strategy


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line argument parser."""
    parser = argparse.ArgumentParser(
        prog="threadkeeper",
        description="Chat with bounded, branch-aware context",
    )
    parser.add_argument("--conversation", help="Resume a conversation by id")
    parser.add_argument(
        "--strategy",
        choices=[s.value for s in Strategy],
        help="Context strategy (default: summarization)",
    )
    parser.add_argument("--window", type=int, help="Window size for windowed strategies")
    parser.add_argument("--db", type=Path, help="Path to the SQLite database")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    load_dotenv(find_dotenv(usecwd=True))

    args = build_parser().parse_args(sys.argv[1:] if argv is None else argv)

    settings = Settings.from_env()
    if args.strategy:
        settings.strategy = Strategy.parse(args.strategy)
    if args.window is not None:
        settings.window_size = args.window
    if args.db is not None:
        settings.db_path = args.db

    asyncio.run(run_cli(settings, conversation_id=args.conversation))


if __name__ == "__main__":
    main()
