"""Command-line entry point: ``lexiconbuilder <stage> [--force] [--verbose]``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from lexiconbuilder.pipeline.run import RUNNERS
from lexiconbuilder.settings import Settings

logger = logging.getLogger("lexiconbuilder")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lexiconbuilder", description="Bilingual lexicon ingestion pipeline")
    parser.add_argument("stage", choices=list(RUNNERS), help="Pipeline stage to run")
    parser.add_argument("--force", action="store_true", help="Re-run the stage even if its output exists")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--source",
        action="append",
        dest="sources",
        metavar="NAME",
        help="Restrict fetch/parse/normalize to a source (repeatable)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = Settings()
    runner = RUNNERS[args.stage]
    try:
        asyncio.run(runner(settings, force=args.force, sources=args.sources))
    except Exception:
        logger.exception(f"Stage {args.stage} failed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
