"""CLI entry point: crawl, resource-types."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any

from scripts.directory_sync.config import load_config
from scripts.directory_sync.context import SyncContext, background
from scripts.directory_sync.crawler import CrawlAborted, Crawler
from scripts.directory_sync.logging_config import configure_logging
from scripts.directory_sync.orchestrator import SyncOrchestrator
from scripts.directory_sync.outcomes import SyncError

logger = logging.getLogger("directory_sync.cli")


def _json_line_emitter(stream: Any = None):
    stream = stream or sys.stdout

    def emit(kind: str, record: Any) -> None:
        stream.write(json.dumps({"kind": kind, "record": record.to_dict()}, default=str))
        stream.write("\n")

    return emit


def cmd_crawl(args: argparse.Namespace) -> int:
    """Crawl every enabled resource type, writing JSON lines to stdout."""
    config = load_config()
    orchestrator = SyncOrchestrator.from_config(
        config.slack, timeout=config.request_timeout_seconds,
    )
    crawler = Crawler(
        orchestrator,
        emit=_json_line_emitter(),
        max_retries=config.max_retries,
        backoff_base_seconds=config.backoff_base_seconds,
        resource_types=args.resource_type or config.resource_types or None,
    )
    ctx = SyncContext.with_timeout(args.timeout) if args.timeout else background()

    try:
        results = crawler.run(ctx)
    except CrawlAborted as exc:
        logger.error(
            "Crawl aborted: %s", exc,
            extra={"resource_type": exc.resource_type, "outcome": exc.outcome.category.value},
        )
        return 2
    except SyncError as exc:
        logger.error("Crawl failed: %s", exc)
        return 1

    logger.info("Crawl results: %s", results)
    return 0


def cmd_resource_types(args: argparse.Namespace) -> int:
    """Print the resource types enabled by the current configuration."""
    config = load_config()
    orchestrator = SyncOrchestrator.from_config(config.slack)
    for resource_type in orchestrator.resource_types:
        syncer = orchestrator.syncer(resource_type)
        print(json.dumps(syncer.describe()))
    return 0


def main() -> None:
    """Main CLI entry point."""
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    parser = argparse.ArgumentParser(
        prog="directory-sync",
        description="Resumable Slack directory crawler",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    crawl_parser = subparsers.add_parser("crawl", help="Crawl the directory to completion")
    crawl_parser.add_argument(
        "--resource-type", "-t",
        action="append",
        default=[],
        help="Resource type to crawl (repeatable; default: all enabled)",
    )
    crawl_parser.add_argument(
        "--timeout",
        type=float,
        default=0,
        help="Overall deadline in seconds (default: none)",
    )
    crawl_parser.set_defaults(func=cmd_crawl)

    types_parser = subparsers.add_parser(
        "resource-types", help="List the resource types enabled by configuration",
    )
    types_parser.set_defaults(func=cmd_resource_types)

    args = parser.parse_args()
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
