"""CLI command for generating a single thumbnail in-process.

Usage:
    python -m snapthumb.cli.generate --owner-id ID --url URL [OPTIONS]

Examples:
    # Capture a page into data/thumbnails/item-42.jpg
    python -m snapthumb.cli.generate --owner-id item-42 --url https://example.com

    # Provide a title and category for the fallback placeholder
    python -m snapthumb.cli.generate --owner-id item-42 --url https://example.com \\
        --title "Example Domain" --category Technology

    # Verbose logging
    python -m snapthumb.cli.generate --owner-id item-42 --url https://example.com -v
"""

import asyncio
import json
import sys
from argparse import ArgumentParser, Namespace
from typing import Optional, Sequence

import structlog
from pydantic import ValidationError

from snapthumb.core.config import Settings, configure_logging
from snapthumb.models.thumbnail_job import JobStatus
from snapthumb.services.exceptions import InvalidOwnerIdError
from snapthumb.services.thumbnail_service import ThumbnailService
from snapthumb.workers.thumbnail_worker import process_single_job

logger = structlog.get_logger()


def parse_args(argv: Optional[Sequence[str]] = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Generate one thumbnail and print the job as JSON",
        epilog="Falls back to a synthesized placeholder when every capture strategy fails",
    )

    parser.add_argument("--owner-id", required=True, help="Artifact owner (used as filename)")
    parser.add_argument("--url", required=True, help="Page to capture")
    parser.add_argument("--title", default="", help="Title shown on a synthesized placeholder")
    parser.add_argument("--category", default="", help="Category selecting placeholder colors")

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


async def async_main(
    argv: Optional[Sequence[str]] = None, service: Optional[ThumbnailService] = None
) -> int:
    """Main CLI entry point (async).

    Args:
        argv: Command-line arguments (sys.argv when omitted)
        service: Pre-built service to run the job on (built from env vars when omitted);
            it is closed before returning either way

    Returns:
        Exit code: 0 (completed), 2 (failed, placeholder written), 1 (error)
    """
    args = parse_args(argv)

    if service is not None:
        settings = service.settings
    else:
        try:
            settings = Settings()  # type: ignore[call-arg]
        except ValidationError as e:
            print(f"Error: Invalid configuration\n{e}", file=sys.stderr)
            return 1

    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    if service is None:
        service = ThumbnailService(settings)
    try:
        job_id = service.enqueue(
            owner_id=args.owner_id,
            source_url=args.url,
            title=args.title,
            category=args.category,
        )
        # Processed directly rather than by the worker loop
        service.pop_pending()
        logger.info("cli.started", job_id=job_id, owner_id=args.owner_id, source_url=args.url)

        job = await process_single_job(service, job_id)

    except InvalidOwnerIdError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        print("\nGeneration interrupted by user", file=sys.stderr)
        return 130  # Standard exit code for SIGINT

    except Exception as e:
        logger.error(
            "cli.unexpected_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        return 1

    finally:
        await service.close()

    if job is None:
        print("Error: Job disappeared before processing", file=sys.stderr)
        return 1

    print(json.dumps(job.model_dump(mode="json"), indent=2))

    if job.status == JobStatus.COMPLETED:
        logger.info("cli.completed", job_id=job.id, strategy=job.result and job.result.strategy)
        return 0
    logger.warning("cli.failed", job_id=job.id, error=job.result and job.result.error)
    return 2


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
