"""CLI command for running the HTTP API and its worker under uvicorn.

Usage:
    python -m snapthumb.cli.serve [--host HOST] [--port PORT] [--reload]

Host and port default to the HOST and PORT settings.
"""

import sys
from argparse import ArgumentParser, Namespace
from typing import Optional, Sequence

import uvicorn
from pydantic import ValidationError

from snapthumb.core.config import Settings


def parse_args(argv: Optional[Sequence[str]] = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(description="Serve the thumbnail API")
    parser.add_argument("--host", default=None, help="Bind address (default: HOST setting)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: PORT setting)")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    return parser.parse_args(argv)


def run(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)

    try:
        settings = Settings()  # type: ignore[call-arg]
    except ValidationError as e:
        print(f"Error: Invalid configuration\n{e}", file=sys.stderr)
        return 1

    # The app module builds its own Settings; logging is configured in its lifespan
    uvicorn.run(
        "snapthumb.app:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=settings.log_level.lower(),
        reload=args.reload,
    )
    return 0


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(run())


if __name__ == "__main__":
    main()
