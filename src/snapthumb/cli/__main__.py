"""CLI entry point for snapthumb.cli module.

Enables execution via: python -m snapthumb.cli --owner-id ID --url URL
"""

from snapthumb.cli.generate import main

if __name__ == "__main__":
    main()
