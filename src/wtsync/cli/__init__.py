"""
CLI interface for wtsync using Typer.
"""

# Import shared state (apps, options, utilities) - must come first
from ._shared import app  # noqa: F401

# Import submodules to register their commands with the Typer apps
from . import status  # noqa: F401
from . import cache  # noqa: F401
from . import config  # noqa: F401


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
