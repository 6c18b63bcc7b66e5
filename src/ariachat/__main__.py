"""ariachat CLI entry point."""

from ariachat.cli import app

if __name__ == "__main__":
    app()
