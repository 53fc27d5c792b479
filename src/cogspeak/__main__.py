"""Entry point for running cogspeak as a module."""

from .cli import app


def main() -> None:
    """Main entry point for the cogspeak CLI application."""
    app()


if __name__ == "__main__":
    main()
