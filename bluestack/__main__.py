"""Allow ``python -m bluestack``."""

from bluestack.cli import cli

if __name__ == "__main__":
    cli()
