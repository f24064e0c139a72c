"""Entry point for ``python -m swapdeploy``."""

from swapdeploy.cli import run

if __name__ == "__main__":
    run()
