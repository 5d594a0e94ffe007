"""Entry point for `python -m agency_cli` and the `agency` console script."""

from __future__ import annotations

from agency_cli.app import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
