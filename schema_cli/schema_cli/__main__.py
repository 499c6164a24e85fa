"""Entry point for `python -m schema_cli` and `dbschema` console script."""

from __future__ import annotations

from schema_cli.app import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
