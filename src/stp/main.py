from __future__ import annotations

from stp.cli import cli


def main() -> None:
    cli(prog_name="stp")


if __name__ == "__main__":
    main()
