"""Module entrypoint for running chapterflow as ``python -m chapterflow``."""

from __future__ import annotations

from chapterflow.cli import main


if __name__ == "__main__":
    main()
