import logging
import os
import sys
from pathlib import Path

import fncli

from . import db
from .core.errors import StudioError

_discovered = False


def _configure_logging() -> None:
    level = logging.DEBUG if os.environ.get("STUDIO_DEBUG") else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _discover() -> None:
    global _discovered
    if not _discovered:
        fncli.autodiscover(Path(__file__).parent, "studio")
        _discovered = True


def main(argv: list[str] | None = None):
    _configure_logging()
    db.init()
    _discover()

    user_args = sys.argv[1:] if argv is None else argv
    try:
        code = fncli.dispatch(["studio", *(user_args or ["today"])])
    except StudioError as e:
        sys.stderr.write(f"{e}\n")
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
