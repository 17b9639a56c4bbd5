# esplink/cli/main.py
from __future__ import annotations

import logging
from typing import Optional

from esplink.core.errors import EspLinkError

from esplink.cli.args import parse_args
from esplink.cli.commands import COMMANDS, configure_logging, load_config

log = logging.getLogger(__name__)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose, args.log_file)

    try:
        cfg = load_config(args.config)
        handler = COMMANDS.get(args.cmd)
        if handler is None:
            return 2
        return handler(args, cfg)
    except EspLinkError as e:
        log.debug("CLI_COMMAND_FAILED cmd=%s code=%s details=%s", args.cmd, e.code, e.details)
        print(f"ERROR: {e.message}")
        if e.hint:
            print(f"Hint: {e.hint}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
