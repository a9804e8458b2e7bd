from __future__ import annotations

import argparse
import logging
import sys
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from autosecret.adapters.kubernetes import render_crd_yaml
from autosecret.app import start_controller
from autosecret.common.logging import configure_logging
from autosecret.domain.reconciliation import StartupError

if TYPE_CHECKING:
    from collections.abc import Sequence

log = logging.getLogger(__name__)

DESCRIPTION = "auto-secret controller"


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="autosecret",
        description=DESCRIPTION,
        epilog="Without flags the controller runs until SIGINT/SIGTERM. "
        "Press <enter> to force a reconciliation of all objects.",
    )
    parser.add_argument(
        "--crd",
        action="store_true",
        help="Print the AutoSecret CustomResourceDefinition and exit",
    )
    return parser.parse_args(list(argv))


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    load_dotenv()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)

    if parsed_args.crd:
        sys.stdout.write(render_crd_yaml())
        return

    configure_logging()
    try:
        start_controller()
    except StartupError:
        log.exception("Unable to start the controller")
        sys.exit(1)
    except Exception:
        log.exception("Controller stopped unexpectedly")
        sys.exit(1)
    except KeyboardInterrupt:
        log.info("Closed by user (Ctrl+C)")


if __name__ == "__main__":
    main()
