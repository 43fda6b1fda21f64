"""Entry point — python -m srvdiag."""

import argparse
import logging
import sys

from pydantic import ValidationError


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="srvdiag",
        description="Web server, PHP worker and MySQL/MariaDB diagnostics",
    )
    parser.add_argument(
        "-c", "--config",
        help="Path to configuration YAML file",
        default=None,
    )
    parser.add_argument(
        "--report",
        action="store_true",
        help="Print and save a one-shot report instead of starting the dashboard",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    from srvdiag.config import load_config

    try:
        settings = load_config(args.config)
    except (OSError, ValueError, ValidationError) as exc:
        print(f"srvdiag: invalid configuration: {exc}", file=sys.stderr)
        return 2

    if args.report:
        from srvdiag.report import run_report

        try:
            run_report(settings)
        except OSError as exc:
            logging.getLogger("srvdiag").error("Cannot write report: %s", exc)
            return 1
        return 0

    from srvdiag.app import SrvdiagApp

    SrvdiagApp(settings).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
