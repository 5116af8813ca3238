"""Provision N SQLite databases in parallel, load them, and report engine status.

Each instance gets one writer that inserts ``--write-rows`` rows in batched
transactions, then ``--readers`` read-only connections that scan the table
concurrently. Once every instance is up, the per-connection status counters
(cache, lookaside, schema, statement memory, cache spills) are summed across
all connections and reported. The databases stay open until SIGINT/SIGTERM.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from . import __version__
from .config import load_json_config, resolve_config, validate_config
from .errors import HarnessError
from .orchestrator import run

LOGS_DIR = Path.cwd() / "logs"


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="fanout-bench",
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Path to a JSON config file (keys match the long options).")
    parser.add_argument(
        "--allow-env-overrides",
        action="store_true",
        help="Let FANOUT_* environment variables override config file values (default: off).",
    )
    parser.add_argument("--instances", type=int, help="Databases to provision in parallel (default: 10).")
    parser.add_argument("--write-rows", type=int, help="Rows inserted into each database (default: 10000).")
    parser.add_argument("--readers", type=int, help="Concurrent read-only connections per database (default: 10).")
    parser.add_argument("--batch-size", type=int, help="Rows per write transaction (default: 100).")
    parser.add_argument("--min-len", type=int, help="Minimum random string length (default: 10).")
    parser.add_argument("--max-len", type=int, help="Exclusive maximum random string length (default: 1000).")
    parser.add_argument("--storage-root", help="Directory for the temporary databases (default: system temp).")
    parser.add_argument(
        "--page-cache-bytes",
        type=int,
        help="Per-connection page-cache ceiling in bytes, applied to every connection as it opens (default: engine default).",
    )
    parser.add_argument("--artifacts-dir", help="Where summary/CSV/PNG artifacts go (default: ./artifacts).")
    parser.add_argument("--no-plot", action="store_true", help="Skip the status chart.")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    parser.add_argument(
        "--log-file",
        default=os.getenv("FANOUT_LOG_FILE"),
        help="Optional path to a log file; default is logs/run_<timestamp>.log",
    )
    return parser.parse_args(argv)


def configure_logging(args: argparse.Namespace) -> Path:
    """Set up logging to stdout and a file."""

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if args.log_file:
        log_path = Path(args.log_file).expanduser()
    else:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_path = LOGS_DIR / f"run_{timestamp}.log"

    log_path.parent.mkdir(parents=True, exist_ok=True)
    handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(message)s",
        handlers=handlers,
        force=True,
    )
    return log_path


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    log_path = configure_logging(args)
    logging.info("Logging to %s", log_path)

    config, env_overrides, ignored_env = resolve_config(args, load_json_config(args.config))
    validate_config(config)
    if env_overrides:
        logging.info("Environment overrides applied: %s", ", ".join(env_overrides))
    if ignored_env:
        logging.warning(
            "Ignoring environment variable(s) %s; pass --allow-env-overrides to use them",
            ", ".join(ignored_env),
        )
    for key, value in config.as_dict().items():
        logging.debug("config %s=%s", key, value)

    try:
        run(config)
    except HarnessError as exc:
        logging.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
