"""
CLI entrypoint for running the MarketDesk FastAPI service.
"""

from __future__ import annotations

import argparse
import logging
import os

import uvicorn

from apps.api.main.app import CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _build_parser() -> argparse.ArgumentParser:
    """
    Build command-line parser for API process.

    Args:
        None.
    Returns:
        argparse.ArgumentParser: Configured parser.
    Assumptions:
        Defaults are suitable for local development.
    Raises:
        None.
    Side Effects:
        None.
    """
    parser = argparse.ArgumentParser(prog="marketdesk-api")
    parser.add_argument("--host", default="0.0.0.0", help="Bind host")
    parser.add_argument("--port", type=int, default=8000, help="Bind port")
    parser.add_argument(
        "--config",
        default=os.environ.get(CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH),
        help="Path to marketdesk runtime YAML",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser


def main(argv: list[str] | None = None) -> int:
    """
    Run API process using uvicorn.

    Args:
        argv: Optional command arguments without program name.
    Returns:
        int: Process exit code.
    Assumptions:
        Import path `apps.api.main.app:create_app` is available in PYTHONPATH.
    Raises:
        None.
    Side Effects:
        Sets `MARKETDESK_CONFIG` for the app factory and starts HTTP server loop.
    """
    args = _build_parser().parse_args(argv)
    _configure_logging(args.log_level)
    os.environ[CONFIG_PATH_ENV] = args.config
    uvicorn.run(
        "apps.api.main.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
