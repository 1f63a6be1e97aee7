from __future__ import annotations

import argparse
import dataclasses
import logging
import sys

from fanout.app import create_app
from fanout.config import ConfigError, load_dependencies
from fanout.lifecycle import Lifecycle, ServeError
from fanout.logging_setup import configure_logging
from fanout.settings import HEADER_MERGE_POLICIES, MODES, Settings, parse_listen_addr

logger = logging.getLogger("fanout")


def build_parser(defaults: Settings) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="HTTP fan-out harness for latency and chaos testing")
    p.add_argument("--http-addr", "--httpAddr", dest="http_addr", default=defaults.http_addr,
                   help="HTTP address used to listen")
    p.add_argument("--conf", dest="conf_path", default=defaults.conf_path, help="Path to configuration file")
    p.add_argument("--wait", dest="wait_ms", type=int, default=defaults.wait_ms,
                   help="Wait this time (in ms) before responding the request")
    p.add_argument("--welcome-message", "--welcomeMessage", dest="welcome_message",
                   default=defaults.welcome_message, help="Message prepended to the verbose response")
    p.add_argument("--mode", choices=MODES, default=defaults.mode,
                   help="verbose: text report; status: synthesized status code only")
    p.add_argument("--header-merge", choices=HEADER_MERGE_POLICIES, default=defaults.header_merge,
                   help="How dependency response headers with the same key are combined")
    p.add_argument("--dependency-timeout", dest="dependency_timeout_s", type=float,
                   default=defaults.dependency_timeout_s, help="Per-dependency call timeout in seconds")
    p.add_argument("--shutdown-grace", dest="shutdown_grace_s", type=float, default=defaults.shutdown_grace_s,
                   help="Seconds in-flight requests may take to finish on shutdown")
    p.add_argument("--log-level", default=defaults.log_level, help="Logging level")
    return p


def main(argv: list[str] | None = None) -> int:
    defaults = Settings.from_env()
    args = build_parser(defaults).parse_args(argv)
    settings = dataclasses.replace(defaults, **vars(args))

    try:
        settings.validate()
        host, port = parse_listen_addr(settings.http_addr)
    except ValueError as e:
        configure_logging()
        logger.critical("%s", e)
        return 1

    configure_logging(settings.log_level)

    try:
        dependencies = load_dependencies(settings.conf_path)
    except ConfigError as e:
        logger.critical("%s", e)
        return 1

    app = create_app(settings, dependencies)
    lifecycle = Lifecycle(app, host=host, port=port, grace_s=settings.shutdown_grace_s)
    try:
        lifecycle.serve()
    except ServeError as e:
        logger.critical("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
