#!/usr/bin/env python3
"""
Tuneshift launcher.
Starts the API server with gevent so uploads, streams and the radio relay
can be served concurrently.
"""
# Gevent must patch before any other imports that use socket/threading.
from gevent import monkey
monkey.patch_all()

import logging
import sys

from shared.config import ServiceConfig


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    try:
        config = ServiceConfig.from_env()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from shared.api import start_api
    start_api(config, debug="--debug" in argv)
    return 0


if __name__ == "__main__":
    sys.exit(main())
