import argparse
import asyncio
import logging

from wearbridge.config import load_config
from wearbridge.errors import ConfigError
from wearbridge.logs import setup_logging
from wearbridge.session import WearableSession
from wearbridge.uploader import Uploader

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT_S = 15.0


def build_session(config):
    uploader = None
    if config.endpoint:
        uploader = Uploader(config.endpoint, timeout_s=config.http_timeout_s, retry_limit=config.retry_limit)
    return WearableSession(config, uploader)


def serve(session, app, start_session, host, port):
    """Run the HTTP API in the foreground; stop the BLE thread and let it flush on exit."""
    thread = start_session(session)
    try:
        app.run(host=host, port=port)
    finally:
        session.stop()
        thread.join(timeout=SHUTDOWN_TIMEOUT_S)
        if thread.is_alive():
            logger.warning("BLE session did not stop within %g seconds", SHUTDOWN_TIMEOUT_S)


def main(argv=None):
    parser = argparse.ArgumentParser(prog="wearbridge", description="Forward BLE wearable sensor data to a backend.")
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument("--serve", action="store_true", help="also serve the HTTP API")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=5000)
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        parser.error(str(e))

    setup_logging(config.log_level, config.log_file)
    session = build_session(config)

    try:
        if args.serve:
            from wearbridge.api import create_app, start_background_session

            serve(session, create_app(session), start_background_session, args.host, args.port)
        else:
            asyncio.run(session.run())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    except Exception:
        logger.exception("Fatal error")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
