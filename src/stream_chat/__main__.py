"""
Main entry point for the Stream Chat application.

Can be called with: python -m stream_chat

Automatically opens the app in your browser once the server is reachable.
Disable with --no-open or STREAM_CHAT_NO_BROWSER=1.
"""

import argparse
import logging
import os
import threading
import time
import urllib.error
import urllib.request
import webbrowser

import uvicorn

from .app import app
from .config import ConfigError, load_settings

logger = logging.getLogger(__name__)


def _open_when_ready(url: str, timeout: float = 15.0, interval: float = 0.2):
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            with urllib.request.urlopen(url, timeout=1):
                pass
        except (urllib.error.URLError, TimeoutError, ConnectionError):
            time.sleep(interval)
            continue
        if not webbrowser.open(url, new=1):
            logger.info(f"Could not open a browser, visit {url}")
        return


def main():
    """Main entry point for the Stream Chat application."""
    parser = argparse.ArgumentParser(
        description="Stream Chat - streaming LLM chat with tool calls"
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Interface to bind (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to run the server on (default: 8000)",
    )
    parser.add_argument(
        "--no-open",
        action="store_true",
        help="Do not automatically open the browser",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    try:
        settings = load_settings()
    except ConfigError as e:
        parser.error(str(e))
    if not settings.api_key:
        logger.warning("INFERENCE_API_KEY is not set; chat requests will fail")

    logger.info("Starting chat server...")
    url = f"http://localhost:{args.port}"
    logger.info(f"Open {url} in your browser to start chatting")

    should_open = not args.no_open and os.environ.get("STREAM_CHAT_NO_BROWSER") != "1"
    if should_open:
        threading.Thread(target=_open_when_ready, args=(url,), daemon=True).start()
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
