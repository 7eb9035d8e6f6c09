"""Flask application for the AI trends aggregator."""
from __future__ import annotations

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from flask import Flask
from flask_cors import CORS

from trends import TrendsContext, configure_logging, get_context

logger = logging.getLogger("trends.app")

DEFAULT_PORT = 5000
DEFAULT_HOST = "127.0.0.1"


def create_app(context: Optional[TrendsContext] = None) -> Flask:
    """Build the Flask app around a pipeline context (the process default if omitted)."""
    context = context or get_context()
    app = Flask(__name__)
    app.json.sort_keys = False
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    from api_routes import register_routes

    register_routes(app, context)
    logger.info("Trends API ready with %s catalogue sources", len(context.catalogue))
    return app


def main() -> None:
    load_dotenv(os.getenv("TRENDS_DOTENV", ".env"))
    context = get_context()
    configure_logging(context.settings.log_level, context.settings.log_file)
    app = create_app(context)
    host = os.getenv("TRENDS_HOST", DEFAULT_HOST)
    port = int(os.getenv("TRENDS_PORT", DEFAULT_PORT))
    try:
        app.run(host=host, port=port, debug=False, threaded=True)
    finally:
        context.close()


if __name__ == "__main__":  # pragma: no cover
    main()
