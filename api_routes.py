"""API routes for the AI trends aggregator."""
from __future__ import annotations

import logging

from flask import jsonify, request

from trends import TrendsContext
from trends.actions import apply_settings_action, settings_payload
from trends.discovery import resolve_youtube_channel
from trends.errors import HttpStatusError, InvalidRequest, NotFoundError
from trends.status import build_status, source_overview
from utils.security import redact_secrets

logger = logging.getLogger("trends.api")


def _client_key() -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote_addr or "unknown"


def _internal_error(exc: Exception):
    return jsonify({"error": "Internal server error", "details": redact_secrets(str(exc))}), 500


def register_routes(app, context: TrendsContext):
    """Register all API routes with the Flask app.

    Args:
        app: Flask app instance.
        context: Pipeline context shared by every request.
    """

    @app.before_request
    def enforce_rate_limit():
        if not request.path.startswith("/api/"):
            return None
        allowed, retry_after = context.rate_limiter.try_acquire(_client_key())
        if allowed:
            return None
        logger.warning("Rate limit exceeded for %s on %s", _client_key(), request.path)
        response = jsonify({"error": "Too many requests. Please retry later."})
        response.status_code = 429
        response.headers["Retry-After"] = str(retry_after)
        return response

    @app.errorhandler(InvalidRequest)
    def handle_invalid_request(exc: InvalidRequest):
        return jsonify(exc.to_dict()), 400

    @app.errorhandler(NotFoundError)
    def handle_not_found(exc: NotFoundError):
        return jsonify(exc.to_dict()), 404

    @app.route("/api/discovery/items")
    def api_discovery_items():
        args = request.args
        try:
            payload = context.feed.discover(
                args.get("categories"),
                args.get("timeRange"),
                limit=args.get("limit"),
                offset=args.get("offset"),
            )
        except InvalidRequest:
            raise
        except Exception as exc:
            logger.error("Discovery request failed: %s", exc, exc_info=True)
            return _internal_error(exc)
        logger.info(
            "Discovery %s/%s: %s of %s items",
            args.get("categories"),
            args.get("timeRange"),
            payload["meta"]["returnedItems"],
            payload["meta"]["totalItems"],
        )
        return jsonify(payload)

    @app.route("/api/feed")
    def api_feed():
        args = request.args
        try:
            payload = context.feed.feed(
                category=args.get("category"),
                source_id=args.get("source"),
                time_range=args.get("timeRange"),
                mode=args.get("mode"),
                limit=args.get("limit"),
                session_id=args.get("sessionId"),
            )
        except InvalidRequest:
            raise
        except Exception as exc:
            logger.error("Feed request failed: %s", exc, exc_info=True)
            return _internal_error(exc)
        return jsonify(payload)

    @app.route("/api/feed/refresh-status")
    def api_refresh_status():
        session_id = request.args.get("sessionId") or ""
        snapshot = context.progress.snapshot(session_id) if session_id else None
        return jsonify(snapshot or {"status": "unknown"})

    @app.route("/api/settings", methods=["GET"])
    def api_get_settings():
        try:
            return jsonify(settings_payload(context))
        except Exception as exc:
            logger.error("Failed to load settings: %s", exc, exc_info=True)
            return _internal_error(exc)

    @app.route("/api/settings", methods=["POST"])
    def api_update_settings():
        body = request.get_json(silent=True)
        try:
            action = apply_settings_action(context, body)
            payload = settings_payload(context)
        except (InvalidRequest, NotFoundError):
            raise
        except Exception as exc:
            logger.error("Failed to update settings: %s", exc, exc_info=True)
            return _internal_error(exc)
        payload["success"] = True
        payload["action"] = action
        return jsonify(payload)

    @app.route("/api/sources")
    def api_sources():
        try:
            return jsonify({"sources": source_overview(context)})
        except Exception as exc:
            logger.error("Failed to list sources: %s", exc, exc_info=True)
            return _internal_error(exc)

    @app.route("/api/sources/detect", methods=["POST"])
    def api_detect_feed():
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            body = {}
        try:
            detected = context.detector.detect(body.get("url"))
        except (InvalidRequest, NotFoundError):
            raise
        except Exception as exc:
            logger.error("Feed detection failed: %s", exc, exc_info=True)
            return _internal_error(exc)
        logger.info("Detected feed %s", detected.feed_url)
        return jsonify(detected.as_dict())

    @app.route("/api/youtube/resolve")
    def api_resolve_youtube():
        try:
            channel = resolve_youtube_channel(request.args.get("input"), context.detector.fetcher, context.env)
        except (InvalidRequest, NotFoundError):
            raise
        except HttpStatusError as exc:
            logger.warning("YouTube channel lookup failed: %s", exc)
            return jsonify({"error": "Failed to resolve channel", "details": str(exc)}), 502
        except Exception as exc:
            logger.error("YouTube channel lookup failed: %s", exc, exc_info=True)
            return _internal_error(exc)
        return jsonify(channel.as_dict())

    @app.route("/api/system-health")
    def api_system_health():
        try:
            return jsonify(build_status(context))
        except Exception as exc:
            logger.error("System health failed: %s", exc, exc_info=True)
            return _internal_error(exc)
