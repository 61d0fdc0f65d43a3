"""
HTTP trigger surface for the orchestrator.
Uses Quart for async support with Flask-like API.
"""
import logging
from functools import wraps
from typing import Any, Dict, Optional

from quart import Blueprint, Quart, current_app, g, jsonify, request
from quart_cors import cors

from newsdesk.core.entities import Source, Trigger
from newsdesk.core.errors import (
    Conflict,
    OrchestratorError,
    SystemUnavailable,
    Unauthorized,
    ValidationError,
)
from newsdesk.workflows.factory import Newsroom

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__)


def get_newsroom() -> Newsroom:
    return current_app.config["NEWSROOM"]


def _bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _error(message: str, status: int):
    return jsonify({"success": False, "message": message}), status


# ==================== Decorators ====================

def token_required(f):
    """Decorator to require a valid bearer token; sets g.requester."""
    @wraps(f)
    async def decorated_function(*args, **kwargs):
        try:
            g.requester = get_newsroom().identity.authenticate(_bearer_token())
        except Unauthorized as e:
            return _error(str(e), 401)
        return await f(*args, **kwargs)
    return decorated_function


def operator_required(f):
    """Decorator to require the service (operator) token."""
    @wraps(f)
    @token_required
    async def decorated_function(*args, **kwargs):
        if not g.requester.is_operator:
            return _error("operator access required", 403)
        return await f(*args, **kwargs)
    return decorated_function


def _source_json(source: Source) -> Dict[str, Any]:
    return {
        "id": source.id,
        "owner": source.owner.user_id,
        "name": source.name,
        "url": source.url,
        "feed_url": source.feed_url,
        "kind": source.kind.value,
        "category": source.category,
        "description": source.description,
        "active": source.active,
        "created_at": source.created_at.isoformat(),
    }


# ==================== Scrape triggers ====================

@api.route("/scrape/manual", methods=["POST"])
@operator_required
async def scrape_manual():
    summary = await get_newsroom().orchestrator.trigger_scrape(Trigger.MANUAL)
    return jsonify(summary.to_response())


@api.route("/scrape/scheduled", methods=["POST"])
@operator_required
async def scrape_scheduled():
    summary = await get_newsroom().orchestrator.trigger_scrape(Trigger.SCHEDULED)
    return jsonify(summary.to_response())


@api.route("/scrape/cancel", methods=["POST"])
@operator_required
async def scrape_cancel():
    data = await request.get_json(silent=True) or {}
    run_id = await get_newsroom().orchestrator.cancel(data.get("run_id"))
    if run_id is None:
        return _error("no scrape run is active", 404)
    return jsonify({"success": True, "run_id": run_id})


# ==================== Newsletter triggers ====================

@api.route("/newsletter/collect", methods=["POST"])
@operator_required
async def newsletter_collect():
    """Ingest-only pass: scrape and store, no dispatch."""
    summary = await get_newsroom().orchestrator.trigger_scrape(Trigger.MANUAL)
    return jsonify(summary.to_response())


@api.route("/newsletter/send", methods=["POST"])
@operator_required
async def newsletter_send():
    summary = await get_newsroom().dispatcher.dispatch(Trigger.MANUAL)
    return jsonify(summary.to_response())


@api.route("/newsletter/test", methods=["POST"])
@operator_required
async def newsletter_test():
    summary = await get_newsroom().dispatcher.dispatch(Trigger.TEST)
    return jsonify(summary.to_response())


@api.route("/diagnostics/self-test", methods=["POST"])
@operator_required
async def self_test():
    report = await get_newsroom().harness.run_self_test()
    return jsonify(report.to_response())


# ==================== Sources ====================

@api.route("/sources", methods=["GET"])
@token_required
async def list_sources():
    requester = g.requester
    # Operators see the whole catalog, users see global sources plus their own
    scope = None if requester.is_operator else requester.scope
    sources = [_source_json(s) async for s in get_newsroom().registry.list_active(scope)]
    return jsonify({"success": True, "sources": sources})


@api.route("/sources", methods=["POST"])
@token_required
async def register_source():
    data = await request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("request body must be a JSON object")

    source = await get_newsroom().registry.register(
        g.requester.scope,
        data.get("name", ""),
        data.get("url", ""),
        data.get("kind", ""),
        feed_url=data.get("feed_url"),
        category=data.get("category"),
        description=data.get("description"),
    )
    return jsonify({"success": True, "source": _source_json(source)}), 201


@api.route("/sources/<source_id>/deactivate", methods=["POST"])
@token_required
async def deactivate_source(source_id: str):
    source = await get_newsroom().registry.deactivate(source_id, g.requester)
    return jsonify({"success": True, "source_id": source.id})


@api.route("/sources/<source_id>", methods=["DELETE"])
@token_required
async def delete_source(source_id: str):
    await get_newsroom().registry.delete(source_id, g.requester)
    return jsonify({"success": True, "source_id": source_id})


# ==================== Error Handlers ====================

@api.app_errorhandler(OrchestratorError)
async def orchestrator_error(error: OrchestratorError):
    if isinstance(error, Conflict):
        status = 409
    elif isinstance(error, ValidationError):
        status = 400
    elif isinstance(error, Unauthorized):
        status = 403
    elif isinstance(error, SystemUnavailable):
        status = 503
    else:
        status = 500

    if status == 500:
        logger.error(f"Request failed: {error}")
        return _error("internal error", status)
    return _error(str(error), status)


@api.app_errorhandler(404)
async def not_found(error):
    return _error("not found", 404)


@api.app_errorhandler(405)
async def method_not_allowed(error):
    return _error("method not allowed", 405)


@api.app_errorhandler(500)
async def server_error(error):
    return _error("internal error", 500)


# ==================== Application ====================

def create_app(newsroom: Newsroom) -> Quart:
    app = Quart(__name__)
    app.config["NEWSROOM"] = newsroom
    app.register_blueprint(api)
    app = cors(app)

    @app.before_serving
    async def startup():
        """Initialize database tables on startup."""
        await newsroom.store.initialize()
        logger.info("API started, store initialized")

    return app
