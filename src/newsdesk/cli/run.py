"""
Command line entry point: one-shot triggers, the daily scheduler and the HTTP server.
"""
import argparse
import asyncio
import json
import logging
from typing import Any, Dict, Optional

from newsdesk.core.entities import OwnerScope, SourceKind, Trigger, UserProfile
from newsdesk.core.errors import Conflict, OrchestratorError
from newsdesk.services.config import Config, load_config
from newsdesk.services.logging import setup_logging
from newsdesk.services.scheduler import run_daily
from newsdesk.workflows.factory import Newsroom, create_newsroom

logger = logging.getLogger(__name__)


def _print(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def scheduled_job(newsroom: Newsroom) -> None:
    """Daily job: scheduled scrape, then scheduled dispatch."""
    try:
        summary = await newsroom.orchestrator.trigger_scrape(Trigger.SCHEDULED)
        logger.info(f"Scheduled scrape finished: {summary.status.value}")
    except Conflict:
        logger.warning("Scheduled scrape skipped: a run is already in progress")

    result = await newsroom.dispatcher.dispatch(Trigger.SCHEDULED)
    logger.info(f"Scheduled newsletter finished: {result.status.value}")


async def run_command(args: argparse.Namespace, config: Config) -> int:
    newsroom = create_newsroom(config)
    await newsroom.store.initialize()

    if args.command == "init-db":
        print(f"Database initialized at: {config.DATABASE_PATH}")
    elif args.command in ("scrape", "collect"):
        trigger = Trigger.SCHEDULED if getattr(args, "scheduled", False) else Trigger.MANUAL
        summary = await newsroom.orchestrator.trigger_scrape(trigger)
        _print(summary.to_response())
        return 0 if summary.success else 1
    elif args.command == "cancel":
        run_id = await newsroom.orchestrator.cancel()
        _print({"success": run_id is not None, "run_id": run_id})
        return 0 if run_id else 1
    elif args.command == "send":
        trigger = Trigger.SCHEDULED if args.scheduled else Trigger.MANUAL
        summary = await newsroom.dispatcher.dispatch(trigger)
        _print(summary.to_response())
        return 0 if summary.success else 1
    elif args.command == "test":
        summary = await newsroom.dispatcher.dispatch(Trigger.TEST)
        _print(summary.to_response())
        return 0 if summary.success else 1
    elif args.command == "self-test":
        report = await newsroom.harness.run_self_test()
        response = report.to_response()
        _print(response)
        return 0 if response["success"] else 1
    elif args.command == "add-source":
        owner = OwnerScope.for_user(args.user) if args.user else OwnerScope.global_scope()
        source = await newsroom.registry.register(
            owner,
            args.name,
            args.url,
            SourceKind(args.kind),
            feed_url=args.feed_url,
            category=args.category,
        )
        print(f"Registered source {source.id}: {source.name}")
    elif args.command == "add-profile":
        await newsroom.store.upsert_profile(
            UserProfile(
                user_id=args.user_id,
                email=args.email,
                interest_topics=frozenset(t.strip().lower() for t in args.topics.split(",") if t.strip()),
                subscribed=not args.unsubscribed,
            )
        )
        print(f"Saved profile for {args.user_id}")
    elif args.command == "schedule":
        logger.info(f"Scheduler started: daily at {config.SCHEDULE_HOUR}:00 {config.SCHEDULE_TIMEZONE}")
        await run_daily(lambda: scheduled_job(newsroom), config.SCHEDULE_HOUR, config.SCHEDULE_TIMEZONE)
    return 0


def run_server(config: Config, host: str = "0.0.0.0", port: int = 5000, debug: bool = False) -> None:
    """Run the HTTP trigger surface under hypercorn."""
    from hypercorn.asyncio import serve
    from hypercorn.config import Config as HypercornConfig

    from newsdesk.api.app import create_app

    app = create_app(create_newsroom(config))
    logger.info(f"Starting newsdesk API on http://{host}:{port}")

    hyper_config = HypercornConfig()
    hyper_config.bind = [f"{host}:{port}"]
    hyper_config.use_reloader = debug
    hyper_config.accesslog = "-"
    hyper_config.errorlog = "-"

    asyncio.run(serve(app, hyper_config))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="newsdesk ingestion and digest orchestrator")
    parser.add_argument("--config", help="Path to config.yml")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create database tables")

    serve = sub.add_parser("serve", help="Run the HTTP trigger API")
    serve.add_argument("--host", default="0.0.0.0", help="Host to bind to (default: 0.0.0.0)")
    serve.add_argument("--port", type=int, default=5000, help="Port to bind to (default: 5000)")
    serve.add_argument("--debug", action="store_true", help="Enable reloader")

    scrape = sub.add_parser("scrape", help="Run one scrape over all active sources")
    scrape.add_argument("--scheduled", action="store_true", help="Record the run as scheduled")
    sub.add_parser("collect", help="Ingest-only pass (same as a manual scrape)")
    sub.add_parser("cancel", help="Request cancellation of the running scrape")

    send = sub.add_parser("send", help="Send digests to all subscribed users")
    send.add_argument("--scheduled", action="store_true", help="Record the run as scheduled")
    sub.add_parser("test", help="Dry-run the newsletter without sending")
    sub.add_parser("self-test", help="Report collaborator health")
    sub.add_parser("schedule", help="Run scrape + send daily at SCHEDULE_HOUR")

    source = sub.add_parser("add-source", help="Register a source")
    source.add_argument("name")
    source.add_argument("url")
    source.add_argument("--kind", choices=[k.value for k in SourceKind], default=SourceKind.RSS.value)
    source.add_argument("--feed-url", dest="feed_url")
    source.add_argument("--category")
    source.add_argument("--user", help="Owner user id (default: global)")

    profile = sub.add_parser("add-profile", help="Create or update a user profile")
    profile.add_argument("user_id")
    profile.add_argument("email")
    profile.add_argument("topics", help="Comma separated interest topics")
    profile.add_argument("--unsubscribed", action="store_true")

    return parser


def main(argv: Optional[list] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    config = load_config(args.config)

    if args.command == "serve":
        run_server(config, host=args.host, port=args.port, debug=args.debug)
        return 0

    try:
        return asyncio.run(run_command(args, config))
    except OrchestratorError as e:
        logger.error(f"{args.command} failed: {e}")
        _print({"success": False, "message": str(e)})
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
