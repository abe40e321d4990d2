"""
Command-line interface for brand-alerts.

Provides commands to run the alert worker, evaluate snapshots by hand,
initialize the database, and inspect alerts, deliveries and the queue.

Usage:
    brand-alerts worker              # Run the alert delivery worker
    brand-alerts evaluate BRAND_ID --metric overall_score=65
    brand-alerts init-db             # Initialize database
    brand-alerts health              # Check service health
"""

import asyncio
import json
import os
import signal
import sys

import click

from brand_alerts.config.settings import get_settings
from brand_alerts.observability.logging import setup_logging
from brand_alerts.observability.metrics import get_metrics


def _parse_metrics(values: tuple[str, ...]) -> dict[str, float]:
    """Turn ``name=value`` pairs into a metrics dict."""
    parsed: dict[str, float] = {}
    for item in values:
        name, sep, raw = item.partition("=")
        if not sep:
            raise click.BadParameter(f"expected NAME=VALUE, got {item!r}", param_hint="--metric")
        try:
            parsed[name.strip()] = float(raw)
        except ValueError:
            raise click.BadParameter(
                f"value for {name!r} is not a number: {raw!r}", param_hint="--metric",
            ) from None
    return parsed


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Brand Alerts - threshold evaluation and notification delivery."""
    if debug:
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()

    # Initialize tracing if enabled
    settings = get_settings()
    if settings.tracing_enabled:
        from brand_alerts.observability.tracing import setup_tracing

        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )


@main.command()
@click.option("--concurrency", default=None, type=int, help="Concurrent job consumers")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def worker(concurrency: int | None, metrics: bool, metrics_port: int | None) -> None:
    """Run the alert delivery worker."""
    from brand_alerts.alerts.worker import AlertWorker

    async def run():
        alert_worker = AlertWorker(concurrency=concurrency)

        if metrics:
            get_metrics().start_server(port=metrics_port)

        # Handle shutdown signals
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda: asyncio.create_task(alert_worker.stop()))

        await alert_worker.start()

    asyncio.run(run())


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from brand_alerts.storage.database import Database
    from brand_alerts.storage.schema import create_tables

    async def run():
        db = Database()
        await db.connect()
        try:
            await create_tables(db)
            click.echo("Database initialized successfully")
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
@click.argument("brand_id")
@click.option(
    "--metric", "metric_values", multiple=True, required=True,
    help="Snapshot value as NAME=VALUE (can repeat)",
)
@click.option("--no-queue", is_flag=True, help="Create alerts without queueing delivery")
def evaluate(brand_id: str, metric_values: tuple[str, ...], no_queue: bool) -> None:
    """Evaluate a brand's active thresholds against a metric snapshot.

    Example:
        brand-alerts evaluate acme --metric overall_score=65 --metric citation_count=12
    """
    from brand_alerts.alerts.config import AlertConfig
    from brand_alerts.alerts.repository import AlertRepository
    from brand_alerts.alerts.service import AlertService
    from brand_alerts.queues.redis_queue import RedisJobQueue
    from brand_alerts.storage.database import Database
    from brand_alerts.thresholds.repository import ThresholdRepository
    from brand_alerts.thresholds.schemas import MetricSnapshot

    snapshot = MetricSnapshot.from_dict({"brand_id": brand_id, **_parse_metrics(metric_values)})

    async def run():
        config = AlertConfig()
        db = Database()
        await db.connect()
        queue = None if no_queue else RedisJobQueue(config.queue_config())
        if queue is not None:
            await queue.connect()

        try:
            service = AlertService(
                thresholds=ThresholdRepository(db),
                alerts=AlertRepository(db),
                queue=queue,
                config=config,
            )
            results = await service.evaluate_thresholds(snapshot)
        finally:
            if queue is not None:
                await queue.close()
            await db.close()

        if not results:
            click.echo(f"No active thresholds for brand {brand_id}")
            return

        click.echo(f"\nEvaluated {len(results)} thresholds for {brand_id}:")
        click.echo("-" * 60)
        for result in results:
            t = result.threshold
            if result.error:
                outcome = click.style(f"error: {result.error}", fg="red")
            elif result.alert is not None:
                outcome = click.style(f"alert {result.alert.id}", fg="yellow")
            elif result.suppressed:
                outcome = "suppressed (recent similar alert)"
            elif result.triggered:
                outcome = "triggered"
            else:
                outcome = "ok"
            click.echo(
                f"  {t.metric_type} {t.comparison_operator} {t.threshold_value:g} "
                f"(current {result.current_value:g}, {result.severity}): {outcome}"
            )

    asyncio.run(run())


@main.command()
@click.option("--days", default=None, type=int, help="Delete alerts resolved more than N days ago")
@click.option("--dry-run", is_flag=True, help="Show count without deleting")
def cleanup(days: int | None, dry_run: bool) -> None:
    """Remove resolved alerts past the retention period.

    Example:
        brand-alerts cleanup --days 30              # Delete alerts resolved > 30 days ago
        brand-alerts cleanup --days 30 --dry-run   # Preview without deleting
    """
    from brand_alerts.alerts.config import AlertConfig
    from brand_alerts.alerts.repository import AlertRepository
    from brand_alerts.alerts.service import AlertService
    from brand_alerts.storage.database import Database
    from brand_alerts.thresholds.repository import ThresholdRepository

    async def run():
        config = AlertConfig()
        retention = days if days is not None else config.cleanup_days
        db = Database()
        await db.connect()

        try:
            service = AlertService(
                thresholds=ThresholdRepository(db),
                alerts=AlertRepository(db),
                config=config,
            )
            count = await service.cleanup(retention, dry_run=dry_run)
        finally:
            await db.close()

        if dry_run:
            click.echo(f"\nDry run - would delete {count} alerts resolved more than {retention} days ago")
            click.echo("\nRun without --dry-run to actually delete.")
        else:
            click.echo(f"\nDeleted {count} alerts resolved more than {retention} days ago")

    asyncio.run(run())


@main.command()
@click.argument("brand_id")
def stats(brand_id: str) -> None:
    """Show alert counts for a brand."""
    from brand_alerts.alerts.repository import AlertRepository
    from brand_alerts.storage.database import Database

    async def run():
        db = Database()
        await db.connect()
        try:
            result = await AlertRepository(db).statistics(brand_id)
        finally:
            await db.close()
        click.echo(json.dumps(result.to_dict(), indent=2))

    asyncio.run(run())


@main.command("delivery-stats")
@click.option("--user", "user_id", default=None, help="Limit to one recipient")
def delivery_stats(user_id: str | None) -> None:
    """Show notification delivery counts and success rate."""
    from brand_alerts.notifications.tracker import DeliveryTracker
    from brand_alerts.storage.database import Database

    async def run():
        db = Database()
        await db.connect()
        try:
            result = await DeliveryTracker.from_database(db).statistics(user_id)
        finally:
            await db.close()
        click.echo(json.dumps(result.to_dict(), indent=2))

    asyncio.run(run())


@main.command("test-notification")
@click.argument("user_id")
@click.argument("channel")
def test_notification(user_id: str, channel: str) -> None:
    """Send a test notification to USER_ID over CHANNEL."""
    from brand_alerts.alerts.worker import build_router
    from brand_alerts.notifications.config import NotificationConfig
    from brand_alerts.storage.database import Database

    async def run():
        db = Database()
        await db.connect()
        try:
            router = build_router(db, NotificationConfig())
            delivery = await router.test_notification(user_id, channel)
        finally:
            await db.close()

        if delivery.status in ("sent", "delivered"):
            click.echo(click.style(
                f"Test notification {delivery.status} to {delivery.recipient}", fg="green",
            ))
        else:
            click.echo(click.style(
                f"Test notification failed: {delivery.error_message}", fg="red",
            ))
            sys.exit(1)

    asyncio.run(run())


@main.command("failed-jobs")
@click.option("--limit", default=20, help="Maximum jobs to show")
def failed_jobs(limit: int) -> None:
    """List alert jobs that exhausted their retries."""
    from brand_alerts.alerts.config import AlertConfig
    from brand_alerts.queues.redis_queue import RedisJobQueue

    async def run():
        queue = RedisJobQueue(AlertConfig().queue_config())
        await queue.connect()
        try:
            jobs = await queue.failed_jobs(limit)
        finally:
            await queue.close()

        if not jobs:
            click.echo("No failed jobs")
            return
        for job in jobs:
            click.echo(
                f"  {job.job_id} alert={job.alert_id} severity={job.severity} "
                f"attempts={job.attempts} error={job.last_error}"
            )

    asyncio.run(run())


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        results: dict[str, bool] = {}

        # Check Redis
        try:
            from brand_alerts.queues.redis_queue import RedisJobQueue
            queue = RedisJobQueue()
            await queue.connect()
            results["redis"] = await queue.health_check()
            await queue.close()
        except Exception as e:
            results["redis"] = False
            logger.error("Redis health check failed", error=str(e))

        # Check PostgreSQL
        try:
            from brand_alerts.storage.database import Database
            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        # Check providers
        from brand_alerts.notifications.config import NotificationConfig
        notification_config = NotificationConfig()
        results["sms_configured"] = bool(notification_config.twilio_account_sid)
        results["smtp_authenticated"] = bool(notification_config.smtp_username)

        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
            if name in ("redis", "postgres") and not status:
                all_healthy = False

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


if __name__ == "__main__":
    main()
