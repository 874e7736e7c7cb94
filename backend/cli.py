#!/usr/bin/env python3
"""
CLI for the Card Show Ingestion Pipeline

Commands:
    run-batch             - Claim sources, extract, stage, normalize, geocode, dedup
    normalize             - Normalize staged rows not yet normalized
    geocode               - Geocode normalized rows not yet attempted
    dedup                 - Flag duplicates among normalized rows
    recompute-priorities  - Recompute source priority from admin feedback
    add-source            - Onboard one source URL
    import-sources        - Onboard source URLs from a file (one per line)
    enable-source         - Enable or disable a source
    feedback-stats        - Feedback tag statistics
    issue-token           - Issue an admin token for local use

Usage:
    python cli.py run-batch --size 10 --workers 4
    python cli.py run-batch --skip-geocode
    python cli.py add-source https://example.com/card-shows --priority 60
    python cli.py recompute-priorities --dry-run
"""

import json
import sys

import click


def get_app_context():
    """Get Flask app context for database access."""
    from app import create_app
    app = create_app()
    return app.app_context()


def _echo_stats(title, stats):
    click.echo("=" * 60)
    click.secho(title, fg="cyan", bold=True)
    click.echo("=" * 60)
    for key, value in stats.items():
        click.echo(f"  {key:<20} {value}")


@click.group()
@click.version_option(version="1.0.0", prog_name="card-shows")
def cli():
    """Card Show Ingestion CLI - batch pipeline and source administration."""
    pass


# =============================================================================
# Pipeline
# =============================================================================

@cli.command("run-batch")
@click.option("--size", type=int, default=None, help="Sources to claim (default SCRAPE_BATCH_SIZE)")
@click.option("--workers", type=int, default=None, help="Fetch/extract threads (default SCRAPE_WORKERS)")
@click.option("--skip-geocode", is_flag=True, help="Leave geocoding for a later run")
@click.option("--triggered-by", type=click.Choice(["manual", "cron"]), default="manual")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def run_batch(size, workers, skip_geocode, triggered_by, output_json):
    """Run one batch invocation of the pipeline."""
    with get_app_context():
        from models.database import db
        from scrapers import PipelineOrchestrator

        run = PipelineOrchestrator(db.session).run_batch(
            size=size, workers=workers, skip_geocode=skip_geocode, triggered_by=triggered_by
        )
        result = run.to_dict()

    if output_json:
        click.echo(json.dumps(result, indent=2, default=str))
        return
    _echo_stats(f"PIPELINE RUN {result['run_id']}", {
        k: v for k, v in result.items() if k not in ("run_id", "error_message")
    })
    if result["sources_failed"]:
        click.secho(f"  {result['sources_failed']} source(s) failed - see logs", fg="yellow")


@cli.command("normalize")
@click.option("--limit", type=int, default=None, help="Maximum rows")
def normalize(limit):
    """Normalize staged rows not yet normalized."""
    with get_app_context():
        from models.database import db
        from scrapers.orchestrator import normalize_pending

        _echo_stats("NORMALIZE", normalize_pending(db.session, limit=limit))


@cli.command("geocode")
@click.option("--limit", type=int, default=None, help="Maximum rows")
def geocode(limit):
    """Geocode normalized rows not yet attempted (needs GOOGLE_MAPS_API_KEY)."""
    with get_app_context():
        from models.database import db
        from scrapers.orchestrator import geocode_pending

        _echo_stats("GEOCODE", geocode_pending(db.session, limit=limit))


@cli.command("dedup")
@click.option("--limit", type=int, default=None, help="Maximum rows")
def dedup(limit):
    """Flag duplicates among normalized rows not yet checked."""
    with get_app_context():
        from models.database import db
        from scrapers.orchestrator import dedup_pending

        _echo_stats("DEDUP", dedup_pending(db.session, limit=limit))


# =============================================================================
# Learning
# =============================================================================

@cli.command("recompute-priorities")
@click.option("--dry-run", is_flag=True, help="Show planned changes without writing")
def recompute_priorities(dry_run):
    """Recompute source priority from recent admin feedback."""
    with get_app_context():
        from models.database import db
        from services.learning_service import LearningService

        report = LearningService(db.session).recompute(dry_run=dry_run)

    click.echo(f"Sources: {report['sources']}  Changed: {report['changed']}"
               f"{'  (dry run)' if dry_run else ''}")
    for change in report["changes"]:
        line = f"  {change['url']}: {change['old_score']} -> {change['new_score']}"
        if change["disable"]:
            click.secho(line + "  [disable]", fg="red")
        else:
            click.echo(line)


@cli.command("feedback-stats")
@click.option("--days", type=int, default=None, help="Window in days (default LEARNING_WINDOW_DAYS)")
@click.option("--source", "source_url", default=None, help="Only this source")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def feedback_stats(days, source_url, output_json):
    """Feedback tag counts overall and per source."""
    with get_app_context():
        from models.database import db
        from services.learning_service import LearningService

        stats = LearningService(db.session).feedback_stats(days=days, source_url=source_url)

    if output_json:
        click.echo(json.dumps(stats, indent=2))
        return
    click.echo(f"Last {stats['window_days']} days: {stats['approved']} approved, "
               f"{stats['rejected']} rejected, {stats['edited']} edited")
    for entry in stats["tags"]:
        click.echo(f"  {entry['tag']:<22} {entry['count']:>5}  {entry['percentage']:>5.1f}%")


# =============================================================================
# Sources
# =============================================================================

@cli.command("add-source")
@click.argument("url")
@click.option("--priority", type=click.IntRange(0, 100), default=50, help="Initial priority 0-100")
@click.option("--notes", default=None)
def add_source(url, priority, notes):
    """Onboard one source URL (idempotent)."""
    from utils.normalize import ValidationError

    with get_app_context():
        from models.database import db
        from scrapers.source_registry import SourceRegistry

        try:
            source, created = SourceRegistry(db.session).add_source(url, priority_score=priority, notes=notes)
        except ValidationError as e:
            click.secho(f"Error: {e}", fg="red")
            sys.exit(1)
        click.echo(f"{'Added' if created else 'Already registered'}: {source.url} (priority {source.priority_score})")


@cli.command("import-sources")
@click.argument("file_path", type=click.Path(exists=True))
@click.option("--priority", type=click.IntRange(0, 100), default=50, help="Initial priority 0-100")
def import_sources(file_path, priority):
    """Onboard source URLs from a file, one per line ('#' comments allowed)."""
    with get_app_context():
        from models.database import db
        from scrapers.source_registry import SourceRegistry

        with open(file_path, "r") as f:
            stats = SourceRegistry(db.session).import_sources(f, priority_score=priority)
    _echo_stats("IMPORT SOURCES", stats)


@cli.command("enable-source")
@click.argument("url")
@click.option("--disable", is_flag=True, help="Disable instead of enable")
def enable_source(url, disable):
    """Enable (resetting the error streak) or disable a source."""
    with get_app_context():
        from models.database import db
        from scrapers.source_registry import SourceNotFoundError, SourceRegistry

        try:
            source = SourceRegistry(db.session).set_enabled(url, not disable)
        except SourceNotFoundError:
            click.secho(f"Error: source not found: {url}", fg="red")
            sys.exit(1)
        click.echo(f"{source.url}: {'enabled' if source.enabled else 'disabled'}")


@cli.command("issue-token")
@click.argument("admin_id")
@click.option("--hours", type=int, default=None, help="Lifetime in hours")
def issue_token(admin_id, hours):
    """Issue an admin token signed with JWT_SECRET (local use)."""
    from utils.auth import generate_admin_token

    click.echo(generate_admin_token(admin_id, expires_in_hours=hours))


if __name__ == "__main__":
    cli()
