"""CLI interface for feedpress."""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from feedpress.analytics import install_store_log_handler, purge_old_logs
from feedpress.config import FeedpressConfig, load_config, merge_cli_overrides
from feedpress.errors import best_effort
from feedpress.models import (
    ContentKind,
    CronInterval,
    Feed,
    FeedStatus,
    ProcessingResult,
    ProviderName,
    ProviderSettings,
    SourceKind,
)
from feedpress.pipeline import Pipeline, build_pipeline
from feedpress.processor import is_due
from feedpress.settings import DEFAULT_SETTINGS

app = typer.Typer(
    name="feedpress",
    help="Turn RSS feeds and URL lists into AI-written opportunities and posts.",
)
feeds_app = typer.Typer(help="Manage feeds.")
settings_app = typer.Typer(help="Read and write runtime settings.")
prompts_app = typer.Typer(help="Inspect and customize prompt templates.")
providers_app = typer.Typer(help="Configure AI providers.")
duplicates_app = typer.Typer(help="Maintain duplicate-detection fingerprints.")
app.add_typer(feeds_app, name="feeds")
app.add_typer(settings_app, name="settings")
app.add_typer(prompts_app, name="prompts")
app.add_typer(providers_app, name="providers")
app.add_typer(duplicates_app, name="duplicates")

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from feedpress import __version__

        console.print(f"feedpress {__version__}")
        raise typer.Exit()


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a feedpress TOML config file."),
    ] = None,
    store_dir: Annotated[
        Optional[str],
        typer.Option("--store-dir", help="Directory holding the pipeline store."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging."),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """Feedpress - feed ingestion and AI content generation."""
    config = load_config(config_path)
    config = merge_cli_overrides(
        config,
        store_dir=store_dir,
        log_level="DEBUG" if verbose else None,
    )
    _setup_logging(config.logging.level)
    ctx.obj = config


def _pipeline(ctx: typer.Context) -> Pipeline:
    config: FeedpressConfig = ctx.obj
    pipeline = build_pipeline(config)
    if config.logging.persist:
        install_store_log_handler(pipeline.store)
    return pipeline


def _get_feed_or_exit(pipeline: Pipeline, feed_id: str) -> Feed:
    feed = pipeline.store.get_feed(feed_id)
    if feed is None:
        console.print(f"[red]Error:[/red] Feed not found: {feed_id}")
        raise typer.Exit(1)
    return feed


def _print_results(results: list[ProcessingResult]) -> None:
    table = Table(title="Processing results")
    table.add_column("Feed")
    table.add_column("Kind")
    table.add_column("Items", justify="right")
    table.add_column("Created", justify="right")
    table.add_column("Duplicates", justify="right")
    table.add_column("Rejected", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Time (ms)", justify="right")
    table.add_column("Status")
    for r in results:
        table.add_row(
            r.feed_name or r.feed_id,
            str(r.content_kind or "-"),
            str(r.items_processed),
            str(r.entities_created),
            str(r.duplicates_skipped),
            str(r.ai_rejections),
            str(r.errors),
            str(r.execution_time_ms),
            "[green]ok[/green]" if r.success else f"[red]failed[/red] {r.error or ''}",
        )
    console.print(table)


def _parse_value(raw: str) -> Any:
    """Interpret a CLI setting value as JSON, falling back to the raw string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


# ── Processing ───────────────────────────────────────────────────


@app.command()
def process(
    ctx: typer.Context,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="List the feeds that are due without processing them."),
    ] = False,
    force: Annotated[
        bool,
        typer.Option("--force", help="Run even when automatic processing is disabled."),
    ] = False,
) -> None:
    """Process every active feed that is due."""
    pipeline = _pipeline(ctx)

    if dry_run:
        due = pipeline.processor.due_feeds()
        if not due:
            console.print("[yellow]No feeds due for processing.[/yellow]")
            return
        console.print(f"[green]{len(due)} feed(s) due:[/green]")
        for feed in due:
            console.print(f"  - {feed.name} ({feed.id}, priority {feed.priority})")
        return

    if not force and not pipeline.settings.get_bool("general.automatic_processing"):
        console.print("[yellow]Automatic processing is disabled (general.automatic_processing).[/yellow]")
        return

    results = pipeline.processor.process_all_feeds()

    with best_effort("expire fingerprints"):
        pipeline.detector.cleanup_old_records(pipeline.settings.get_int("duplicates.retention_days"))
    with best_effort("purge processing log"):
        purge_old_logs(pipeline.store, pipeline.settings.get_int("advanced.log_retention_days"))

    if not results:
        console.print("[yellow]No feeds due for processing.[/yellow]")
        return
    _print_results(results)
    if any(not r.success for r in results):
        raise typer.Exit(1)


@app.command(name="process-feed")
def process_feed_cmd(
    ctx: typer.Context,
    feed_id: Annotated[str, typer.Argument(help="Feed id to process now.")],
) -> None:
    """Process one feed immediately, ignoring its schedule."""
    pipeline = _pipeline(ctx)
    result = pipeline.processor.process_feed(feed_id)
    _print_results([result])
    if not result.success:
        raise typer.Exit(1)


@app.command()
def stats(ctx: typer.Context) -> None:
    """Print feed, duplicate and run statistics as JSON."""
    pipeline = _pipeline(ctx)
    summary = {
        "feeds": pipeline.processor.stats(),
        "duplicates": pipeline.detector.stats(),
        "runs": pipeline.analytics.summary(),
    }
    console.print(json.dumps(summary, indent=2))


# ── Feeds ────────────────────────────────────────────────────────


@feeds_app.command("add")
def feeds_add(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Display name for the feed.")],
    url: Annotated[Optional[str], typer.Option("--url", help="RSS/Atom feed URL.")] = None,
    url_file: Annotated[
        Optional[Path],
        typer.Option("--url-file", help="File of newline-delimited URLs (creates a url_list feed).", exists=True),
    ] = None,
    content_kind: Annotated[
        ContentKind, typer.Option("--kind", "-k", help="Content kind to generate.")
    ] = ContentKind.BLOG_POST,
    interval: Annotated[
        CronInterval, typer.Option("--interval", help="How often the feed runs.")
    ] = CronInterval.HOURLY,
    priority: Annotated[int, typer.Option("--priority", help="Higher runs first.")] = 0,
    quality_threshold: Annotated[
        Optional[float], typer.Option("--threshold", help="Per-feed confidence threshold.")
    ] = None,
    auto_publish: Annotated[
        Optional[bool],
        typer.Option("--auto-publish/--no-auto-publish", help="Per-feed auto-publish override."),
    ] = None,
    max_items: Annotated[
        Optional[int], typer.Option("--max-items", help="Per-feed items per run.")
    ] = None,
    provider: Annotated[
        Optional[ProviderName], typer.Option("--provider", help="Per-feed AI provider.")
    ] = None,
    model: Annotated[Optional[str], typer.Option("--model", help="Per-feed AI model.")] = None,
    scraping: Annotated[
        bool, typer.Option("--scraping/--no-scraping", help="Scrape item pages.")
    ] = True,
    ai: Annotated[bool, typer.Option("--ai/--no-ai", help="Run AI generation.")] = True,
    allow_republishing: Annotated[
        bool, typer.Option("--allow-republishing", help="Skip duplicate detection.")
    ] = False,
    fallback_image: Annotated[
        str, typer.Option("--fallback-image", help="Featured image URL used when none is found.")
    ] = "",
    category: Annotated[str, typer.Option("--category", help="Category for created posts.")] = "",
) -> None:
    """Add a feed."""
    if bool(url) == bool(url_file):
        console.print("[red]Error:[/red] Pass exactly one of --url or --url-file.")
        raise typer.Exit(1)

    feed = Feed(
        name=name,
        source_kind=SourceKind.RSS if url else SourceKind.URL_LIST,
        url=url or "",
        url_list=url_file.read_text(encoding="utf-8") if url_file else "",
        content_kind=content_kind,
        cron_interval=interval,
        priority=priority,
        quality_threshold=quality_threshold,
        auto_publish=auto_publish,
        max_items_per_run=max_items,
        ai_provider=provider,
        ai_model=model,
        enable_scraping=scraping,
        enable_ai_processing=ai,
        allow_republishing=allow_republishing,
        fallback_featured_image_url=fallback_image,
        blog_category=category,
    )
    pipeline = _pipeline(ctx)
    pipeline.store.save_feed(feed)
    console.print(f"[green]Added feed[/green] {feed.name} ({feed.id})")


@feeds_app.command("list")
def feeds_list(ctx: typer.Context) -> None:
    """List feeds in priority order."""
    pipeline = _pipeline(ctx)
    feeds = pipeline.store.list_feeds()
    if not feeds:
        console.print("[yellow]No feeds configured.[/yellow]")
        return

    now = datetime.now(tz=UTC)
    table = Table(title="Feeds")
    for column in ("ID", "Name", "Source", "Kind", "Interval", "Priority", "Status", "Due", "Last run"):
        table.add_column(column)
    for feed in feeds:
        table.add_row(
            feed.id,
            feed.name,
            str(feed.source_kind),
            str(feed.content_kind),
            str(feed.cron_interval),
            str(feed.priority),
            str(feed.status),
            "yes" if feed.is_active and is_due(feed, now) else "no",
            feed.last_fetched.strftime("%Y-%m-%d %H:%M") if feed.last_fetched else "never",
        )
    console.print(table)


@feeds_app.command("show")
def feeds_show(
    ctx: typer.Context,
    feed_id: Annotated[str, typer.Argument(help="Feed id.")],
) -> None:
    """Print a feed as JSON (API keys are masked)."""
    pipeline = _pipeline(ctx)
    feed = _get_feed_or_exit(pipeline, feed_id)
    data = feed.model_dump(mode="json")
    if data.get("ai_api_key"):
        data["ai_api_key"] = "***"
    console.print(json.dumps(data, indent=2))


@feeds_app.command("reset-offset")
def feeds_reset_offset(
    ctx: typer.Context,
    feed_id: Annotated[str, typer.Argument(help="Feed id.")],
) -> None:
    """Restart a URL-list feed from its first URL."""
    pipeline = _pipeline(ctx)
    feed = _get_feed_or_exit(pipeline, feed_id)
    feed.offset = 0
    pipeline.store.save_feed(feed)
    console.print(f"[green]Offset reset[/green] for {feed.name}")


@feeds_app.command("set-status")
def feeds_set_status(
    ctx: typer.Context,
    feed_id: Annotated[str, typer.Argument(help="Feed id.")],
    status: Annotated[FeedStatus, typer.Argument(help="New status.")],
) -> None:
    """Activate or deactivate a feed."""
    pipeline = _pipeline(ctx)
    feed = _get_feed_or_exit(pipeline, feed_id)
    feed.status = status
    pipeline.store.save_feed(feed)
    console.print(f"{feed.name} is now [bold]{status}[/bold]")


# ── Settings ─────────────────────────────────────────────────────


@settings_app.command("get")
def settings_get(
    ctx: typer.Context,
    key: Annotated[
        Optional[str], typer.Argument(help="Setting key, or a category such as 'scraping'.")
    ] = None,
) -> None:
    """Show one setting, a category, or every setting."""
    pipeline = _pipeline(ctx)
    if key is None:
        categories = sorted({k.split(".", 1)[0] for k in DEFAULT_SETTINGS})
        values: dict[str, Any] = {}
        for category in categories:
            values.update(pipeline.settings.get_category(category))
        console.print(json.dumps(values, indent=2))
    elif "." in key:
        console.print(json.dumps({key: pipeline.settings.get(key)}, indent=2))
    else:
        console.print(json.dumps(pipeline.settings.get_category(key), indent=2))


@settings_app.command("set")
def settings_set(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Setting key, e.g. general.quality_threshold.")],
    value: Annotated[str, typer.Argument(help="Value; parsed as JSON when possible.")],
) -> None:
    """Store a setting."""
    pipeline = _pipeline(ctx)
    parsed = _parse_value(value)
    pipeline.settings.set(key, parsed)
    console.print(f"[green]Set[/green] {key} = {parsed!r}")


# ── Prompts ──────────────────────────────────────────────────────


@prompts_app.command("show")
def prompts_show(
    ctx: typer.Context,
    kind: Annotated[str, typer.Argument(help="Content kind.")],
) -> None:
    """Print the template in effect for a content kind."""
    pipeline = _pipeline(ctx)
    console.print(pipeline.prompts.template_for(kind), markup=False, highlight=False)


@prompts_app.command("set")
def prompts_set(
    ctx: typer.Context,
    kind: Annotated[str, typer.Argument(help="Content kind.")],
    template_file: Annotated[Path, typer.Argument(help="File holding the template.", exists=True)],
) -> None:
    """Store a custom template after validating it."""
    pipeline = _pipeline(ctx)
    template = template_file.read_text(encoding="utf-8")
    check = pipeline.prompts.test_prompt(kind, template)
    if not check.valid:
        console.print(f"[red]Error:[/red] {check.error}")
        raise typer.Exit(1)
    pipeline.prompts.save_custom_prompt(kind, template)
    console.print(f"[green]Custom prompt saved[/green] for {kind}")


@prompts_app.command("reset")
def prompts_reset(
    ctx: typer.Context,
    kind: Annotated[str, typer.Argument(help="Content kind.")],
) -> None:
    """Drop a custom template so the built-in one applies."""
    pipeline = _pipeline(ctx)
    if pipeline.prompts.reset_custom_prompt(kind):
        console.print(f"[green]Reset[/green] prompt for {kind}")
    else:
        console.print(f"[yellow]No custom prompt for {kind}.[/yellow]")


@prompts_app.command("test")
def prompts_test(
    ctx: typer.Context,
    kind: Annotated[str, typer.Argument(help="Content kind.")],
    template_file: Annotated[
        Optional[Path], typer.Argument(help="Template file; defaults to the one in effect.", exists=True)
    ] = None,
) -> None:
    """Render a template against sample content and report problems."""
    pipeline = _pipeline(ctx)
    template = (
        template_file.read_text(encoding="utf-8")
        if template_file
        else pipeline.prompts.template_for(kind)
    )
    check = pipeline.prompts.test_prompt(kind, template)
    if not check.valid:
        console.print(f"[red]Invalid:[/red] {check.error}")
        raise typer.Exit(1)
    console.print("[green]Template is valid.[/green]")
    console.print(check.preview or "", markup=False, highlight=False)


# ── Providers ────────────────────────────────────────────────────


@providers_app.command("set")
def providers_set(
    ctx: typer.Context,
    provider: Annotated[ProviderName, typer.Argument(help="Provider name.")],
    model: Annotated[str, typer.Option("--model", "-m", help="Model id.")],
    api_key: Annotated[
        str, typer.Option("--api-key", help="API key; empty uses the provider's env var.")
    ] = "",
    max_tokens: Annotated[int, typer.Option("--max-tokens")] = 1500,
    temperature: Annotated[float, typer.Option("--temperature")] = 0.1,
    activate: Annotated[
        bool, typer.Option("--activate/--no-activate", help="Make this the active provider.")
    ] = True,
) -> None:
    """Store settings for an AI provider."""
    pipeline = _pipeline(ctx)
    pipeline.store.save_provider_settings(
        ProviderSettings(
            provider=provider,
            model=model,
            api_key=api_key,
            max_tokens=max_tokens,
            temperature=temperature,
            is_active=activate,
        )
    )
    state = "active" if activate else "inactive"
    console.print(f"[green]Saved[/green] {provider} ({model}, {state})")


@providers_app.command("list")
def providers_list(ctx: typer.Context) -> None:
    """List configured providers."""
    pipeline = _pipeline(ctx)
    providers = pipeline.store.list_provider_settings()
    if not providers:
        console.print("[yellow]No AI providers configured.[/yellow]")
        return
    table = Table(title="AI providers")
    for column in ("Provider", "Model", "Key", "Max tokens", "Temperature", "Active"):
        table.add_column(column)
    for p in providers:
        table.add_row(
            str(p.provider),
            p.model,
            "set" if p.api_key else "env",
            str(p.max_tokens),
            str(p.temperature),
            "[green]yes[/green]" if p.is_active else "no",
        )
    console.print(table)


@providers_app.command("test")
def providers_test(
    ctx: typer.Context,
    provider: Annotated[ProviderName, typer.Argument(help="Provider name.")],
    model: Annotated[Optional[str], typer.Option("--model", "-m")] = None,
    api_key: Annotated[str, typer.Option("--api-key")] = "",
) -> None:
    """Send a short request to check a provider's credentials."""
    pipeline = _pipeline(ctx)
    stored = pipeline.store.get_provider_settings(provider)
    model = model or (stored.model if stored else None)
    if not model:
        console.print("[red]Error:[/red] No model given and none stored for this provider.")
        raise typer.Exit(1)
    key = api_key or (stored.api_key if stored else "")

    outcome = pipeline.orchestrator.test_provider(provider, key, model)
    if outcome.success:
        console.print(f"[green]{outcome.message}[/green] in {outcome.latency_ms} ms")
    else:
        console.print(f"[red]{outcome.message}:[/red] {outcome.error}")
        raise typer.Exit(1)


# ── Duplicates ───────────────────────────────────────────────────


@duplicates_app.command("cleanup")
def duplicates_cleanup(
    ctx: typer.Context,
    days: Annotated[
        Optional[int], typer.Option("--days", help="Keep fingerprints newer than this.")
    ] = None,
) -> None:
    """Expire old fingerprints."""
    pipeline = _pipeline(ctx)
    keep = days if days is not None else pipeline.settings.get_int("duplicates.retention_days")
    removed = pipeline.detector.cleanup_old_records(keep)
    console.print(f"Removed {removed} fingerprint(s) older than {keep} days")


@duplicates_app.command("clear-feed")
def duplicates_clear_feed(
    ctx: typer.Context,
    feed_id: Annotated[str, typer.Argument(help="Feed id.")],
) -> None:
    """Forget a feed's fingerprints so its items can be processed again."""
    pipeline = _pipeline(ctx)
    removed = pipeline.detector.clear_feed(feed_id)
    console.print(f"Removed {removed} fingerprint(s) for feed {feed_id}")


if __name__ == "__main__":
    app()
