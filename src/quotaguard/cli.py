"""
quotaguard CLI
Operator commands against the configured admission store.
"""

import asyncio
import json
import logging
import sys
from typing import Any, Awaitable, Callable, Optional

import click
from rich.console import Console
from rich.table import Table

from quotaguard.config import get_settings
from quotaguard.quota import RateLimiter, create_rate_limiter
from quotaguard.store import StoreUnavailableError, initialize_store, shutdown_store

console = Console()


def run_with_limiter(ctx: click.Context, action: Callable[[RateLimiter], Awaitable[Any]]) -> Any:
    """Run ``action`` against the context's limiter, opening the store if we own it."""
    injected = ctx.obj.get("limiter")

    async def _main() -> Any:
        if injected is not None:
            return await action(injected)
        limiter = create_rate_limiter(ctx.obj["settings"])
        await initialize_store(limiter.store)
        try:
            return await action(limiter)
        finally:
            await shutdown_store(limiter.store)

    return asyncio.run(_main())


@click.group()
@click.option("--backend", type=click.Choice(["memory", "redis"]), default=None, help="Store backend")
@click.option("--redis-url", envvar="REDIS_URL", default=None, help="Redis connection URL")
@click.option("--log-level", default=None, help="Logging level")
@click.pass_context
def cli(ctx, backend: Optional[str], redis_url: Optional[str], log_level: Optional[str]):
    """quotaguard CLI - inspect and administer outbound API quotas."""
    ctx.ensure_object(dict)
    settings = get_settings()
    overrides = {}
    if backend:
        overrides["store_backend"] = backend
    if redis_url:
        overrides["redis_url"] = redis_url
    if log_level:
        overrides["log_level"] = log_level
    if overrides:
        settings = settings.model_copy(update=overrides)
    ctx.obj["settings"] = settings

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def health(ctx, as_json: bool):
    """Check store reachability and list configured APIs."""
    status = run_with_limiter(ctx, lambda limiter: limiter.health_check())

    if as_json:
        console.print(json.dumps(status.to_dict(), indent=2))
    elif status.store_reachable:
        console.print(f"✅ [green]Store reachable[/green] ({status.backend})")
    else:
        console.print(f"⚠️ [yellow]Store unreachable[/yellow] ({status.backend}), checks fail open")

    if not as_json:
        console.print(f"   Configured APIs: {', '.join(status.configured_apis) or '-'}")
        if status.details.get("redis_version"):
            console.print(f"   Redis version: {status.details['redis_version']}")
        if "total_keys" in status.details:
            console.print(f"   Keys: {status.details['total_keys']}")
    if not status.store_reachable:
        sys.exit(1)


@cli.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def list_configs(ctx, as_json: bool):
    """List configured dependencies and their quotas."""
    settings = ctx.obj["settings"]
    limiter = ctx.obj.get("limiter") or create_rate_limiter(settings)
    configs = limiter.registry.snapshot()

    if as_json:
        console.print(json.dumps({n: c.to_dict() for n, c in configs.items()}, indent=2))
        return

    table = Table(title="Configured Quotas")
    table.add_column("API", style="cyan")
    table.add_column("Requests", justify="right")
    table.add_column("Window (s)", justify="right")
    table.add_column("Burst/s", justify="right")

    for name, config in configs.items():
        table.add_row(
            name,
            f"{config.max_requests:,}",
            f"{config.window_seconds:g}",
            str(config.burst_limit) if config.burst_limit is not None else "-",
        )

    console.print(table)


@cli.command()
@click.argument("name")
@click.option("--identifier", "-i", default=None, help="Caller scope")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def limits(ctx, name: str, identifier: Optional[str], as_json: bool):
    """Show the quota and live window counts for an API."""
    current = run_with_limiter(ctx, lambda limiter: limiter.get_current_limits(name, identifier))

    if as_json:
        console.print(json.dumps(current.to_dict(), indent=2))
        return

    if current.config is None:
        console.print(f"[dim]{name} is not configured (unlimited)[/dim]")
        return

    config = current.config
    decision = current.current
    state = "[green]open[/green]" if decision.allowed else "[red]exhausted[/red]"
    console.print(f"[cyan]{name}[/cyan] ({identifier or 'default'}): {state}")
    console.print(f"   Main window: {current.main_count}/{config.max_requests} in {config.window_seconds:g}s")
    if config.burst_limit is not None:
        console.print(f"   Burst: {current.burst_count}/{config.burst_limit} this second")
    console.print(f"   Resets at: {decision.reset_at.isoformat()}")
    if decision.retry_after is not None:
        console.print(f"   Retry after: {decision.retry_after:.1f}s")


@cli.command()
@click.argument("name")
@click.option("--identifier", "-i", default=None, help="Caller scope")
@click.option("--days", "-d", default=7, type=click.IntRange(1, 31), help="Days to show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def stats(ctx, name: str, identifier: Optional[str], days: int, as_json: bool):
    """Show daily request statistics for an API."""
    daily = run_with_limiter(ctx, lambda limiter: limiter.get_api_stats(name, identifier, days))

    if as_json:
        console.print(json.dumps({d: s.to_dict() for d, s in daily.items()}, indent=2))
        return

    if not daily:
        console.print("⚠️ [yellow]No statistics available (store unreachable?)[/yellow]")
        return

    table = Table(title=f"{name} usage ({identifier or 'default'})")
    table.add_column("Date", style="cyan")
    table.add_column("Total", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Error", justify="right")
    table.add_column("Success rate", justify="right")

    for day, entry in daily.items():
        rate = entry.success_rate
        color = "green" if rate >= 99 else "yellow" if rate >= 90 else "red"
        table.add_row(
            day,
            str(entry.total),
            str(entry.success),
            str(entry.error),
            f"[{color}]{rate:.1f}%[/{color}]",
        )

    console.print(table)


@cli.command()
@click.argument("name")
@click.option("--identifier", "-i", default=None, help="Caller scope")
@click.pass_context
def reset(ctx, name: str, identifier: Optional[str]):
    """Clear the main and burst windows of an API scope."""
    try:
        run_with_limiter(ctx, lambda limiter: limiter.reset_rate_limit(name, identifier))
    except StoreUnavailableError as e:
        console.print(f"❌ [red]Reset failed: {e}[/red]")
        sys.exit(1)
    console.print(f"✅ [green]Reset {name}:{identifier or 'default'}[/green]")


@cli.command()
@click.option("--host", default=None, help="Bind host")
@click.option("--port", default=None, type=int, help="Bind port")
@click.pass_context
def serve(ctx, host: Optional[str], port: Optional[int]):
    """Run the admin API server."""
    import uvicorn

    from quotaguard.api.app import create_app

    settings = ctx.obj["settings"]
    uvicorn.run(
        create_app(settings),
        host=host or settings.api_host,
        port=port or settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    cli()
