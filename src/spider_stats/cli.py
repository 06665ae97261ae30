"""CLI entry point for the statistics service."""

from __future__ import annotations

import asyncio
import json

import click

from .core.enums import BusBackend, EventKind, StoreBackend


@click.group()
def main() -> None:
    """Spider statistics service."""


@main.command()
@click.option("--config", default=None, help="Config file path (TOML)")
@click.option(
    "--bus",
    type=click.Choice([b.value for b in BusBackend]),
    default=None,
    help="Event bus backend override",
)
@click.option(
    "--store",
    type=click.Choice([s.value for s in StoreBackend]),
    default=None,
    help="Counter store backend override",
)
def serve(config: str | None, bus: str | None, store: str | None) -> None:
    """Run the statistics center until interrupted."""
    from .main import run

    overrides: dict = {}
    if bus:
        overrides["bus"] = bus
    if store:
        overrides["store"] = store

    asyncio.run(run(config_path=config, overrides=overrides))


@main.command()
@click.argument("kind", type=click.Choice([k.value for k in EventKind]))
@click.argument("payload")
@click.option("--config", default=None, help="Config file path (TOML)")
def publish(kind: str, payload: str, config: str | None) -> None:
    """Publish one statistics event, e.g. ``publish Failed spider-1,3``."""
    from .core.config import load_settings
    from .core.models import StatisticsMessage
    from .main import build_bus

    settings = load_settings(config_path=config)
    if settings.bus == BusBackend.MEMORY:
        raise click.UsageError(
            "publish needs a shared bus; the memory bus has no other subscriber. "
            "Set bus = \"redis\" in the config or SPIDER_STATS_BUS=redis."
        )

    async def _publish() -> str:
        bus = build_bus(settings)
        await bus.start()
        try:
            message = StatisticsMessage(kind=kind, payload=payload)
            await bus.publish(settings.statistics.topic, message)
            return message.message_id
        finally:
            await bus.stop()

    message_id = asyncio.run(_publish())
    click.echo(f"Published {kind} {payload!r} ({message_id})")


@main.command()
@click.argument("owner_id")
@click.option("--config", default=None, help="Config file path (TOML)")
@click.option("--as-json", "as_json", is_flag=True, help="Print the raw snapshot as JSON")
def snapshot(owner_id: str, config: str | None, as_json: bool) -> None:
    """Print the counters recorded for OWNER_ID."""
    from .aggregation.engine import AggregationEngine
    from .core.config import load_settings
    from .storage.factory import create_counter_store

    settings = load_settings(config_path=config)
    if settings.store == StoreBackend.MEMORY:
        raise click.UsageError(
            "snapshot needs a persistent store; a fresh memory store is always empty. "
            "Set store = \"redis\" or \"postgres\" in the config or SPIDER_STATS_STORE."
        )

    async def _read():
        store = create_counter_store(settings)
        await store.ensure_ready()
        try:
            return await AggregationEngine(store).snapshot(owner_id)
        finally:
            await store.close()

    statistics = asyncio.run(_read())
    if statistics is None:
        click.echo(f"No statistics recorded for {owner_id}")
        raise SystemExit(1)
    if as_json:
        data = statistics.model_dump(mode="json")
        data["state"] = statistics.state.value
        data["left"] = statistics.left
        click.echo(json.dumps(data, indent=2))
    else:
        click.echo(statistics.report_line())


if __name__ == "__main__":
    main()
