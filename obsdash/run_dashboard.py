"""
Dashboard runner

Boots the engine against the configured backends and logs the rendered view
whenever it changes.

Usage:
    python -m obsdash.run_dashboard [--config PATH] [--view metrics|logs|alerts] [--duration SECONDS]
    python -m obsdash.run_dashboard --json-logs      # one JSON object per log line
"""

import argparse
import asyncio
import json
import logging
import sys
from functools import partial
from pathlib import Path
from typing import Optional

import httpx
from pythonjsonlogger import jsonlogger

from obsdash.cache import Cache
from obsdash.config import (
    CONFIG_PATH,
    SETTINGS_PATH,
    ConfigError,
    load_config,
    load_resilience_config,
    save_settings,
)
from obsdash.engine import (
    AppState,
    Dispatcher,
    EffectRunner,
    LoadConfig,
    StateStore,
    View,
    initial_state,
)
from obsdash.render import render
from obsdash.resilience import ResilienceConfig, ResiliencePolicy, delay_schedule
from obsdash.sources.alertmanager import AlertmanagerSource
from obsdash.sources.base import DataSource
from obsdash.sources.http import USER_AGENT
from obsdash.sources.loki import LokiSource
from obsdash.sources.prometheus import PrometheusSource

logger = logging.getLogger(__name__)


def build_sources(client: Optional[httpx.AsyncClient] = None) -> dict[str, DataSource]:
    sources: list[DataSource] = [
        PrometheusSource(client),
        LokiSource(client),
        AlertmanagerSource(client),
    ]
    return {source.source_id: source for source in sources}


def _resilience_config(config_path: Path) -> ResilienceConfig:
    try:
        config = load_resilience_config(config_path)
    except ConfigError as e:
        logger.warning(f"Using default resilience settings: {e}")
        config = ResilienceConfig()
    logger.info(
        f"Resilience: threshold={config.failure_threshold}, attempts={config.max_attempts}, "
        f"backoff={delay_schedule(config.max_attempts, config.backoff)}"
    )
    return config


async def run_dashboard(
    config_path: Path = CONFIG_PATH,
    settings_path: Path = SETTINGS_PATH,
    view: View = View.METRICS,
    duration: Optional[float] = None,
) -> AppState:
    """Run until *duration* seconds pass (forever when None); return the final state."""
    store = StateStore(initial_state(view=view))
    policy = ResiliencePolicy(_resilience_config(config_path))
    dispatcher = Dispatcher(store, Cache(), policy)

    last_tree: dict = {}

    def log_view(state: AppState) -> None:
        tree = render(state)
        if tree != last_tree:
            last_tree.clear()
            last_tree.update(tree)
            logger.info(json.dumps(tree, default=str))

    store.subscribe(log_view)

    async with httpx.AsyncClient(headers={"User-Agent": USER_AGENT}) as client:
        runner = EffectRunner(
            dispatcher.post,
            build_sources(client),
            config_loader=partial(load_config, config_path, settings_path),
            settings_saver=partial(_save_settings, settings_path),
        )
        dispatcher.attach(runner)

        task = asyncio.create_task(dispatcher.run(initial_effects=(LoadConfig(),)))
        try:
            if duration is None:
                await task
            else:
                await asyncio.sleep(duration)
        finally:
            dispatcher.stop()
            await task
            await runner.shutdown()

    logger.info(f"Circuit state: {json.dumps(policy.to_dict())}")
    return store.current()


def _save_settings(settings_path: Path, theme, refresh_interval_ms: int) -> None:
    save_settings(theme, refresh_interval_ms, settings_path)


def json_log_handler(stream=None) -> logging.Handler:
    """Handler emitting one JSON object per record, for log shippers."""
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"asctime": "timestamp", "levelname": "severity"},
    ))
    return handler


def _configure_logging(level_name: str, json_logs: bool) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    if json_logs:
        root = logging.getLogger()
        root.addHandler(json_log_handler())
        root.setLevel(level)
        return
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def main():
    parser = argparse.ArgumentParser(description="Run the observability dashboard engine")
    parser.add_argument("--config", type=Path, default=CONFIG_PATH, help="Dashboard YAML config")
    parser.add_argument("--settings", type=Path, default=SETTINGS_PATH, help="Saved user settings")
    parser.add_argument(
        "--view",
        choices=[v.value for v in View],
        default=View.METRICS.value,
        help="View to open on startup (default: metrics)",
    )
    parser.add_argument("--duration", type=float, help="Stop after this many seconds")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--json-logs", action="store_true", help="Emit structured JSON log lines")
    args = parser.parse_args()

    _configure_logging(args.log_level, args.json_logs)

    try:
        asyncio.run(run_dashboard(args.config, args.settings, View(args.view), args.duration))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
