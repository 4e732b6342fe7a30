"""
Effect runner.

Executes effects outside the dispatcher, each in its own asyncio task, and
posts exactly one result message per effect back to the dispatcher. This is
the only place where exceptions from collaborators are turned into messages:
fetch failures go through the error classifier, config and settings failures
become error messages.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Union

from ..errors import ApiError, classify
from .effects import Delay, Effect, Fetch, LoadConfig, SaveSettings, StartTimer
from .messages import (
    LOADED_MESSAGES,
    ConfigLoaded,
    Message,
    SettingsSaved,
    TimerFired,
)
from .state import ConfigState, Theme

logger = logging.getLogger(__name__)

ConfigLoader = Callable[[], Union[ConfigState, Awaitable[ConfigState]]]
SettingsSaver = Callable[[Theme, int], Union[None, Awaitable[None]]]


async def _call(func: Callable[..., Any], *args: Any) -> Any:
    """Call a sync or async collaborator; sync ones run in a worker thread."""
    if inspect.iscoroutinefunction(func):
        return await func(*args)
    result = await asyncio.to_thread(func, *args)
    if inspect.isawaitable(result):
        return await result
    return result


class EffectRunner:
    """
    Runs effects concurrently and feeds their results back as messages.

    Args:
        post: Dispatcher.post, the only way back into the state machine
        sources: Data sources by key (metrics, logs, alerts)
        config_loader: Supplies the startup ConfigState
        settings_saver: Persists user settings (theme, refresh interval)
        sleep: Injected for tests
    """

    def __init__(
        self,
        post: Callable[[Message], None],
        sources: Mapping[str, Any],
        config_loader: Optional[ConfigLoader] = None,
        settings_saver: Optional[SettingsSaver] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._post = post
        self._sources = dict(sources)
        self._config_loader = config_loader
        self._settings_saver = settings_saver
        self._sleep = sleep
        self._tasks: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def submit(self, effects: Iterable[Effect]) -> None:
        """Start a task per effect. Must be called from the event loop."""
        for effect in effects:
            task = asyncio.create_task(self._run(effect), name=type(effect).__name__)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(self, effect: Effect) -> None:
        message = await self.execute(effect)
        if message is not None:
            self._post(message)

    async def execute(self, effect: Effect) -> Optional[Message]:
        """Execute one effect and return the message it produces."""
        if isinstance(effect, Fetch):
            return await self._fetch(effect)
        if isinstance(effect, StartTimer):
            await self._sleep(effect.duration)
            return TimerFired(effect.generation)
        if isinstance(effect, Delay):
            await self._sleep(effect.duration)
            return effect.message
        if isinstance(effect, LoadConfig):
            return await self._load_config()
        if isinstance(effect, SaveSettings):
            return await self._save_settings(effect)

        logger.warning(f"No executor for effect {type(effect).__name__}")
        return None

    async def _fetch(self, effect: Fetch) -> Message:
        key = effect.source.value
        loaded = LOADED_MESSAGES[effect.source]
        source = self._sources.get(key)
        if source is None:
            error = ApiError.application(f"no data source registered for '{key}'", key)
            return loaded(effect.generation, error=error)

        try:
            data = await asyncio.wait_for(source.fetch(effect), timeout=effect.timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = classify(e, key)
            logger.info(f"Fetch '{key}' g{effect.generation} failed: {error.describe()}")
            return loaded(effect.generation, error=error)

        logger.debug(f"Fetch '{key}' g{effect.generation} succeeded")
        return loaded(effect.generation, data=data)

    async def _load_config(self) -> Message:
        if self._config_loader is None:
            return ConfigLoaded(config=None, error=None)
        try:
            config = await _call(self._config_loader)
        except Exception as e:
            logger.error(f"Config load failed: {e}")
            return ConfigLoaded(config=None, error=str(e))
        return ConfigLoaded(config=config)

    async def _save_settings(self, effect: SaveSettings) -> Message:
        if self._settings_saver is None:
            return SettingsSaved(error="settings storage is not configured")
        try:
            await _call(self._settings_saver, effect.theme, effect.refresh_interval_ms)
        except Exception as e:
            logger.error(f"Settings save failed: {e}")
            return SettingsSaved(error=str(e))
        return SettingsSaved()

    async def shutdown(self) -> None:
        """Cancel every outstanding effect (process exit)."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Effect runner stopped, cancelled {len(tasks)} tasks")
