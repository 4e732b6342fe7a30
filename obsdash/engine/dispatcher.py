"""
Message dispatcher: the single serialization point.

Messages are processed one at a time in arrival order. Each step runs the
transition function, publishes the new snapshot and hands the requested
effects to the runner. The cache and resilience policy are only touched
inside process(), so no locking is needed around them.
"""

import asyncio
import logging
import time
from typing import Callable, Iterable, Optional, Protocol

from ..cache import Cache
from ..resilience import ResiliencePolicy
from .effects import Effect
from .messages import Message
from .store import StateStore
from .transition import transition

logger = logging.getLogger(__name__)


class EffectSink(Protocol):
    def submit(self, effects: Iterable[Effect]) -> None: ...


_STOP = object()


class Dispatcher:
    """
    Serializes messages through the transition function.

    Usage:
        dispatcher = Dispatcher(store, cache, policy)
        dispatcher.attach(EffectRunner(dispatcher.post, sources))
        dispatcher.post(RefreshMetrics())
        await dispatcher.run()
    """

    def __init__(
        self,
        store: StateStore,
        cache: Cache = None,
        policy: ResiliencePolicy = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.cache = cache if cache is not None else Cache()
        self.policy = policy if policy is not None else ResiliencePolicy()
        self._clock = clock
        self._runner: Optional[EffectSink] = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False
        self.processed = 0

    def attach(self, runner: EffectSink) -> None:
        self._runner = runner

    def post(self, message: Message) -> None:
        """Queue *message*. Safe to call from other threads once run() has started."""
        loop = self._loop
        if loop is not None and loop.is_running():
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is not loop:
                loop.call_soon_threadsafe(self._queue.put_nowait, message)
                return
        self._queue.put_nowait(message)

    def process(self, message: Message) -> tuple[Effect, ...]:
        """Apply one message synchronously and return the effects it requested."""
        state = self.store.current()
        new_state, effects = transition(
            state,
            message,
            now=self._clock(),
            cache=self.cache,
            policy=self.policy,
        )
        self.store.replace(new_state)
        self.processed += 1
        if effects:
            logger.debug(f"{type(message).__name__} -> {[type(e).__name__ for e in effects]}")
        return effects

    def dispatch(self, message: Message) -> tuple[Effect, ...]:
        """process() and hand the effects to the attached runner."""
        effects = self.process(message)
        if effects and self._runner is not None:
            self._runner.submit(effects)
        return effects

    async def run(self, initial_effects: Iterable[Effect] = ()) -> None:
        """Consume the queue until stop() is called."""
        self._loop = asyncio.get_running_loop()
        self._running = True
        initial = tuple(initial_effects)
        if initial and self._runner is not None:
            self._runner.submit(initial)

        logger.info("Dispatcher started")
        try:
            while True:
                message = await self._queue.get()
                try:
                    if message is _STOP:
                        break
                    try:
                        self.dispatch(message)
                    except Exception:
                        # Keep the last good snapshot; one bad message must not stop the UI
                        logger.exception(f"Transition failed for {type(message).__name__}")
                finally:
                    self._queue.task_done()
        finally:
            self._running = False
            logger.info(f"Dispatcher stopped after {self.processed} messages")

    def stop(self) -> None:
        """Ask run() to exit after the messages already queued."""
        self.post(_STOP)

    async def drain(self) -> None:
        """Wait until every queued message has been processed."""
        await self._queue.join()

    @property
    def running(self) -> bool:
        return self._running
