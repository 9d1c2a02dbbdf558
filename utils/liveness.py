import inspect
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Hashable, Optional, Set, TypeVar

from services.exceptions import ActionInProgressError
from utils.logger import app_logger

T = TypeVar("T")


class ViewScope:
    """
    Liveness flag for one consumer of async results (a screen, a thread view).

    Results that arrive after the scope is closed are dropped instead of
    being applied to state nobody is looking at any more.
    """

    def __init__(self, name: str):
        self.name = name
        self._alive = True

    @property
    def alive(self) -> bool:
        return self._alive

    def close(self) -> None:
        self._alive = False

    async def apply(self, awaitable: Awaitable[T], on_result: Callable[[T], Any]) -> Optional[T]:
        """
        Awaits `awaitable` and hands the result to `on_result` only if the
        scope is still alive. Errors propagate either way.
        """
        result = await awaitable
        if not self._alive:
            app_logger.debug(f"Scope '{self.name}' closed, dropping late result.")
            return None
        applied = on_result(result)
        if inspect.isawaitable(applied):
            await applied
        return result


class ActionGate:
    """
    Lets one instance of an action per key run at a time.

    A second submission while the first is in flight is refused with
    ActionInProgressError. The key is always released when the action
    finishes, whether it succeeded, failed or timed out.
    """

    def __init__(self):
        self._in_flight: Set[Hashable] = set()

    def is_busy(self, key: Hashable) -> bool:
        return key in self._in_flight

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        if key in self._in_flight:
            raise ActionInProgressError(f"{key} is already in progress.")
        self._in_flight.add(key)
        try:
            yield
        finally:
            self._in_flight.discard(key)
