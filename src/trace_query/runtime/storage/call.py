"""
Deferred, single-shot remote operations.

A Call is built without doing any I/O. `await call.execute()` runs it exactly once;
`call.enqueue(callback)` runs it as an asyncio task instead. `map` and `flat_map`
compose calls: a failure in one stage propagates unchanged and skips every later stage.
"""
import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum
from typing import Any, Generic, TypeVar

from .store_interface import CallCanceledError, IllegalCallStateError


V = TypeVar('V')
R = TypeVar('R')


class CallState(str, Enum):
    NEW = "new"
    EXECUTING = "executing"
    DONE = "done"
    FAILED = "failed"
    CANCELED = "canceled"


class Callback(ABC, Generic[V]):
    """Receives the outcome of an enqueued call"""

    @abstractmethod
    def on_success(self, value: V) -> None:
        pass

    @abstractmethod
    def on_error(self, error: BaseException) -> None:
        pass


class Call(ABC, Generic[V]):

    def __init__(self) -> None:
        self._state = CallState.NEW
        self._canceled = False

    @property
    def state(self) -> CallState:
        return self._state

    async def execute(self) -> V:
        if self._state is not CallState.NEW:
            raise IllegalCallStateError(f"{type(self).__name__} already executed; clone it to run again")
        if self._canceled:
            self._state = CallState.CANCELED
            raise CallCanceledError(f"{type(self).__name__} was canceled before execution")

        self._state = CallState.EXECUTING
        try:
            value = await self._do_execute()
        except asyncio.CancelledError:
            self._state = CallState.CANCELED
            raise
        except BaseException:
            self._state = CallState.CANCELED if self._canceled else CallState.FAILED
            raise

        if self._canceled:
            # the result arrived after cancel: discard it
            self._state = CallState.CANCELED
            raise CallCanceledError(f"{type(self).__name__} was canceled during execution")
        self._state = CallState.DONE
        return value

    def enqueue(self, callback: Callback[V]) -> asyncio.Task:
        """Run this call as a task on the running loop, reporting to the callback"""
        async def run() -> None:
            try:
                value = await self.execute()
            except asyncio.CancelledError:
                callback.on_error(CallCanceledError(f"{type(self).__name__} task was canceled"))
                raise
            except Exception as e:
                callback.on_error(e)
                return
            callback.on_success(value)

        return asyncio.get_running_loop().create_task(run())

    def cancel(self) -> None:
        """Stops stages that have not been issued yet. In-flight results are discarded."""
        self._canceled = True
        self._do_cancel()

    def map(self, mapper: Callable[[V], R]) -> "Call[R]":
        return MappedCall(self, mapper)

    def flat_map(self, flat_mapper: Callable[[V], "Call[R]"]) -> "Call[R]":
        return FlatMappedCall(self, flat_mapper)

    @abstractmethod
    async def _do_execute(self) -> V:
        pass

    def _do_cancel(self) -> None:
        pass

    @abstractmethod
    def clone(self) -> "Call[V]":
        """A new, unexecuted call performing the same operation"""
        pass

    @staticmethod
    def create(value: V) -> "Call[V]":
        return Constant(value)

    @staticmethod
    def empty_list() -> "Call[list[Any]]":
        return Constant([])


class Constant(Call[V]):
    """Completes with a value known up front, without any I/O"""

    def __init__(self, value: V) -> None:
        super().__init__()
        self.value = value

    async def _do_execute(self) -> V:
        return self.value

    def clone(self) -> "Constant[V]":
        return Constant(self.value)

    def __repr__(self) -> str:
        return f"Constant({self.value!r})"


class MappedCall(Call[R]):

    def __init__(self, delegate: Call[V], mapper: Callable[[V], R]) -> None:
        super().__init__()
        self.delegate = delegate
        self.mapper = mapper

    async def _do_execute(self) -> R:
        return self.mapper(await self.delegate.execute())

    def _do_cancel(self) -> None:
        self.delegate.cancel()

    def clone(self) -> "MappedCall[R]":
        return MappedCall(self.delegate.clone(), self.mapper)

    def __repr__(self) -> str:
        return f"MappedCall({self.delegate!r}, {self.mapper!r})"


class FlatMappedCall(Call[R]):
    """Issues the call returned by flat_mapper only once the delegate succeeded"""

    def __init__(self, delegate: Call[V], flat_mapper: Callable[[V], Call[R]]) -> None:
        super().__init__()
        self.delegate = delegate
        self.flat_mapper = flat_mapper
        self._next: Call[R] | None = None

    async def _do_execute(self) -> R:
        value = await self.delegate.execute()
        if self._canceled:
            raise CallCanceledError("FlatMappedCall was canceled before issuing its next call")
        self._next = self.flat_mapper(value)
        return await self._next.execute()

    def _do_cancel(self) -> None:
        self.delegate.cancel()
        if self._next is not None:
            self._next.cancel()

    def clone(self) -> "FlatMappedCall[R]":
        return FlatMappedCall(self.delegate.clone(), self.flat_mapper)

    def __repr__(self) -> str:
        return f"FlatMappedCall({self.delegate!r}, {self.flat_mapper!r})"
