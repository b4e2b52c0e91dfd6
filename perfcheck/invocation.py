"""
Invocation handles: how a worker drives one execution of the target.

Three forms are supported:
- plain zero-argument callable: returns normally or raises
- AsyncInvocation: the callable receives a CompletionHandle and signals
  success/failure out-of-band, possibly from another thread
- CoroutineInvocation: an ``async def`` target, run on a per-worker event loop

Usage:
    def target(handle):
        client.send(payload, on_done=lambda ok: handle.success() if ok else handle.fail())

    scheduler = EvaluationScheduler(context, AsyncInvocation(target))
"""
from __future__ import annotations

import asyncio
import inspect
import threading
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Optional, Union

# Interpreter shutdown signals; every other exception raised by a target is a
# failed invocation.
PROPAGATED_EXCEPTIONS = (KeyboardInterrupt, GeneratorExit)


@dataclass(frozen=True)
class Completion:
    """
    Outcome signalled through a CompletionHandle.

    latency_ns is filled in at signal time when the caller gives none.
    """
    success: bool
    latency_ns: Optional[int] = None
    error: Optional[BaseException] = None


class CompletionHandle:
    """
    Completion signal for one asynchronous invocation.

    The first signal wins; later calls are ignored and return False.
    Safe to signal from any thread.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._completion: Optional[Completion] = None
        self.started_ns = time.perf_counter_ns()

    def success(self, latency_ns: Optional[int] = None) -> bool:
        """Signal success, optionally overriding the measured latency."""
        return self._complete(Completion(success=True, latency_ns=latency_ns))

    def fail(
        self,
        error: Optional[BaseException] = None,
        latency_ns: Optional[int] = None,
    ) -> bool:
        """Signal failure."""
        return self._complete(Completion(success=False, latency_ns=latency_ns, error=error))

    def _complete(self, completion: Completion) -> bool:
        if completion.latency_ns is None:
            completion = replace(
                completion, latency_ns=time.perf_counter_ns() - self.started_ns
            )
        with self._lock:
            if self._completion is not None:
                return False
            self._completion = completion
        self._event.set()
        return True

    @property
    def done(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> Optional[Completion]:
        """Block until signalled. Returns None on timeout."""
        if not self._event.wait(timeout):
            return None
        with self._lock:
            return self._completion


class AsyncInvocation:
    """
    Target that completes out-of-band through a CompletionHandle.

    An exception raised by the target before it signals counts as failure.
    """

    def __init__(self, fn: Callable[[CompletionHandle], Any]) -> None:
        self._fn = fn

    def start(self) -> CompletionHandle:
        handle = CompletionHandle()
        try:
            self._fn(handle)
        except PROPAGATED_EXCEPTIONS:
            raise
        except BaseException as exc:
            handle.fail(exc)
        return handle


class CoroutineInvocation:
    """
    ``async def`` target run to completion on the calling worker's own loop.

    Each worker thread lazily creates one event loop and closes it through
    close_worker() when it exits.
    """

    def __init__(self, fn: Callable[[], Awaitable[Any]]) -> None:
        self._fn = fn
        self._local = threading.local()

    def _loop(self) -> asyncio.AbstractEventLoop:
        loop = getattr(self._local, "loop", None)
        if loop is None or loop.is_closed():
            loop = asyncio.new_event_loop()
            self._local.loop = loop
        return loop

    def run(self, timeout: Optional[float] = None) -> Any:
        """Run one invocation; raises asyncio.TimeoutError past timeout."""
        loop = self._loop()
        return loop.run_until_complete(asyncio.wait_for(self._fn(), timeout))

    def close_worker(self) -> None:
        loop = getattr(self._local, "loop", None)
        if loop is not None and not loop.is_closed():
            loop.close()
        self._local.loop = None


Invocation = Union[Callable[[], Any], AsyncInvocation, CoroutineInvocation]


def as_invocation(target: Any) -> Invocation:
    """Wrap a bare ``async def`` function; pass anything else through."""
    if isinstance(target, (AsyncInvocation, CoroutineInvocation)):
        return target
    if inspect.iscoroutinefunction(target):
        return CoroutineInvocation(target)
    if not callable(target):
        raise TypeError(f"Invocation target must be callable, got {type(target).__name__}")
    return target


def is_async_invocation(invocation: Any) -> bool:
    """True when completion is signalled out-of-band rather than by return."""
    return isinstance(invocation, AsyncInvocation)
