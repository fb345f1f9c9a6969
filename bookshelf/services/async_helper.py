"""
Async helper utilities.

Bridges the async services into synchronous Flask views.
"""

import asyncio
import concurrent.futures
import threading
from functools import wraps
from typing import Any

_local = threading.local()


def _thread_loop() -> asyncio.AbstractEventLoop:
    # One loop per thread, reused so clients bound to it stay usable.
    loop = getattr(_local, 'loop', None)
    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        _local.loop = loop
    return loop


def run_async(coro_or_func) -> Any:
    """
    Run an async coroutine synchronously or convert an async function to sync.

    Usage:
    - run_async(service.get_books(uid)) - runs a coroutine directly
    - run_async(service.get_books) - returns a sync wrapper function

    Raises:
        TypeError: If the argument is neither a coroutine nor callable
    """
    if hasattr(coro_or_func, '__await__'):
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return _thread_loop().run_until_complete(coro_or_func)

        # Already inside a running loop: run on a fresh loop in a worker thread
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as executor:
            def run_in_new_loop():
                new_loop = asyncio.new_event_loop()
                try:
                    return new_loop.run_until_complete(coro_or_func)
                finally:
                    new_loop.close()
            return executor.submit(run_in_new_loop).result()

    elif callable(coro_or_func):
        @wraps(coro_or_func)
        def wrapper(*args, **kwargs):
            return run_async(coro_or_func(*args, **kwargs))
        return wrapper

    else:
        raise TypeError(f"Expected coroutine or callable, got {type(coro_or_func)}")
