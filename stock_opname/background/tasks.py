# stock_opname/background/tasks.py
from typing import Any, Callable

from fastapi import BackgroundTasks


def enqueue_task(background_tasks: BackgroundTasks, func: Callable[..., Any], *args: Any) -> None:
    """Run a broadcast after the response is sent; the writer only waits for its commit."""
    background_tasks.add_task(func, *args)
