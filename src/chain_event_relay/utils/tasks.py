"""Helpers for joining concurrent asyncio work."""

import asyncio
from collections.abc import Awaitable
from typing import Any


async def gather_all(*aws: Awaitable[Any]) -> list[Any]:
    """
    Run awaitables concurrently and wait for every one of them to finish.

    Unlike a plain ``asyncio.gather``, no task is left running in the
    background when one fails: all are joined first, then the first error
    is raised.

    Returns:
        Results in the order of the awaitables
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)
