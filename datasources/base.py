"""
Source contract shared by every place timestamped evidence of a node lifecycle event can appear.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable, List, Optional, Union

if TYPE_CHECKING:
    from engine.events.registry import Event

# unknown timestamps order before every real one
ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)


def timestamp_key(ts: Optional[datetime]) -> datetime:
    return ts if ts is not None else ZERO_TIME


@dataclass
class FindResult:
    line: str
    timestamp: Optional[datetime] = None
    comment: str = ""
    error: Optional[Exception] = None


FindFunc = Callable[["Source", Optional[bytes]], Union[List[str], Awaitable[List[str]]]]
CommentFunc = Callable[[str], str]


async def call_find_fn(find_fn: FindFunc, source: "Source", data: Optional[bytes]) -> List[str]:
    """Run a find function that may be plain or a coroutine function."""
    result: Any = find_fn(source, data)
    if inspect.isawaitable(result):
        result = await result
    return list(result or [])


def comment_for(event: "Event", line: str) -> str:
    if event.comment_fn is None:
        return ""
    return event.comment_fn(line)


class Source(ABC):
    name: str = ""

    @abstractmethod
    async def find(self, event: "Event") -> List[FindResult]:
        """Return the raw matches for ``event``.

        Raises :class:`~datasources.exceptions.SourceUnavailable` when the
        backing data cannot be retrieved and
        :class:`~datasources.exceptions.NoMatch` when it was retrieved but
        holds nothing for the event. Both are retried by the measurer.
        """

    def clear_cache(self) -> None:
        """Drop cached raw data; API sources without a cache keep the no-op."""

    def __str__(self) -> str:
        return self.name
