"""
Base source for line oriented log files.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import asyncio
import re
from typing import TYPE_CHECKING, List, Optional, Pattern, Union

from datasources.base import FindFunc, FindResult, Source, call_find_fn, comment_for, timestamp_key
from datasources.exceptions import TimestampUnparseable
from datasources.logreader import LogReader

if TYPE_CHECKING:
    from engine.events.registry import Event


class LogSource(Source):
    """A :class:`Source` over a (possibly rotated, possibly gzipped) log file.

    Subclasses set ``name``, ``default_path``, ``timestamp_regex`` and
    ``timestamp_layout``; events bind to it through :meth:`find_by_regex`.
    """

    default_path: str = ""
    timestamp_regex: Union[str, Pattern[str]] = ""
    timestamp_layout: str = ""

    def __init__(
        self,
        path: Optional[str] = None,
        year_instance_launched: Optional[int] = None,
        glob: bool = True,
    ) -> None:
        self.reader = LogReader(
            path or self.default_path,
            timestamp_regex=self.timestamp_regex,
            timestamp_layout=self.timestamp_layout,
            glob=glob,
            year_instance_launched=year_instance_launched,
        )

    @property
    def path(self) -> str:
        return self.reader.path

    def clear_cache(self) -> None:
        self.reader.clear_cache()

    def __str__(self) -> str:
        return self.reader.path

    def find_by_regex(self, pattern: Union[str, bytes, Pattern[str], Pattern[bytes]]) -> FindFunc:
        regex = re.compile(pattern) if isinstance(pattern, (str, bytes)) else pattern

        def _find(_source: Source, _data: Optional[bytes]) -> List[str]:
            return self.reader.find(regex)

        return _find

    async def find(self, event: "Event") -> List[FindResult]:
        data = await asyncio.to_thread(self.reader.read)
        lines = await call_find_fn(event.find_fn, self, data)
        results: List[FindResult] = []
        for line in lines:
            try:
                ts, err = self.reader.parse_timestamp(line), None
            except TimestampUnparseable as exc:
                ts, err = None, exc
            results.append(FindResult(line=line, timestamp=ts, comment=comment_for(event, line), error=err))
        results.sort(key=lambda r: timestamp_key(r.timestamp))
        return results
