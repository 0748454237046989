"""
Log file reader shared by the log based sources: glob resolution, transparent gzip
decompression, caching, regex search and timestamp extraction.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import glob as globlib
import gzip
import logging
import math
import os
import re
import zlib
from datetime import datetime, timezone
from typing import List, Optional, Pattern, Tuple, Union

from datasources.exceptions import NoMatch, SourceUnavailable, TimestampUnparseable

log = logging.getLogger(__name__)

_SPACE_RE = re.compile(r"\s+")
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")
_YEAR_RE = re.compile(r"(?<!\d)\d{4}(?!\d)")

GZIP_SUFFIX = ".gz"


def _mtime_key(path: str) -> Tuple[float, str]:
    try:
        return os.stat(path).st_mtime, path
    except OSError:
        return math.inf, path


def oldest(paths: List[str]) -> str:
    """Pick the least recently modified path; rotated logs hold the earliest boot lines."""
    return min(paths, key=_mtime_key)


class LogReader:
    def __init__(
        self,
        path: str,
        timestamp_regex: Union[str, Pattern[str]],
        timestamp_layout: str,
        glob: bool = True,
        year_instance_launched: Optional[int] = None,
    ) -> None:
        self.path = path
        self.glob = glob
        self.timestamp_regex = re.compile(timestamp_regex) if isinstance(timestamp_regex, str) else timestamp_regex
        self.timestamp_layout = timestamp_layout
        self.year_instance_launched = year_instance_launched
        self._data: Optional[bytes] = None

    def clear_cache(self) -> None:
        self._data = None

    def resolve_path(self) -> str:
        if not self.glob:
            return self.path
        matches = globlib.glob(self.path)
        if not matches:
            raise SourceUnavailable(f"unable to find log file {self.path}")
        return oldest(matches)

    def read(self) -> bytes:
        if self._data is not None:
            return self._data
        resolved = self.resolve_path()
        try:
            if resolved.endswith(GZIP_SUFFIX):
                with gzip.open(resolved, "rb") as fh:
                    data = fh.read()
            else:
                with open(resolved, "rb") as fh:
                    data = fh.read()
        except (OSError, EOFError, zlib.error) as exc:
            raise SourceUnavailable(f"unable to read log file {resolved}: {exc}") from exc
        log.debug("read %d bytes from %s", len(data), resolved)
        self._data = data
        return data

    def find(self, pattern: Union[str, bytes, Pattern[str], Pattern[bytes]]) -> List[str]:
        regex = re.compile(pattern) if isinstance(pattern, (str, bytes)) else pattern
        data = self.read()
        if isinstance(regex.pattern, bytes):
            lines = [m.group(0).decode("utf-8", errors="replace") for m in regex.finditer(data)]
        else:
            lines = [m.group(0) for m in regex.finditer(data.decode("utf-8", errors="replace"))]
        if not lines:
            raise NoMatch(f'no matches in {self.path} for regex "{regex.pattern}"')
        return lines

    def parse_timestamp(self, line: str) -> datetime:
        match = self.timestamp_regex.search(line)
        if match is None:
            raise TimestampUnparseable(
                f'unable to find timestamp on log line matching regex: "{self.timestamp_regex.pattern}" "{line}"'
            )
        raw = _SPACE_RE.sub(" ", match.group(0)).strip()
        raw = _FRACTION_RE.sub(r"\1", raw)
        if not _YEAR_RE.search(raw):
            year = self.year_instance_launched or datetime.now(timezone.utc).year
            raw = f"{raw} {year}"
        try:
            ts = datetime.strptime(raw, self.timestamp_layout)
        except ValueError as exc:
            raise TimestampUnparseable(f'unable to parse timestamp "{raw}": {exc}') from exc
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts
