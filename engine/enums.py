"""
Enumerations for match selection and measurement run status

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

from enum import Enum


class MatchSelector(str, Enum):
    first = "first"
    last = "last"
    all = "all"


class RunStatus(str, Enum):
    pending = "pending"
    running = "running"
    complete = "complete"
    timeout = "timeout"
    cancelled = "cancelled"
    failed = "failed"

    @property
    def finished(self) -> bool:
        return self in (RunStatus.complete, RunStatus.timeout, RunStatus.cancelled, RunStatus.failed)
