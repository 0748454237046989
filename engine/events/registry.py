"""
Event descriptors for node lifecycle milestones, the match selection policy that reduces a
source's raw matches to the occurrences that get timed, and the structured error raised when
events cannot be bound to a registered source.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""


from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from datasources.base import CommentFunc, FindFunc, FindResult, Source
from engine.enums import MatchSelector


@dataclass(eq=False)
class Event:
    name: str
    metric: str
    src_name: str
    find_fn: FindFunc
    comment_fn: Optional[CommentFunc] = None
    match_selector: MatchSelector = MatchSelector.first
    terminal: bool = False
    src: Optional[Source] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        # unknown selectors keep every match
        try:
            self.match_selector = MatchSelector(self.match_selector)
        except ValueError:
            self.match_selector = MatchSelector.all

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "metric": self.metric,
            "matchSelector": self.match_selector.value,
            "terminal": self.terminal,
            "src": self.src_name,
        }


def select_matches(results: Sequence[FindResult], selector: MatchSelector | str) -> List[FindResult]:
    if not results:
        return []
    if selector == MatchSelector.first:
        return [results[0]]
    if selector == MatchSelector.last:
        return [results[-1]]
    return list(results)


def comment_matched_line() -> CommentFunc:
    def _comment(matched_line: str) -> str:
        return matched_line

    return _comment


@dataclass(frozen=True)
class RegistrationFailure:
    event_name: str
    src_name: str
    reason: str

    def __str__(self) -> str:
        return f'unable to register event "{self.event_name}" because source "{self.src_name}" {self.reason}'


class EventRegistrationError(Exception):
    def __init__(self, failures: Sequence[RegistrationFailure]) -> None:
        self.failures: List[RegistrationFailure] = list(failures)
        super().__init__("; ".join(str(f) for f in self.failures))

    @property
    def event_names(self) -> List[str]:
        return [f.event_name for f in self.failures]
