"""
Measurer: holds the registered sources and events, runs correlation passes over them and
retries incomplete passes until every terminal event has been timed or a deadline expires.

A pass asks every event's bound source for matches, reduces them with the event's match
selector, orders the resulting timings chronologically, drops everything after the last
terminal timing and expresses each timing as an offset from the first trustworthy one.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

from datasources.base import Source, timestamp_key
from datasources.exceptions import NoMatch, SourceError
from engine.events.registry import Event, EventRegistrationError, RegistrationFailure, select_matches

log = logging.getLogger(__name__)

Seconds = Union[float, int, timedelta]


@dataclass(frozen=True)
class Metadata:
    region: str = ""
    instance_type: str = ""
    instance_id: str = ""
    account_id: str = ""
    architecture: str = ""
    availability_zone: str = ""
    private_ip: str = ""
    ami_id: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "region": self.region,
            "instanceType": self.instance_type,
            "instanceID": self.instance_id,
            "accountID": self.account_id,
            "architecture": self.architecture,
            "availabilityZone": self.availability_zone,
            "privateIP": self.private_ip,
            "amiID": self.ami_id,
        }


class MetadataProvider(Protocol):
    async def get(self) -> Metadata: ...


@dataclass(eq=False)
class Timing:
    event: Event
    timestamp: Optional[datetime]
    comment: str = ""
    error: Optional[Exception] = None
    t: Optional[timedelta] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event.to_dict(),
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "seconds": self.t.total_seconds() if self.t is not None else None,
            "comment": self.comment,
            "error": str(self.error) if self.error is not None else None,
        }


@dataclass
class Measurement:
    metadata: Optional[Metadata] = None
    timings: List[Timing] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metadata": self.metadata.to_dict() if self.metadata else None,
            "timings": [t.to_dict() for t in self.timings],
        }


class MeasurementError(Exception):
    def __init__(self, message: str, measurement: Optional[Measurement]) -> None:
        super().__init__(message)
        self.measurement = measurement


class MeasurementTimeout(MeasurementError):
    def __init__(self, missing: Sequence[str], measurement: Optional[Measurement], terminal: bool) -> None:
        self.missing = list(missing)
        self.terminal = terminal
        if terminal:
            message = f"unable to measure terminal events: {self.missing}"
        else:
            message = f"unable to measure events {self.missing} within timeout window"
        super().__init__(message, measurement)


class MeasurementCancelled(MeasurementError):
    def __init__(self, measurement: Optional[Measurement]) -> None:
        super().__init__("measurement cancelled", measurement)


def order_timings(timings: Sequence[Timing]) -> List[Timing]:
    # sorted() is stable: equal timestamps keep registration order
    return sorted(timings, key=lambda t: timestamp_key(t.timestamp))


def truncate_after_last_terminal(timings: Sequence[Timing]) -> List[Timing]:
    """Drop timings after the last error-free terminal timing.

    Errored terminal timings never set the cut, so a pass that has not seen a
    terminal event yet keeps its whole partial timeline.
    """
    for idx in range(len(timings) - 1, -1, -1):
        timing = timings[idx]
        if timing.event.terminal and timing.ok and timing.timestamp is not None:
            return list(timings[: idx + 1])
    return list(timings)


def anchor_for(timings: Sequence[Timing]) -> Optional[Timing]:
    """First error-free timing, else the first timing at all."""
    if not timings:
        return None
    for timing in timings:
        if timing.ok:
            return timing
    return timings[0]


def normalize(timings: Sequence[Timing]) -> Optional[Timing]:
    # offsets may be negative: the anchor is the first trustworthy observation, not the earliest
    anchor = anchor_for(timings)
    for timing in timings:
        if anchor is None or anchor.timestamp is None or timing.timestamp is None:
            timing.t = None
        else:
            timing.t = timing.timestamp - anchor.timestamp
    return anchor


def _seconds(value: Seconds) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


async def _sleep(delay: float, stop: Optional[asyncio.Event]) -> bool:
    """Sleep ``delay`` seconds; True when ``stop`` fired first."""
    if stop is None:
        await asyncio.sleep(delay)
        return False
    try:
        await asyncio.wait_for(stop.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return False
    return True


class Measurer:
    def __init__(self, metadata_provider: Optional[MetadataProvider] = None) -> None:
        self._sources: Dict[str, Source] = {}
        self._events: List[Event] = []
        self.metadata_provider = metadata_provider
        self._metadata: Optional[Metadata] = None

    @property
    def sources(self) -> Dict[str, Source]:
        return dict(self._sources)

    @property
    def events(self) -> List[Event]:
        return list(self._events)

    def get_source(self, name: str) -> Optional[Source]:
        return self._sources.get(name)

    def register_sources(self, *sources: Source) -> "Measurer":
        for src in sources:
            self._sources[src.name] = src
        return self

    def register_events(self, *events: Event) -> "Measurer":
        """Bind ``events`` to their registered sources.

        Events whose source is missing are skipped; once every event has been
        processed an :class:`EventRegistrationError` lists the skipped ones.
        The successfully bound events stay registered either way.
        """
        failures: List[RegistrationFailure] = []
        for event in events:
            src = self.get_source(event.src_name)
            if src is None:
                failures.append(RegistrationFailure(event.name, event.src_name, "is not registered"))
                continue
            event.src = src
            self._events.append(event)
        if failures:
            raise EventRegistrationError(failures)
        return self

    async def _metadata_or_none(self) -> Optional[Metadata]:
        if self._metadata is not None:
            return self._metadata
        if self.metadata_provider is None:
            return None
        try:
            self._metadata = await self.metadata_provider.get()
        except Exception as exc:
            log.debug("unable to retrieve node metadata: %s", exc)
            return None
        return self._metadata

    async def _timings_for(self, event: Event) -> List[Timing]:
        src = event.src
        if src is None:
            return []
        try:
            results = await src.find(event)
        except SourceError as exc:
            return [Timing(event=event, timestamp=None, error=exc)]
        except Exception as exc:
            log.warning("source %s failed for event %r: %s", src.name, event.name, exc)
            return [Timing(event=event, timestamp=None, error=exc)]
        if not results:
            return [Timing(event=event, timestamp=None, error=NoMatch(f"no matches in {src} for {event.name!r}"))]
        results = sorted(results, key=lambda r: timestamp_key(r.timestamp))
        return [
            Timing(event=event, timestamp=r.timestamp, comment=r.comment, error=r.error)
            for r in select_matches(results, event.match_selector)
        ]

    async def measure(self) -> Measurement:
        timings: List[Timing] = []
        for event in self._events:
            timings.extend(await self._timings_for(event))
        timings = truncate_after_last_terminal(order_timings(timings))
        normalize(timings)
        return Measurement(metadata=await self._metadata_or_none(), timings=timings)

    def _measured(self, measurement: Measurement) -> set[str]:
        return {t.event.name for t in measurement.timings if t.ok}

    async def measure_until(
        self,
        timeout: Seconds,
        retry_delay: Seconds,
        stop: Optional[asyncio.Event] = None,
    ) -> Measurement:
        """Repeat :meth:`measure` until complete, ``timeout`` expires or ``stop`` is set.

        Complete means every terminal event has an error-free timing, or, when
        no event is terminal, every registered event has one. Source caches are
        cleared between attempts. Raises :class:`MeasurementTimeout` or
        :class:`MeasurementCancelled`, both carrying the last measurement.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + _seconds(timeout)
        delay = _seconds(retry_delay)
        terminal = [e for e in self._events if e.terminal]
        measurement: Optional[Measurement] = None
        attempt = 0

        while True:
            if stop is not None and stop.is_set():
                raise MeasurementCancelled(measurement)
            attempt += 1
            measurement = await self.measure()
            for timing in measurement.timings:
                if timing.error is not None:
                    log.warning("Unable to retrieve timing for Event %r: %s", timing.event.name, timing.error)

            measured = self._measured(measurement)
            if terminal:
                done = all(e.name in measured for e in terminal)
            else:
                done = all(e.name in measured for e in self._events)
            if done:
                log.info("measurement complete after %d attempt(s)", attempt)
                return measurement

            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            for src in self._sources.values():
                src.clear_cache()
            if await _sleep(min(delay, remaining), stop):
                raise MeasurementCancelled(measurement)
            if loop.time() >= deadline:
                break

        pending = terminal or self._events
        missing = [e.name for e in pending if e.name not in self._measured(measurement)]
        raise MeasurementTimeout(missing, measurement, terminal=bool(terminal))
