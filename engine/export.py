"""
Rendering of a finished Measurement: the markdown chart and the gauge samples exported as
metrics, dimensioned by node metadata and a caller supplied experiment label.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

from config import CHART_COLUMN_COMMENT, CHART_COLUMN_EVENT, CHART_COLUMN_T, CHART_COLUMN_TIMESTAMP
from engine.measurer import Measurement

log = logging.getLogger(__name__)

CHART_HEADERS = (CHART_COLUMN_EVENT, CHART_COLUMN_TIMESTAMP, CHART_COLUMN_T, CHART_COLUMN_COMMENT)


@dataclass(frozen=True)
class GaugeSample:
    metric: str
    value: float
    labels: Dict[str, str] = field(default_factory=dict)


def metric_dimensions(measurement: Measurement, experiment: str) -> Dict[str, str]:
    dimensions = {"experiment": experiment}
    if measurement.metadata is not None:
        dimensions.update({
            "instanceType": measurement.metadata.instance_type,
            "amiID": measurement.metadata.ami_id,
            "region": measurement.metadata.region,
            "availabilityZone": measurement.metadata.availability_zone,
        })
    return dimensions


def gauges(measurement: Measurement, experiment: str) -> List[GaugeSample]:
    dimensions = metric_dimensions(measurement, experiment)
    by_metric: Dict[str, GaugeSample] = {}
    for timing in measurement.timings:
        if timing.error is not None or timing.t is None:
            continue
        # repeated metrics (match selector "all") keep the last value like a gauge would
        by_metric[timing.event.metric] = GaugeSample(timing.event.metric, timing.t.total_seconds(), dict(dimensions))
    return list(by_metric.values())


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def render_prometheus(samples: Iterable[GaugeSample]) -> str:
    lines: List[str] = []
    for sample in samples:
        labels = ",".join(f'{k}="{_escape(v)}"' for k, v in sorted(sample.labels.items()))
        lines.append(f"# TYPE {sample.metric} gauge")
        lines.append(f"{sample.metric}{{{labels}}} {sample.value:g}")
    return "\n".join(lines) + ("\n" if lines else "")


def _filter_columns(hidden: Sequence[str], row: Sequence[str]) -> List[str]:
    hidden_lower = {h.lower() for h in hidden}
    return [value for header, value in zip(CHART_HEADERS, row) if header.lower() not in hidden_lower]


def chart(measurement: Measurement, hidden_columns: Sequence[str] = ()) -> str:
    out: List[str] = []
    md = measurement.metadata
    if md is not None:
        out.append(
            f"### {md.instance_id} ({md.private_ip}) | {md.instance_type} | {md.architecture} "
            f"| {md.availability_zone} | {md.ami_id}"
        )

    headers = _filter_columns(hidden_columns, CHART_HEADERS)
    out.append("| " + " | ".join(headers) + " |")
    out.append("|" + "|".join("-" * (len(h) + 2) for h in headers) + "|")
    for timing in measurement.timings:
        if timing.error is not None:
            log.info("Error with event %r timing: %s", timing.event.name, timing.error)
            continue
        seconds = timing.t.total_seconds() if timing.t is not None else 0.0
        row = _filter_columns(hidden_columns, (
            timing.event.name,
            timing.timestamp.strftime("%Y-%m-%dT%H:%M:%SZ") if timing.timestamp else "",
            f"{seconds:.0f}s",
            timing.comment.replace("|", "\\|"),
        ))
        out.append("| " + " | ".join(row) + " |")
    return "\n".join(out) + "\n"
