"""
Response models for API endpoints.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from engine.enums import MatchSelector, RunStatus
from engine.measurer import Measurement, Metadata, Timing


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class MetadataResponse(CamelModel):

    region: str
    instance_type: str = Field(alias="instanceType")
    instance_id: str = Field(alias="instanceID")
    account_id: str = Field(alias="accountID")
    architecture: str
    availability_zone: str = Field(alias="availabilityZone")
    private_ip: str = Field(alias="privateIP")
    ami_id: str = Field(alias="amiID")

    @classmethod
    def from_metadata(cls, md: Metadata) -> "MetadataResponse":
        return cls(**md.to_dict())


class EventResponse(CamelModel):

    name: str
    metric: str
    match_selector: MatchSelector = Field(alias="matchSelector")
    terminal: bool
    src: str


class TimingResponse(CamelModel):

    event: EventResponse
    timestamp: Optional[datetime] = None
    seconds: Optional[float] = None
    comment: str = ""
    error: Optional[str] = None

    @classmethod
    def from_timing(cls, timing: Timing) -> "TimingResponse":
        return cls(
            event=EventResponse(**timing.event.to_dict()),
            timestamp=timing.timestamp,
            seconds=timing.t.total_seconds() if timing.t is not None else None,
            comment=timing.comment,
            error=str(timing.error) if timing.error is not None else None,
        )


class MeasurementResponse(CamelModel):

    status: RunStatus
    error: Optional[str] = None
    metadata: Optional[MetadataResponse] = None
    timings: List[TimingResponse] = Field(default_factory=list)

    @classmethod
    def build(cls, status: RunStatus, measurement: Optional[Measurement], error: Optional[str] = None) -> "MeasurementResponse":
        if measurement is None:
            return cls(status=status, error=error)
        return cls(
            status=status,
            error=error,
            metadata=MetadataResponse.from_metadata(measurement.metadata) if measurement.metadata else None,
            timings=[TimingResponse.from_timing(t) for t in measurement.timings],
        )
