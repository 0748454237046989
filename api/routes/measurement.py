"""
Measurement routes exposing the latest node latency timeline, its markdown chart and its
metrics exposition.

Copyright (c) 2026 Stefan Kumarasinghe
Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import PlainTextResponse

from api.responses import MeasurementResponse
from api.routes.exception import handle_exceptions
from config import CHART_COLUMN_COMMENT, settings
from engine.export import chart, gauges, render_prometheus
from services.measurement_service import measurement_service

router = APIRouter(tags=["Measurement"])


@router.get("/measurement", summary="Latest node latency measurement", response_model_by_alias=True)
@handle_exceptions
async def get_measurement() -> MeasurementResponse:
    return MeasurementResponse.build(
        measurement_service.run.status,
        measurement_service.measurement,
        measurement_service.run.error,
    )


@router.get("/measurement/chart", summary="Markdown chart of the latest measurement", response_class=PlainTextResponse)
@handle_exceptions
async def get_chart(no_comments: Optional[bool] = None) -> str:
    measurement = measurement_service.measurement
    if measurement is None:
        raise HTTPException(status_code=404, detail="no measurement available yet")
    hide_comments = settings.no_comments if no_comments is None else no_comments
    return chart(measurement, hidden_columns=[CHART_COLUMN_COMMENT] if hide_comments else [])


@router.get("/metrics", summary="Prometheus exposition of the latest measurement", response_class=PlainTextResponse)
@handle_exceptions
async def get_metrics(experiment: Optional[str] = None) -> str:
    measurement = measurement_service.measurement
    if measurement is None:
        return ""
    return render_prometheus(gauges(measurement, experiment or settings.experiment_dimension))
