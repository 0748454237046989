"""
Entry point for the Node Latency measurement service.

Copyright (c) 2026 Stefan Kumarasinghe

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI

from api.routes import router
from config import CHART_COLUMN_COMMENT, OUTPUT_JSON, Settings, settings
from connectors.imds import ImdsSource
from datasources.exceptions import SourceError
from datasources.factory import SourceFactory
from engine.events.defaults import build_measurer
from engine.export import chart
from engine.measurer import Measurer
from services.measurement_service import measurement_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    stream=sys.stdout,
)
log = logging.getLogger(__name__)


async def _region(cfg: Settings, imds: Optional[ImdsSource]) -> Optional[str]:
    if cfg.aws_region or imds is None:
        return cfg.aws_region
    try:
        return (await imds.identity_document()).get("region")
    except SourceError as exc:
        log.warning("unable to discover AWS region via IMDS: %s", exc)
        return None


async def create_measurer(cfg: Settings) -> Measurer:
    imds = SourceFactory.create_imds(cfg)
    ec2_client = SourceFactory.create_ec2_client(cfg, region=await _region(cfg, imds))
    core_v1 = SourceFactory.create_core_v1(cfg)
    return await build_measurer(cfg, imds=imds, ec2_client=ec2_client, core_v1=core_v1)


def _report() -> None:
    measurement = measurement_service.measurement
    if measurement is None:
        return
    if settings.output == OUTPUT_JSON:
        print(json.dumps(measurement.to_dict(), indent=4))
    else:
        print(chart(measurement, hidden_columns=[CHART_COLUMN_COMMENT] if settings.no_comments else []))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    measurer = await create_measurer(settings)
    log.info(
        "measuring %d event(s) from %d source(s) (timeout=%ds, retry-delay=%ds)",
        len(measurer.events), len(measurer.sources), settings.timeout_seconds, settings.retry_delay_seconds,
    )
    task = measurement_service.start(measurer)
    task.add_done_callback(lambda _t: _report())
    try:
        yield
    finally:
        await measurement_service.stop()


app = FastAPI(
    title="Node Latency for K8s",
    description="Timeline of a Kubernetes node's boot and bootstrap, from instance request to pod ready.",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router, prefix="/api/v1")


def run() -> None:
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.metrics_port,
        log_level="info",
        access_log=True,
    )


if __name__ == "__main__":
    run()
