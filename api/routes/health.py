"""
Health and readiness routes.

Copyright (c) 2026 Stefan Kumarasinghe
Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at http://www.apache.org/licenses/LICENSE-2.0
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from api.routes.exception import handle_exceptions
from services.measurement_service import measurement_service

router = APIRouter(tags=["Health"])


@router.get("/health")
@handle_exceptions
async def health() -> Dict[str, Any]:
    measurer = measurement_service.measurer
    return {
        "status": "ok",
        "sources": sorted(measurer.sources) if measurer else [],
        "events": len(measurer.events) if measurer else 0,
    }


@router.get("/ready", summary="Ready once the measurement run has finished")
@handle_exceptions
async def ready() -> JSONResponse:
    run = measurement_service.run
    done = measurement_service.finished
    return JSONResponse(
        status_code=200 if done else 503,
        content={"ready": done, "status": run.status.value, "error": run.error},
    )
