from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from config import settings
from engine.enums import RunStatus
from engine.measurer import Measurement, MeasurementCancelled, MeasurementTimeout, Measurer

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunView:
    status: RunStatus
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error: Optional[str] = None


class MeasurementService:
    """Runs one bounded measurement in the background and keeps its latest result."""

    def __init__(self) -> None:
        self.measurer: Optional[Measurer] = None
        self.measurement: Optional[Measurement] = None
        self.run = RunView(status=RunStatus.pending)
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()

    @property
    def finished(self) -> bool:
        return self.run.status.finished

    def start(
        self,
        measurer: Measurer,
        timeout: Optional[float] = None,
        retry_delay: Optional[float] = None,
    ) -> asyncio.Task:
        if self._task is not None and not self._task.done():
            raise RuntimeError("a measurement is already running")
        self.measurer = measurer
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._run(
            measurer,
            settings.timeout_seconds if timeout is None else timeout,
            settings.retry_delay_seconds if retry_delay is None else retry_delay,
        ))
        return self._task

    async def _run(self, measurer: Measurer, timeout: float, retry_delay: float) -> None:
        self.run = RunView(status=RunStatus.running, started_at=_utcnow())
        status = RunStatus.complete
        error: Optional[str] = None
        try:
            self.measurement = await measurer.measure_until(timeout, retry_delay, stop=self._stop)
        except MeasurementTimeout as exc:
            log.warning("%s", exc)
            self.measurement, status, error = exc.measurement, RunStatus.timeout, str(exc)
        except MeasurementCancelled as exc:
            self.measurement, status, error = exc.measurement, RunStatus.cancelled, str(exc)
        except Exception as exc:
            log.exception("measurement run failed")
            status, error = RunStatus.failed, str(exc)
        self.run = RunView(status=status, started_at=self.run.started_at, finished_at=_utcnow(), error=error)
        log.info("measurement run finished: %s", status.value)

    async def wait(self) -> None:
        if self._task is not None:
            await self._task

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task


measurement_service = MeasurementService()
