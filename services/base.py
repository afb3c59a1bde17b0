"""
Catalog pipeline stages.

A Stage wraps one step of a sync cycle (fetch, unified sync, comparison,
selection). When a stage owns a database session and fails, its pending
writes are rolled back before the failure is reported, so the next stage
or the next cycle starts from committed state.
"""

import logging
import time
import traceback
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


@dataclass
class StageResult:
    stage_name: str
    success: bool
    data: Any = None
    error: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.utcnow)
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage_name,
            "success": self.success,
            "error": self.error,
            "startedAt": self.started_at.isoformat(),
            "durationSeconds": round(self.duration_seconds, 3),
        }

    def __repr__(self):
        status = "✅" if self.success else "❌"
        return f"{status} {self.stage_name} ({self.duration_seconds:.2f}s)"


class Stage(ABC):
    """One step of a catalog sync cycle. Subclasses implement `run(data)`."""

    def __init__(self, name: str, session: Optional[Session] = None):
        self.name = name
        self.session = session
        self.logger = logging.getLogger(f"stage.{name}")

    @abstractmethod
    def run(self, data: Any) -> Any:
        raise NotImplementedError

    def execute(self, data: Any) -> StageResult:
        started_at = datetime.utcnow()
        t0 = time.perf_counter()
        try:
            output = self.run(data)
        except Exception as e:
            elapsed = time.perf_counter() - t0
            if self.session is not None:
                self.session.rollback()
            self.logger.error(f"{self.name} failed after {elapsed:.2f}s: {e}")
            self.logger.debug(traceback.format_exc())
            return StageResult(self.name, False, error=str(e),
                               started_at=started_at, duration_seconds=elapsed)

        elapsed = time.perf_counter() - t0
        self.logger.info(f"{self.name} done in {elapsed:.2f}s")
        return StageResult(self.name, True, data=output,
                           started_at=started_at, duration_seconds=elapsed)

    def __repr__(self):
        return f"<Stage: {self.name}>"


class Orchestrator:
    """
    Runs stages in order, feeding each stage's output into the next.

    With `stop_on_failure` (the default for sync cycles) the first failed
    result is returned and the remaining stages never run. Otherwise a
    failed stage is skipped: the next stage receives the last good output,
    and the last successful result is returned.
    """

    def __init__(self, stages: List[Stage], stop_on_failure: bool = True):
        self.stages = stages
        self.stop_on_failure = stop_on_failure
        self.run_history: List[StageResult] = []

    def execute(self, input_data: Any) -> StageResult:
        self.run_history = []
        data = input_data
        last_ok: Optional[StageResult] = None

        for stage in self.stages:
            result = stage.execute(data)
            self.run_history.append(result)
            if result.success:
                data = result.data
                last_ok = result
            elif self.stop_on_failure:
                logger.warning(f"Cycle stopped at {stage.name}: {result.error}")
                return result

        failed = [r.stage_name for r in self.run_history if not r.success]
        if failed:
            logger.warning(f"Cycle finished with failed stages: {', '.join(failed)}")
        return last_ok or self.run_history[-1]

    @property
    def succeeded(self) -> bool:
        return bool(self.run_history) and all(r.success for r in self.run_history)

    def summary(self) -> str:
        total = sum(r.duration_seconds for r in self.run_history)
        lines = [f"Cycle summary ({len(self.run_history)}/{len(self.stages)} stages, {total:.2f}s):"]
        lines.extend(f"  {r!r}" for r in self.run_history)
        return "\n".join(lines)
