"""JSON result document describing the outcome of one run."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import StressTesterError

__all__ = ["FailureReport", "RunStatus", "StressTestResult", "write_result"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReportModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class RunStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"


class FailureReport(ReportModel):
    """Classified failure, as produced by :meth:`StressTesterError.to_dict`."""

    kind: str
    message: str
    request: str
    action: Optional[str] = None
    response: Optional[str] = None
    source_text: Optional[str] = None
    tree_text: Optional[str] = None

    @classmethod
    def from_error(cls, error: StressTesterError) -> "FailureReport":
        return cls.model_validate(error.to_dict())


class StressTestResult(ReportModel):
    """Outcome of a run or a syntactic timing session."""

    file: str
    page: str = "1/1"
    rewrite_mode: str = "none"
    status: RunStatus = RunStatus.PASSED
    action_count: int = 0
    failure: Optional[FailureReport] = None
    performance: Dict[str, Any] = Field(default_factory=dict)
    finished_at: datetime = Field(default_factory=utc_now)

    def record_failure(self, error: StressTesterError) -> None:
        self.status = RunStatus.FAILED
        self.failure = FailureReport.from_error(error)


def write_result(path: Path, result: StressTestResult) -> None:
    """Write ``result`` as indented JSON, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = result.model_dump(mode="json")
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
