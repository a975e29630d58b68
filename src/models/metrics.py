"""Daily rollup and sweep report models."""

from __future__ import annotations

from typing import Dict, Optional

from pydantic import AwareDatetime, BaseModel, Field

UNASSIGNED_BUCKET = "unassigned"


class AgentDayMetrics(BaseModel):
    """Per-agent counts inside one DailyMetric."""

    tickets_opened: int = 0
    tickets_closed: int = 0
    total_response_minutes: float = 0.0
    response_count: int = 0

    @property
    def avg_response_minutes(self) -> float:
        if not self.response_count:
            return 0.0
        return self.total_response_minutes / self.response_count


class DailyMetric(BaseModel):
    """One record per calendar day, keyed by YYYY-MM-DD."""

    date: str
    tickets_opened: int
    tickets_closed: int
    sla_compliance: float = Field(ge=0, le=100, description="percentage of open tickets within SLA")
    agent_metrics: Dict[str, AgentDayMetrics] = Field(default_factory=dict)
    computed_at: Optional[AwareDatetime] = None


class SweepReport(BaseModel):
    """Outcome of one scheduled sweep run."""

    job: str
    examined: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    started_at: AwareDatetime
    finished_at: Optional[AwareDatetime] = None
