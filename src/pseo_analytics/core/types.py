from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class RunContext:
    run_id: str
    seed: int
    start_dt_utc: datetime


@dataclass(frozen=True)
class PageContext:
    """Which generated page the trackers are mounted on."""

    industry: str
    stage: str
    page_type: str = "investor-questions"

    @property
    def path(self) -> str:
        return f"/investor-questions/{self.industry}/{self.stage}/{self.page_type}"

    def as_params(self) -> dict[str, str]:
        return {"industry": self.industry, "stage": self.stage, "pageType": self.page_type}
