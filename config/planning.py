from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from config import settings
from config.scoring import ScoringConfig, ScoringPreset
from infrastructure.utils.exceptions import ConfigurationError

GRAPH_DATABASE_FILENAME = "graph.sqlite"


class ConflictThresholds(BaseModel):
    """Tunable cut-offs for the conflict detector."""

    model_config = ConfigDict(frozen=True)

    overlap_threshold: float = Field(0.85, ge=0.0, le=1.0)
    stale_wip_days: float = Field(7.0, gt=0)
    stale_wip_error_days: Optional[float] = Field(None, gt=0)

    @model_validator(mode="after")
    def _check_escalation(self) -> "ConflictThresholds":
        if self.stale_wip_error_days is not None and self.stale_wip_error_days < self.stale_wip_days:
            raise ValueError("stale_wip_error_days must not be shorter than stale_wip_days")
        return self


class PlanningConfig(BaseModel):
    """Configuration object handed to the reindex driver and scoring service.

    ``database_url`` wins when set; otherwise the graph lives in
    ``data_path/graph.sqlite``.
    """

    plans_path: Path
    data_path: Path = Path("./data")
    database_url: Optional[str] = None
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    conflicts: ConflictThresholds = Field(default_factory=ConflictThresholds)
    similarity_threshold: float = Field(0.8, ge=0.0, le=1.0)

    def graph_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite:///{(self.data_path / GRAPH_DATABASE_FILENAME).as_posix()}"

    @classmethod
    def from_settings(cls) -> "PlanningConfig":
        try:
            preset = ScoringPreset(settings.SCORING_PRESET)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown SCORING_PRESET '{settings.SCORING_PRESET}'") from exc
        return cls(
            plans_path=Path(settings.PLANS_PATH),
            data_path=Path(settings.DATA_PATH),
            database_url=settings.DATABASE_URL,
            scoring=ScoringConfig(preset=preset),
            conflicts=ConflictThresholds(
                overlap_threshold=settings.FEATURE_OVERLAP_THRESHOLD,
                stale_wip_days=settings.STALE_WIP_DAYS,
                stale_wip_error_days=settings.STALE_WIP_ERROR_DAYS,
            ),
            similarity_threshold=settings.FEATURE_SIMILARITY_THRESHOLD,
        )
