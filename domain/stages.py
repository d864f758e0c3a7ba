"""
Stage trail, verdict record and acknowledgment signal for one pipeline run.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .decision import TradeTargets
from .enums import Direction, StageName, StageStatus


STAGE_ORDER: tuple[StageName, ...] = tuple(StageName)
_STATUS_RANK = {StageStatus.PENDING: 0, StageStatus.IN_PROGRESS: 1, StageStatus.COMPLETE: 2}


class StageOrderError(Exception):
    """Stage update would skip, re-enter or regress a stage."""


class AckAlreadyResolvedError(Exception):
    """Acknowledgment was already given for this run."""


@dataclass(frozen=True)
class AnalysisStage:
    stage: StageName
    progress: int
    status: StageStatus
    duration: int | None = None  # milliseconds, once complete
    data: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.progress <= 100:
            raise ValueError(f"progress must be in [0, 100], got {self.progress}")

    def to_message(self) -> dict[str, Any]:
        message: dict[str, Any] = {
            "type": "analysis_stage",
            "stage": self.stage.value,
            "progress": self.progress,
            "status": self.status.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if self.duration is not None:
            message["duration"] = self.duration
        if self.data is not None:
            message["data"] = self.data
        return message


class StageTrail:
    """
    Ordered, replace-by-name record of stage updates.

    Stages must start in STAGE_ORDER, each only after the previous one is
    complete. Updates to the current stage replace its entry and may not
    move its status backwards. `final_verdict` can be forced at any point
    so a failed run still terminates.
    """

    def __init__(self) -> None:
        self._stages: dict[StageName, AnalysisStage] = {}

    @property
    def current(self) -> AnalysisStage | None:
        if not self._stages:
            return None
        return next(reversed(self._stages.values()))

    @property
    def stages(self) -> list[AnalysisStage]:
        return list(self._stages.values())

    @property
    def finished(self) -> bool:
        final = self._stages.get(StageName.FINAL_VERDICT)
        return final is not None and final.status is StageStatus.COMPLETE

    def get(self, name: StageName) -> AnalysisStage | None:
        return self._stages.get(name)

    def record(self, update: AnalysisStage) -> AnalysisStage:
        """Validate and store an update.

        Raises:
            StageOrderError: On skip, re-entry or status regression
        """
        current = self.current
        if current is not None and update.stage is current.stage:
            if current.status is StageStatus.COMPLETE:
                raise StageOrderError(f"{update.stage.value} is already complete")
            if _STATUS_RANK[update.status] < _STATUS_RANK[current.status]:
                raise StageOrderError(
                    f"{update.stage.value} cannot move from {current.status.value} "
                    f"to {update.status.value}"
                )
        else:
            expected = STAGE_ORDER[len(self._stages)] if len(self._stages) < len(STAGE_ORDER) else None
            if update.stage is not expected:
                raise StageOrderError(
                    f"expected {expected.value if expected else 'no further stage'}, "
                    f"got {update.stage.value}"
                )
            if current is not None and current.status is not StageStatus.COMPLETE:
                raise StageOrderError(
                    f"{update.stage.value} cannot start before {current.stage.value} completes"
                )

        self._stages[update.stage] = update
        return update

    def force_final(self, update: AnalysisStage) -> AnalysisStage:
        """Store a terminal final_verdict regardless of upstream state.

        Raises:
            StageOrderError: If the update is not a complete final_verdict,
                or the trail already finished
        """
        if update.stage is not StageName.FINAL_VERDICT or update.status is not StageStatus.COMPLETE:
            raise StageOrderError("only a complete final_verdict can be forced")
        if self.finished:
            raise StageOrderError("final_verdict already emitted")
        self._stages.pop(StageName.FINAL_VERDICT, None)
        self._stages[StageName.FINAL_VERDICT] = update
        return update


@dataclass(frozen=True)
class Verdict:
    """Terminal result of one analysis run."""
    pair: str
    timeframe: str
    direction: Direction
    confidence: int
    duration: str
    quality_score: float = 0.0
    key_factors: list[str] = field(default_factory=list)
    risk_factors: list[str] = field(default_factory=list)
    trade_targets: TradeTargets | None = None
    explanation: str = ""
    thinking_process: str | None = None
    degraded: bool = False
    synthetic_data: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "pair": self.pair,
            "timeframe": self.timeframe,
            "direction": self.direction.value,
            "confidence": self.confidence,
            "duration": self.duration,
            "qualityScore": round(self.quality_score),
            "keyFactors": list(self.key_factors),
            "riskFactors": list(self.risk_factors),
            "tradeTargets": self.trade_targets.to_dict() if self.trade_targets else None,
            "explanation": self.explanation,
            "thinkingProcess": self.thinking_process,
            "degraded": self.degraded,
            "syntheticData": self.synthetic_data,
        }


class AckSignal:
    """
    Single-use acknowledgment scoped to one run.

    The subscriber resolves it once after playing back the thinking
    text; a second resolve raises AckAlreadyResolvedError.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def resolved(self) -> bool:
        return self._event.is_set()

    def resolve(self) -> None:
        if self._event.is_set():
            raise AckAlreadyResolvedError("acknowledgment already received for this run")
        self._event.set()

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait for the acknowledgment; returns False on timeout."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True
