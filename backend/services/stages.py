"""
Workflow stages and the fixed transfer table between them.

purchase -> kacha -> draw -> ready_copper -> production
                                pvc_purchase -> production
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from core.exceptions import ValidationError


class Stage(str, Enum):
    PURCHASE = "purchase"
    KACHA = "kacha"
    DRAW = "draw"
    READY_COPPER = "ready_copper"
    PVC_PURCHASE = "pvc_purchase"
    PRODUCTION = "production"


@dataclass(frozen=True)
class StageInfo:
    stage: Stage
    name: str
    description: str


WORKFLOW: Tuple[StageInfo, ...] = (
    StageInfo(Stage.PURCHASE, "Purchase", "Raw material procurement"),
    StageInfo(Stage.KACHA, "Kacha", "Kacha copper processing"),
    StageInfo(Stage.DRAW, "Draw", "Wire drawing process"),
    StageInfo(Stage.READY_COPPER, "Ready", "Ready copper verification"),
    StageInfo(Stage.PVC_PURCHASE, "PVC", "PVC material purchase"),
    StageInfo(Stage.PRODUCTION, "Production", "Final production"),
)

_NEXT: Dict[Stage, Optional[Stage]] = {
    Stage.PURCHASE: Stage.KACHA,
    Stage.KACHA: Stage.DRAW,
    Stage.DRAW: Stage.READY_COPPER,
    Stage.READY_COPPER: Stage.PRODUCTION,
    Stage.PVC_PURCHASE: Stage.PRODUCTION,
    Stage.PRODUCTION: None,
}


def parse_stage(value: Union[str, Stage]) -> Stage:
    """Accept 'ready_copper', 'ready-copper', 'READY_COPPER' or a Stage."""
    if isinstance(value, Stage):
        return value
    key = (value or "").strip().lower().replace("-", "_")
    try:
        return Stage(key)
    except ValueError:
        raise ValidationError(f"Unknown stage: {value!r}", {"stage": value})


def has_next_stage(stage: Stage) -> bool:
    return _NEXT[stage] is not None


def next_stage(stage: Stage) -> Stage:
    nxt = _NEXT[stage]
    if nxt is None:
        raise ValidationError(
            f"Stage '{stage.value}' is terminal; nothing to return into",
            {"stage": stage.value},
        )
    return nxt


def previous_stages(stage: Stage) -> List[Stage]:
    return [s for s in Stage if _NEXT[s] == stage]


def stage_info(stage: Stage) -> StageInfo:
    for info in WORKFLOW:
        if info.stage == stage:
            return info
    raise ValidationError(f"Unknown stage: {stage!r}")
