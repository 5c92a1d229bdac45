from __future__ import annotations
from typing import List, Optional

from .schemas import StepSpec


SYLLABUS: List[StepSpec] = [
    StepSpec(
        id=1,
        title="What a quadratic is",
        objective="Recognise an equation of the form ax² + bx + c = 0 with a ≠ 0.",
        keywords=["squared", "x^2", "x²", "degree 2", "second degree", "highest power"],
    ),
    StepSpec(
        id=2,
        title="Why the graph is U-shaped",
        objective="Connect the squared term to the parabola opening up or down.",
        keywords=["parabola", "u shape", "u-shaped", "symmetric", "vertex", "opens"],
    ),
    StepSpec(
        id=3,
        title="Finding the roots",
        objective="Find where the parabola crosses the x-axis by factoring or the quadratic formula.",
        keywords=["roots", "factor", "zero", "x-intercept", "quadratic formula", "discriminant"],
    ),
    StepSpec(
        id=4,
        title="Real-world uses",
        objective="Model projectile height, area or profit with a quadratic.",
        keywords=["projectile", "ball", "area", "profit", "maximum", "minimum"],
    ),
]

FIRST_STEP_ID = SYLLABUS[0].id


def get_step(step_id: Optional[int]) -> Optional[StepSpec]:
    for step in SYLLABUS:
        if step.id == step_id:
            return step
    return None


def next_step_id(step_id: int) -> int:
    ids = [s.id for s in SYLLABUS]
    if step_id not in ids:
        return FIRST_STEP_ID
    idx = ids.index(step_id)
    return ids[min(idx + 1, len(ids) - 1)]


def matched_keywords(step: StepSpec, text: str) -> List[str]:
    lowered = (text or "").lower()
    return [k for k in step.keywords if k.lower() in lowered]
