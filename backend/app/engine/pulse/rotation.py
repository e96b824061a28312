# engine/pulse/rotation.py
"""
Question Rotator.

    index = (cohort_position + cycle_index) mod n_actives

cycle_index = 0 → index = cohort_position mod n_actives.
cycle_index avance d'une unité par période de cadence : sur n_actives
cycles consécutifs, chaque cohorte voit chaque question active.
Ajouter/retirer une question décale la rotation, sans jamais lever.
"""
from __future__ import annotations
from typing import Optional, Sequence, TypeVar

Q = TypeVar("Q")


def question_index(cohort_position: int, active_count: int, cycle_index: int = 0) -> Optional[int]:
    if active_count <= 0:
        return None
    return (cohort_position + cycle_index) % active_count


def pick_question(
    active_questions: Sequence[Q],
    cohort_position: int,
    cycle_index: int = 0,
) -> Optional[Q]:
    """None = aucune question active → le scheduler saute la cohorte."""
    idx = question_index(cohort_position, len(active_questions), cycle_index)
    if idx is None:
        return None
    return active_questions[idx]
