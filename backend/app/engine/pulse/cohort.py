# engine/pulse/cohort.py
"""
Cohort Assigner — répartition déterministe des membres en N cohortes.

Fonctions pures, aucune dépendance DB : testables isolément.

    assign_cohort(user_id, N)   → index ∈ [0, N)
    cohort_name(index)          → "weekday-<index>"
    default_day_map(N)          → 7 index (lundi → dimanche)
    cohort_for_weekday(...)     → index de la cohorte du jour

Le hash n'est calculé qu'à l'affectation initiale ; l'appartenance est
ensuite persistée. Augmenter N ne rebat donc pas les cohortes existantes.
"""
from __future__ import annotations
import hashlib
from typing import Dict, Iterable, List, Optional, Sequence

COHORT_PREFIX = "weekday-"
ALL_MEMBERS_COHORT = "all"
DAYS_PER_WEEK = 7


def assign_cohort(user_id: str, cohort_count: int) -> int:
    """
    Hash 64 bits stable (BLAKE2b, 8 premiers octets big-endian) modulo N.

    hash() natif exclu : salé par processus (PYTHONHASHSEED).
    """
    if cohort_count < 1:
        raise ValueError("cohort_count doit être ≥ 1")
    digest = hashlib.blake2b(str(user_id).encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") % cohort_count


def cohort_name(index: int) -> str:
    return f"{COHORT_PREFIX}{index}"


def cohort_index(name: str) -> Optional[int]:
    """Inverse de cohort_name(). None pour "all" ou un nom non standard."""
    if not name.startswith(COHORT_PREFIX):
        return None
    suffix = name[len(COHORT_PREFIX):]
    return int(suffix) if suffix.isdigit() else None


def partition(user_ids: Iterable[str], cohort_count: int) -> Dict[int, List[str]]:
    """Regroupe des user_ids par index de cohorte, ordre d'entrée conservé."""
    buckets: Dict[int, List[str]] = {i: [] for i in range(cohort_count)}
    for uid in user_ids:
        buckets[assign_cohort(uid, cohort_count)].append(uid)
    return buckets


def default_day_map(cohort_count: int) -> List[int]:
    """
    Lundi → cohorte 0, mardi → 1, ...
    Moins de cohortes que de jours : les jours restants retombent sur la dernière.
    """
    if cohort_count < 1:
        raise ValueError("cohort_count doit être ≥ 1")
    return [min(day, cohort_count - 1) for day in range(DAYS_PER_WEEK)]


def validate_day_map(day_map: Sequence[int], cohort_count: int) -> List[int]:
    if len(day_map) != DAYS_PER_WEEK:
        raise ValueError("cohort_day_map doit contenir 7 valeurs (lundi → dimanche)")
    for idx in day_map:
        if not 0 <= int(idx) < cohort_count:
            raise ValueError(f"index de cohorte {idx} hors de [0, {cohort_count})")
    return [int(i) for i in day_map]


def cohort_for_weekday(
    weekday: int,
    cohort_count: int,
    day_map: Optional[Sequence[int]] = None,
) -> int:
    """weekday : 0 = lundi (datetime.weekday())."""
    mapping = list(day_map) if day_map else default_day_map(cohort_count)
    return mapping[weekday % DAYS_PER_WEEK]
