# engine/pulse/aggregation.py
"""
Aggregator — statistiques anonymes par question / équipe / semaine.

Règle de seuil (k-anonymat) :
    count < threshold  →  mean = INSUFFICIENT_DATA, insufficient = True
Jamais de 0 ni de None silencieux à la place d'une valeur supprimée.
La règle s'applique indépendamment au niveau global et à chaque semaine :
une question peut afficher une moyenne globale alors que ses semaines
restent masquées.

Le taux de participation (réponses / invitations) n'est pas soumis au
seuil : il ne révèle aucun contenu individuel.

Entrées : objets portant question_id, team_id, score, responded_at
(PulseResponse ou SimpleNamespace). Aucun accès DB ici.
"""
from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from app.engine.pulse.calendar import as_utc, iso_week_label, week_start

INSUFFICIENT_DATA = "insufficient_data"
UNCATEGORIZED = "uncategorized"

Mean = Union[float, str]


# ── Dataclasses de résultat ───────────────────────────────────────────────────

@dataclass
class BucketStats:
    week_start: date
    week:       str        # "2026-W43"
    count:      int
    mean:       Mean
    insufficient: bool


@dataclass
class PerQuestionStats:
    question_id:   str
    question_text: Optional[str]
    category:      Optional[str]
    scale:         Optional[str]
    team_id:       Optional[str]      # None = toutes équipes confondues
    count:         int
    mean:          Mean
    insufficient:  bool
    trend:         List[BucketStats] = field(default_factory=list)


@dataclass
class PulseSummary:
    threshold:          int
    window_start:       datetime
    window_end:         datetime
    total_responses:    int
    total_invites:      int
    participation_rate: float          # 0–1, non soumis au seuil
    questions:          List[PerQuestionStats]
    overall_trend:      List[BucketStats]
    heatmap:            Dict[str, Dict[str, BucketStats]]   # catégorie → semaine → stats


# ── Primitives ────────────────────────────────────────────────────────────────

def gated_mean(scores: Sequence[int], threshold: int) -> Tuple[Mean, bool]:
    """(moyenne | INSUFFICIENT_DATA, insufficient)."""
    if not scores or len(scores) < threshold:
        return INSUFFICIENT_DATA, True
    return round(float(np.mean(scores)), 2), False


def week_starts(window_start: datetime, window_end: datetime) -> List[date]:
    """Tous les lundis couvrant la fenêtre, semaines vides comprises."""
    first = week_start(as_utc(window_start).date())
    last = week_start(as_utc(window_end).date())
    weeks = []
    current = first
    while current <= last:
        weeks.append(current)
        current += timedelta(days=7)
    return weeks


def bucketize(
    dated_scores: Iterable[Tuple[date, int]],
    weeks: Sequence[date],
    threshold: int,
) -> List[BucketStats]:
    by_week: Dict[date, List[int]] = defaultdict(list)
    for day, score in dated_scores:
        by_week[week_start(day)].append(score)

    trend = []
    for monday in weeks:
        scores = by_week.get(monday, [])
        mean, insufficient = gated_mean(scores, threshold)
        trend.append(BucketStats(
            week_start=monday,
            week=iso_week_label(monday),
            count=len(scores),
            mean=mean,
            insufficient=insufficient,
        ))
    return trend


def participation_rate(total_responses: int, total_invites: int) -> float:
    if total_invites <= 0:
        return 0.0
    return round(total_responses / total_invites, 4)


# ── Point d'entrée ────────────────────────────────────────────────────────────

def summarize(
    responses: Iterable,
    questions: Sequence,
    *,
    threshold: int,
    window_start: datetime,
    window_end: datetime,
    total_invites: int,
    team_id: Optional[str] = None,
    by_team: bool = False,
) -> PulseSummary:
    """
    Groupement par (question_id, team_id).

    team_id fourni      → filtre sur cette équipe (clé = (q, team_id))
    by_team = True      → une ligne par équipe présente dans les données
    sinon               → rollup "toutes équipes" (clé = (q, None))

    questions : métadonnées connues (ordre = ordre d'affichage). Une question
    sans réponse produit une ligne "insufficient" ; une question désactivée
    mais présente dans les données apparaît quand même (historique intact).
    """
    lo, hi = as_utc(window_start), as_utc(window_end)
    weeks = week_starts(lo, hi)
    meta = {q.id: q for q in questions}
    order = {q.id: i for i, q in enumerate(questions)}

    in_window = []
    for r in responses:
        at = as_utc(r.responded_at)
        if not lo <= at < hi:
            continue
        if team_id is not None and r.team_id != team_id:
            continue
        in_window.append((r, at))

    groups: Dict[Tuple[str, Optional[str]], List[Tuple[date, int]]] = defaultdict(list)
    for r, at in in_window:
        key_team = r.team_id if by_team else team_id
        groups[(r.question_id, key_team)].append((at.date(), r.score))

    seen_questions = {qid for qid, _ in groups}
    for q in questions:
        if q.id not in seen_questions:
            groups.setdefault((q.id, team_id), [])

    def sort_key(key):
        qid, team = key
        return (order.get(qid, len(order)), qid, team or "")

    per_question = []
    for qid, team in sorted(groups, key=sort_key):
        dated = groups[(qid, team)]
        scores = [s for _, s in dated]
        mean, insufficient = gated_mean(scores, threshold)
        q = meta.get(qid)
        per_question.append(PerQuestionStats(
            question_id=qid,
            question_text=getattr(q, "text", None),
            category=getattr(q, "category", None),
            scale=_scale_value(q),
            team_id=team,
            count=len(scores),
            mean=mean,
            insufficient=insufficient,
            trend=bucketize(dated, weeks, threshold),
        ))

    overall = bucketize(((at.date(), r.score) for r, at in in_window), weeks, threshold)

    by_category: Dict[str, List[Tuple[date, int]]] = defaultdict(list)
    for q in questions:
        by_category.setdefault(q.category or UNCATEGORIZED, [])
    for r, at in in_window:
        q = meta.get(r.question_id)
        category = (getattr(q, "category", None) or UNCATEGORIZED)
        by_category[category].append((at.date(), r.score))
    heatmap = {
        category: {b.week_start.isoformat(): b for b in bucketize(dated, weeks, threshold)}
        for category, dated in sorted(by_category.items())
    }

    return PulseSummary(
        threshold=threshold,
        window_start=lo,
        window_end=hi,
        total_responses=len(in_window),
        total_invites=total_invites,
        participation_rate=participation_rate(len(in_window), total_invites),
        questions=per_question,
        overall_trend=overall,
        heatmap=heatmap,
    )


def _scale_value(q) -> Optional[str]:
    scale = getattr(q, "scale", None)
    if scale is None:
        return None
    return scale.value if hasattr(scale, "value") else str(scale)
