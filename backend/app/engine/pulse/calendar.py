# engine/pulse/calendar.py
"""
Calendrier du scheduler Pulse — conversions fuseau, cadence, cycles.

Toutes les fonctions reçoivent "now" en paramètre (jamais d'horloge interne
en dehors de utcnow()) : le scheduler est testable à une minute près.

Conventions :
    weekday       : 0 = lundi (datetime.weekday())
    week_index    : nombre de semaines depuis le lundi 0001-01-01
    cycle_key     : date locale ISO du tenant, clé d'idempotence
"""
from __future__ import annotations
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.shared.enums import PulseCadence

_TIME_RE  = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_RANGE_RE = re.compile(r"^(\d+)w$")

MIN_RANGE_WEEKS = 1
MAX_RANGE_WEEKS = 52


# ── Horloge & normalisation ───────────────────────────────────────────────────

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Les backends sans fuseau (SQLite) rendent des datetimes naïfs stockés en UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ── Validation de configuration ───────────────────────────────────────────────

def parse_time_of_day(value: str) -> Tuple[int, int]:
    m = _TIME_RE.match(value or "")
    if not m:
        raise ValueError(f"time_of_day invalide : {value!r} (format HH:MM attendu)")
    return int(m.group(1)), int(m.group(2))


def get_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"timezone inconnue : {name!r}")


# ── Semaines & cycles ─────────────────────────────────────────────────────────

def week_start(d: date) -> date:
    """Lundi de la semaine ISO contenant d."""
    return d - timedelta(days=d.weekday())


def week_index(d: date) -> int:
    # Le 0001-01-01 (ordinal 1) est un lundi
    return (d.toordinal() - 1) // 7


def iso_week_label(d: date) -> str:
    year, week, _ = d.isocalendar()
    return f"{year}-W{week:02d}"


def is_active_cycle(cadence: PulseCadence, local_date: date) -> bool:
    if cadence == PulseCadence.BIWEEKLY:
        return week_index(local_date) % 2 == 0
    if cadence == PulseCadence.MONTHLY:
        return local_date.day <= 7
    return True


def cycle_index(cadence: PulseCadence, local_date: date) -> int:
    """Compteur monotone de périodes, alimente le Question Rotator."""
    if cadence == PulseCadence.BIWEEKLY:
        return week_index(local_date) // 2
    if cadence == PulseCadence.MONTHLY:
        return local_date.year * 12 + local_date.month - 1
    return week_index(local_date)


def period_start(cadence: PulseCadence, local_date: date) -> date:
    """Premier jour local de la période de cadence contenant local_date."""
    if cadence == PulseCadence.MONTHLY:
        return local_date.replace(day=1)
    monday = week_start(local_date)
    if cadence == PulseCadence.BIWEEKLY and week_index(local_date) % 2 == 1:
        return monday - timedelta(days=7)
    return monday


# ── Moment d'envoi ────────────────────────────────────────────────────────────

@dataclass
class SendMoment:
    """Résolution d'un tick pour un tenant dont c'est l'heure d'envoi."""
    local_dt:         datetime
    cycle_key:        str
    cycle_index:      int
    weekday:          int
    period_start_utc: datetime   # borne basse du dédoublonnage par période


def evaluate_send_moment(
    now: datetime,
    *,
    tz_name: str,
    time_of_day: str,
    cadence: PulseCadence,
    rotating: bool,
    day_of_week: int,
    window_minutes: int,
) -> Optional[SendMoment]:
    """
    None si "now" (converti dans le fuseau du tenant) n'est pas un moment d'envoi.

    Fenêtre : [time_of_day, time_of_day + window_minutes[.
    Rotation : tous les jours d'un cycle actif (une cohorte par jour).
    Sans rotation : uniquement day_of_week.
    """
    moment = current_moment(now, tz_name=tz_name, cadence=cadence)
    local = moment.local_dt
    hour, minute = parse_time_of_day(time_of_day)

    elapsed = (local.hour * 60 + local.minute) - (hour * 60 + minute)
    if not 0 <= elapsed < max(window_minutes, 1):
        return None

    if not is_active_cycle(cadence, local.date()):
        return None
    if not rotating and moment.weekday != day_of_week:
        return None
    return moment


def current_moment(now: datetime, *, tz_name: str, cadence: PulseCadence) -> SendMoment:
    """Moment local sans contrôle d'horaire (déclenchement manuel)."""
    zone = get_zone(tz_name)
    local = as_utc(now).astimezone(zone)
    local_date = local.date()
    start_local = datetime.combine(period_start(cadence, local_date), time.min, tzinfo=zone)
    return SendMoment(
        local_dt=local,
        cycle_key=local_date.isoformat(),
        cycle_index=cycle_index(cadence, local_date),
        weekday=local.weekday(),
        period_start_utc=start_local.astimezone(timezone.utc),
    )


# ── Fenêtres de lecture (agrégats) ────────────────────────────────────────────

def parse_range(range_str: Optional[str], default_weeks: int = 8) -> int:
    """'4w' / '8w' / '12w' → nombre de semaines, borné [1, 52]. Invalide → défaut."""
    if not range_str:
        return default_weeks
    m = _RANGE_RE.match(range_str.strip())
    if not m:
        return default_weeks
    return min(max(int(m.group(1)), MIN_RANGE_WEEKS), MAX_RANGE_WEEKS)


def resolve_window(
    now: datetime,
    *,
    range_str: Optional[str] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    default_weeks: int = 8,
) -> Tuple[datetime, datetime]:
    """
    Fenêtre UTC [début, fin[ pour les agrégats.
    start/end explicites prioritaires sur range_str ; end est inclusif (jour entier).
    """
    now = as_utc(now)
    if start or end:
        lo = datetime.combine(start, time.min, tzinfo=timezone.utc) if start else None
        hi = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc) if end else now
        if lo is None:
            lo = hi - timedelta(weeks=default_weeks)
        if lo >= hi:
            raise ValueError("start doit précéder end")
        return lo, hi
    weeks = parse_range(range_str, default_weeks)
    return now - timedelta(weeks=weeks), now
