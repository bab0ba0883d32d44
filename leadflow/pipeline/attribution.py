"""
Attribution analytics — streaming aggregation over a session's leads.

Every view is an accumulator with add(lead) / rows(), so the whole report can be
built in one pass over a paginated source without holding all leads in memory.
Qualification is always re-derived with score_lead() at aggregation time,
never read from the stored is_qualified flag.
"""
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from leadflow.config import (
    ATTRIBUTION_DIMENSIONS, NO_DATA_LABEL, STAGES, STAGE_LABELS, WON_STAGE,
)
from leadflow.pipeline.fields import normalize_date, resolve
from leadflow.pipeline.scoring import score_lead


@dataclass
class AttributionRow:
    dimension_value: str
    total_count: int = 0
    qualified_count: int = 0
    won_count: int = 0

    @property
    def qualification_rate(self) -> float:
        return self.qualified_count / self.total_count if self.total_count else 0.0

    @property
    def conversion_rate(self) -> float:
        return self.won_count / self.total_count if self.total_count else 0.0

    def to_dict(self):
        return {
            'dimension_value': self.dimension_value,
            'total_count': self.total_count,
            'qualified_count': self.qualified_count,
            'won_count': self.won_count,
            'qualification_rate': round(self.qualification_rate, 4),
            'conversion_rate': round(self.conversion_rate, 4),
        }


@dataclass
class FunnelRow:
    stage: str
    label: str
    count: int

    def to_dict(self):
        return {'stage': self.stage, 'label': self.label, 'count': self.count}


@dataclass
class DailyRow:
    date: str        # YYYY-MM-DD, or the raw value when it could not be parsed
    count: int
    parsed: bool = True

    @property
    def label(self) -> str:
        if not self.parsed:
            return self.date
        year, month, day = self.date.split('-')
        return f'{day}/{month}/{year}'

    def to_dict(self):
        return {'date': self.date, 'label': self.label, 'count': self.count}


# ── Accumulators ─────────────────────────────────────────────────────────────

class DimensionAccumulator:
    """Grouped total / qualified / won counts for one attribution dimension."""

    def __init__(self, dimension: str):
        self.dimension = dimension
        self._rows: Dict[str, AttributionRow] = {}

    def add(self, lead, qualified: Optional[bool] = None):
        value = resolve(lead, self.dimension) or NO_DATA_LABEL
        row = self._rows.get(value)
        if row is None:
            row = self._rows[value] = AttributionRow(dimension_value=value)
        if qualified is None:
            qualified = score_lead(lead).qualified
        row.total_count += 1
        if qualified:
            row.qualified_count += 1
        if lead.stage == WON_STAGE:
            row.won_count += 1

    def rows(self) -> List[AttributionRow]:
        # stable sort: equal totals keep first-seen order
        return sorted(self._rows.values(), key=lambda r: r.total_count, reverse=True)


class FunnelAccumulator:
    def __init__(self):
        self._counts = Counter()

    def add(self, lead):
        self._counts[lead.stage] += 1

    def rows(self) -> List[FunnelRow]:
        return [FunnelRow(stage=s, label=STAGE_LABELS.get(s, s), count=self._counts.get(s, 0))
                for s in STAGES]


def entry_day(lead) -> Optional[tuple]:
    """(day, parsed) for a lead: resolved entry date, else created_at."""
    raw = resolve(lead, 'entry_date')
    if raw:
        parsed = normalize_date(raw)
        return parsed.date, parsed.parsed
    created = getattr(lead, 'created_at', None)
    if isinstance(created, datetime):
        return created.strftime('%Y-%m-%d'), True
    return None


class DailyAccumulator:
    def __init__(self):
        self._counts = Counter()
        self._parsed = {}

    def add(self, lead):
        day = entry_day(lead)
        if day is None:
            return
        key, parsed = day
        self._counts[key] += 1
        self._parsed[key] = parsed

    def rows(self) -> List[DailyRow]:
        # chronological first, unparseable raw values after them
        keys = sorted(self._counts, key=lambda k: (not self._parsed[k], k))
        return [DailyRow(date=k, count=self._counts[k], parsed=self._parsed[k]) for k in keys]


# ── One-shot helpers ─────────────────────────────────────────────────────────

def aggregate(leads: Iterable, dimension: str) -> List[AttributionRow]:
    acc = DimensionAccumulator(dimension)
    for lead in leads:
        acc.add(lead)
    return acc.rows()


def aggregate_funnel(leads: Iterable) -> List[FunnelRow]:
    acc = FunnelAccumulator()
    for lead in leads:
        acc.add(lead)
    return acc.rows()


def aggregate_daily(leads: Iterable) -> List[DailyRow]:
    acc = DailyAccumulator()
    for lead in leads:
        acc.add(lead)
    return acc.rows()


def build_report(leads: Iterable, dimensions: Sequence[str] = ATTRIBUTION_DIMENSIONS) -> dict:
    """Every analytics view in a single pass; each lead is scored once."""
    by_dimension = {d: DimensionAccumulator(d) for d in dimensions}
    funnel = FunnelAccumulator()
    daily = DailyAccumulator()
    total = qualified = won = 0

    for lead in leads:
        is_qualified = score_lead(lead).qualified
        for acc in by_dimension.values():
            acc.add(lead, qualified=is_qualified)
        funnel.add(lead)
        daily.add(lead)
        total += 1
        qualified += int(is_qualified)
        won += int(lead.stage == WON_STAGE)

    return {
        'dimensions': {d: [r.to_dict() for r in acc.rows()] for d, acc in by_dimension.items()},
        'funnel': [r.to_dict() for r in funnel.rows()],
        'daily': [r.to_dict() for r in daily.rows()],
        'total': total,
        'qualified': qualified,
        'won': won,
    }
