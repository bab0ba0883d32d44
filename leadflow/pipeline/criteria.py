"""
Session qualification criteria — weighted fit indicator.

Each criterion tests one resolved field with an operator; a lead "fits" when
the matched weight is at least half of the total weight. The result is shown
next to the rule-based score and is never written to Lead.is_qualified.
"""
import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from leadflow.pipeline.fields import resolve

logger = logging.getLogger('pipeline.criteria')

OPERATORS = ('equals', 'contains', 'greater_than', 'less_than', 'not_empty')
FIT_THRESHOLD = 0.5

_LEADING_NUMBER = re.compile(r'^\s*([-+]?\d+(?:[.,]\d+)?)')


@dataclass
class CriteriaFit:
    points: float = 0.0
    total_weight: float = 0.0
    percent: Optional[int] = None
    fits: bool = False

    def to_dict(self):
        return {
            'points': self.points,
            'total_weight': self.total_weight,
            'percent': self.percent,
            'fits': self.fits,
        }


def _to_number(text) -> Optional[float]:
    m = _LEADING_NUMBER.match(str(text or ''))
    if not m:
        return None
    return float(m.group(1).replace(',', '.'))


def criterion_matches(value: Optional[str], operator: str, expected) -> bool:
    """Test one resolved value. Unknown operators never match."""
    actual = (value or '').strip()
    expected = '' if expected is None else str(expected)

    if operator == 'not_empty':
        return bool(actual)
    if operator == 'equals':
        return actual.lower() == expected.strip().lower()
    if operator == 'contains':
        return expected.strip().lower() in actual.lower()
    if operator in ('greater_than', 'less_than'):
        a, b = _to_number(actual), _to_number(expected)
        if a is None or b is None:
            return False
        return a > b if operator == 'greater_than' else a < b

    logger.warning("Unknown criterion operator '%s'", operator)
    return False


def evaluate_criteria(lead, criteria: Iterable) -> CriteriaFit:
    points = 0.0
    total = 0.0
    for c in criteria:
        weight = float(c.weight or 0)
        total += weight
        if criterion_matches(resolve(lead, c.field_name), c.operator, c.value):
            points += weight

    if total <= 0:
        return CriteriaFit(points=points, total_weight=total)
    share = points / total
    return CriteriaFit(
        points=points,
        total_weight=total,
        percent=round(share * 100),
        fits=share >= FIT_THRESHOLD,
    )
