"""
Scoring engine — rule-based lead qualification.

Three independent rules (revenue, profit, capacity) each award bracket points
from a resolved logical field. Qualification is an AND over the gating rules
(revenue and profit), each judged against its own minimum; capacity adds
points without gating. The verdict is never "total >= N".

score_lead() is pure and idempotent. Persisting scores lives in
leadflow.services.engine (recompute_score / rescore_session).
"""
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List

import yaml

from leadflow.config import SCORING_CONFIG_PATH
from leadflow.pipeline.fields import resolve

logger = logging.getLogger('pipeline.scoring')


@dataclass
class RuleResult:
    points: int = 0
    qualifies: bool = False


@dataclass
class LeadScore:
    score: int
    qualified: bool
    breakdown: Dict[str, int] = field(default_factory=dict)
    revenue_qualifies: bool = False
    profit_qualifies: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'score': self.score,
            'qualified': self.qualified,
            'breakdown': dict(self.breakdown),
            'revenue_qualifies': self.revenue_qualifies,
            'profit_qualifies': self.profit_qualifies,
        }


# ── Scoring config (YAML with hardcoded fallback) ────────────────────────────

_scoring_config = None


def _money_brackets(ten_k_points):
    return [
        {'terms': ['100.000', '100000', 'acima de r$100', 'acima de 100'], 'points': 60},
        {'terms': ['50.000', '50000'], 'points': 45},
        {'terms': ['30.000', '30000'], 'points': 35},
        {'terms': ['15.000', '15000'], 'points': 25},
        {'terms': ['10.000', '10000'], 'points': ten_k_points},
        {'terms': ['3.000', '3000'], 'points': 5},
        {'terms': ['5.000', '5000'], 'points': 10},
    ]


def _default_config():
    """Hardcoded fallback if YAML is missing."""
    return {
        'version': 'default',
        'rules': {
            'revenue': {
                'field': 'revenue',
                'match': 'contains',
                'gates_qualification': True,
                'min_qualifying_points': 25,
                'brackets': _money_brackets(15),
            },
            'profit': {
                'field': 'profit',
                'match': 'contains',
                'gates_qualification': True,
                'min_qualifying_points': 20,
                'brackets': _money_brackets(20),
            },
            'capacity': {
                'field': 'capacity',
                'match': 'equals',
                'gates_qualification': False,
                'brackets': [{'terms': ['não', 'nao'], 'points': 10}],
            },
        },
    }


def load_scoring_config():
    """Load scoring config from YAML, with in-memory cache and hardcoded fallback."""
    global _scoring_config
    if _scoring_config is not None:
        return _scoring_config

    config_path = os.getenv('SCORING_CONFIG_PATH', SCORING_CONFIG_PATH)
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            loaded = yaml.safe_load(f)
        if not isinstance(loaded, dict) or not isinstance(loaded.get('rules'), dict):
            raise ValueError('missing rules section')
        _scoring_config = loaded
        logger.info("Config loaded from YAML (version=%s)", _scoring_config.get('version', '?'))
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.warning("YAML config not usable (%s), using defaults", e)
        _scoring_config = _default_config()

    return _scoring_config


def reset_scoring_config():
    """Drop the cached config so the next call re-reads YAML (after a rule change)."""
    global _scoring_config
    _scoring_config = None


# ── Rule evaluation ──────────────────────────────────────────────────────────

def _normalize_text(text: str) -> str:
    return ' '.join((text or '').lower().split())


def _term_matches(text: str, term: str, mode: str) -> bool:
    term = _normalize_text(str(term))
    if mode == 'equals':
        return text == term
    return term in text


def evaluate_rule(text: str, rule: Dict[str, Any]) -> RuleResult:
    """Walk the rule's brackets in order; first matching bracket wins."""
    t = _normalize_text(text)
    if not t:
        return RuleResult()

    mode = rule.get('match', 'contains')
    for bracket in rule.get('brackets', []):
        if any(_term_matches(t, term, mode) for term in bracket.get('terms', [])):
            points = int(bracket.get('points', 0) or 0)
            qualifies = False
            if rule.get('gates_qualification'):
                qualifies = points >= int(rule.get('min_qualifying_points', 0) or 0) and points > 0
            return RuleResult(points=points, qualifies=qualifies)
    return RuleResult()


def score_lead(lead) -> LeadScore:
    """Score a lead against the configured rules. Pure; never raises on bad data."""
    rules = load_scoring_config().get('rules', {})

    breakdown: Dict[str, int] = {}
    axis_ok: Dict[str, bool] = {}
    gating: List[bool] = []

    for name, rule in rules.items():
        value = resolve(lead, rule.get('field', name)) or ''
        result = evaluate_rule(value, rule)
        breakdown[name] = result.points
        axis_ok[name] = result.qualifies
        if rule.get('gates_qualification'):
            gating.append(result.qualifies)

    return LeadScore(
        score=sum(breakdown.values()),
        qualified=bool(gating) and all(gating),
        breakdown=breakdown,
        revenue_qualifies=axis_ok.get('revenue', False),
        profit_qualifies=axis_ok.get('profit', False),
    )


def apply_score(lead, result: LeadScore) -> bool:
    """Stamp a score onto a lead. Returns True when a stored value changed."""
    changed = (
        bool(lead.is_qualified) != result.qualified
        or lead.qualification_score != result.score
    )
    lead.is_qualified = result.qualified
    lead.qualification_score = result.score
    return changed
