"""
Field extraction — resolve a logical field from a lead's columns + attribute bag.

Importers copy spreadsheet/webhook columns into Lead.attributes verbatim, so the
same logical field shows up as "utm_source", "UTM Source", "Fonte", ... depending
on the source. Resolution is a pure function over two static tables:

  FIELD_ALIASES  — exact (case-insensitive) key spellings per logical field
  FIELD_MARKERS  — substrings tried when no alias matched

Order: structured column → aliases → marker substring scan → None.
First match wins; blank-after-trim counts as absent.
"""
import re
from datetime import datetime
from typing import Any, Mapping, NamedTuple, Optional, Tuple

# Lead columns that may satisfy a logical field directly.
STRUCTURED_FIELDS = (
    'name',
    'email',
    'phone',
    'utm_source',
    'utm_medium',
    'utm_campaign',
    'utm_content',
)

FIELD_ALIASES = {
    'utm_source':   ('utm_source', 'utm source', 'fonte', 'source'),
    'utm_medium':   ('utm_medium', 'utm medium', 'medium', 'mídia', 'midia'),
    'utm_campaign': ('utm_campaign', 'utm campaign', 'campanha', 'campaign'),
    'utm_content':  ('utm_content', 'utm content', 'content', 'conteúdo', 'conteudo'),
    'utm_term':     ('utm_term', 'utm term', 'term', 'termo'),
    'email':        ('email', 'e-mail'),
    'phone':        ('whatsapp', 'telefone', 'phone', 'celular'),
    'revenue':      ('faturamento', 'faturamento mensal', 'revenue'),
    'profit':       ('lucro', 'lucro mensal', 'profit'),
    'capacity':     ('empreita', 'capacity'),
    'entry_date':   ('entry_date', 'data de entrada', 'data', 'date', 'carimbo de data/hora', 'timestamp'),
}

DATE_MARKERS = ('data', 'date')

FIELD_MARKERS = {
    'entry_date': DATE_MARKERS,
}


def _clean(value: Any) -> Optional[str]:
    """Stringify and trim; blank → None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _is_date_like(field: str) -> bool:
    f = field.lower()
    return any(marker in f for marker in DATE_MARKERS)


def aliases_for(field: str) -> Tuple[str, ...]:
    return FIELD_ALIASES.get(field, (field,))


def markers_for(field: str) -> Tuple[str, ...]:
    """Substring markers for the fallback scan."""
    if field in FIELD_MARKERS:
        return FIELD_MARKERS[field]
    if field in FIELD_ALIASES:
        return ()
    if _is_date_like(field):
        return DATE_MARKERS
    return (field.lower(),)


def lookup_key(bag: Mapping[str, Any], key: str) -> Optional[str]:
    """Case-insensitive exact key lookup with a non-blank value."""
    wanted = key.lower()
    for k, v in bag.items():
        if str(k).lower() == wanted:
            cleaned = _clean(v)
            if cleaned:
                return cleaned
    return None


def resolve(lead, field: str) -> Optional[str]:
    """Resolve a logical field for a lead. Returns the trimmed value or None."""
    if field in STRUCTURED_FIELDS:
        value = _clean(getattr(lead, field, None))
        if value:
            return value

    bag = getattr(lead, 'attributes', None) or {}
    if not isinstance(bag, Mapping):
        return None

    for alias in aliases_for(field):
        value = lookup_key(bag, alias)
        if value:
            return value

    for marker in markers_for(field):
        for k, v in bag.items():
            if marker in str(k).lower():
                value = _clean(v)
                if value:
                    return value
    return None


def candidate_values(lead, field: str):
    """
    Every distinct non-blank value the lead exposes for a field.

    Unlike resolve() this does not stop at the first hit — used by identity
    matching, where a lead may carry an email column AND an "E-mail" answer.
    """
    seen = []
    value = _clean(getattr(lead, field, None)) if field in STRUCTURED_FIELDS else None
    if value:
        seen.append(value)

    bag = getattr(lead, 'attributes', None) or {}
    if isinstance(bag, Mapping):
        wanted = {a.lower() for a in aliases_for(field)}
        for k, v in bag.items():
            if str(k).lower() in wanted:
                value = _clean(v)
                if value and value not in seen:
                    seen.append(value)
    return seen


# ── Date normalization ───────────────────────────────────────────────────────

class ParsedDate(NamedTuple):
    date: str       # YYYY-MM-DD when parsed, otherwise the raw input
    time: str       # HH:MM or ''
    parsed: bool


_DMY_RE = re.compile(
    r'^\s*(\d{1,2})/(\d{1,2})/(\d{4}|\d{2})'
    r'(?:[\sT,]+(\d{1,2}):(\d{2})(?::\d{2})?)?\s*$'
)


def normalize_date(raw: Any) -> ParsedDate:
    """
    Parse operator-entered dates. Never raises.

    1. ISO timestamp ("2025-03-07", "2025-03-07T14:30:00Z", ...)
    2. day/month/year[ hour:minute], 2-digit years mean 20xx
    3. otherwise the raw string, empty time, parsed=False
    """
    text = '' if raw is None else str(raw).strip()
    if not text:
        return ParsedDate('', '', False)

    try:
        dt = datetime.fromisoformat(text.replace('Z', '+00:00'))
        has_time = len(text) > 10
        return ParsedDate(dt.strftime('%Y-%m-%d'), dt.strftime('%H:%M') if has_time else '', True)
    except ValueError:
        pass

    m = _DMY_RE.match(text)
    if m:
        day, month, year, hour, minute = m.groups()
        year_num = int(year)
        if len(year) == 2:
            year_num += 2000
        try:
            dt = datetime(year_num, int(month), int(day),
                          int(hour) if hour else 0, int(minute) if minute else 0)
        except ValueError:
            return ParsedDate(text, '', False)
        return ParsedDate(dt.strftime('%Y-%m-%d'), dt.strftime('%H:%M') if hour else '', True)

    return ParsedDate(text, '', False)
