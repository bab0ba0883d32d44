"""
Cross-reference matching — leads vs. sales records and scheduling bookings.

A lead exposes every email/phone it carries (columns plus attribute-bag
answers). A sale matches on email equality OR phone equality. Matching never
mutates a lead; "no match" is the normal default, not an error.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from leadflow.config import UNKNOWN_PLATFORM, UNKNOWN_PRODUCT
from leadflow.pipeline.identity import lead_identities, normalize_email, normalize_phone


@dataclass
class CustomerMatch:
    is_match: bool = False
    products: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self):
        return {'is_match': self.is_match, 'products': [dict(p) for p in self.products]}


@dataclass
class MeetingMatch:
    lead_id: Any
    has_upcoming: bool = False
    has_past: bool = False
    upcoming_dates: List[str] = field(default_factory=list)
    past_dates: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            'lead_id': self.lead_id,
            'has_upcoming': self.has_upcoming,
            'has_past': self.has_past,
            'upcoming_dates': list(self.upcoming_dates),
            'past_dates': list(self.past_dates),
        }


def _collect_products(records: Iterable) -> CustomerMatch:
    """Dedupe products by name, first platform seen wins."""
    products: Dict[str, str] = {}
    for record in records:
        name = (record.product_name or '').strip() or UNKNOWN_PRODUCT
        if name not in products:
            products[name] = (record.platform or '').strip() or UNKNOWN_PLATFORM
    if not products:
        return CustomerMatch()
    return CustomerMatch(
        is_match=True,
        products=[{'name': n, 'platform': p} for n, p in products.items()],
    )


def match_lead(lead, records: Iterable) -> CustomerMatch:
    """Match one lead against sales records."""
    emails, phones = lead_identities(lead)
    if not emails and not phones:
        return CustomerMatch()

    matched = []
    for record in records:
        sale_email = normalize_email(record.client_email)
        sale_phone = normalize_phone(record.client_phone)
        if (sale_email and sale_email in emails) or (sale_phone and sale_phone in phones):
            matched.append(record)
    return _collect_products(matched)


class SalesIndex:
    """
    Email/phone → record positions, built once for matching many leads.

    Positions preserve record order so "first platform wins" behaves exactly
    like match_lead().
    """

    def __init__(self, records: Iterable):
        self.records = list(records)
        self.by_email: Dict[str, List[int]] = {}
        self.by_phone: Dict[str, List[int]] = {}
        for pos, record in enumerate(self.records):
            e = normalize_email(record.client_email)
            if e:
                self.by_email.setdefault(e, []).append(pos)
            p = normalize_phone(record.client_phone)
            if p:
                self.by_phone.setdefault(p, []).append(pos)

    def match(self, lead) -> CustomerMatch:
        emails, phones = lead_identities(lead)
        positions = set()
        for e in emails:
            positions.update(self.by_email.get(e, ()))
        for p in phones:
            positions.update(self.by_phone.get(p, ()))
        return _collect_products(self.records[i] for i in sorted(positions))


def match_leads(leads: Iterable, records: Iterable) -> Dict[Any, CustomerMatch]:
    """Existing-customer flags for many leads; only matching leads are returned."""
    index = SalesIndex(records)
    result = {}
    for lead in leads:
        m = index.match(lead)
        if m.is_match:
            result[lead.id] = m
    return result


# ── Scheduling bookings ──────────────────────────────────────────────────────

def _index_events(events: Sequence[Mapping], kind: str, by_email, by_phone):
    for ev in events or []:
        ref = (str(ev.get('date') or ''), kind)
        for email in ev.get('attendee_emails') or []:
            n = normalize_email(email)
            if n:
                by_email.setdefault(n, []).append(ref)
        for phone in ev.get('attendee_phones') or []:
            n = normalize_phone(phone)
            if n:
                by_phone.setdefault(n, []).append(ref)


def match_meetings(leads: Iterable, upcoming: Sequence[Mapping],
                   past: Sequence[Mapping]) -> Dict[Any, MeetingMatch]:
    """
    Match leads to booked meetings by attendee email/phone.

    Events are plain dicts: {"date": "YYYY-MM-DD", "attendee_emails": [...],
    "attendee_phones": [...]}. Leads without any booking are left out.
    """
    by_email: Dict[str, list] = {}
    by_phone: Dict[str, list] = {}
    _index_events(upcoming, 'upcoming', by_email, by_phone)
    _index_events(past, 'past', by_email, by_phone)

    result = {}
    for lead in leads:
        emails, phones = lead_identities(lead)
        refs = []
        for e in emails:
            refs.extend(by_email.get(e, ()))
        for p in phones:
            refs.extend(by_phone.get(p, ()))
        if not refs:
            continue
        upcoming_dates = sorted({d for d, kind in refs if kind == 'upcoming' and d})
        past_dates = sorted({d for d, kind in refs if kind == 'past' and d})
        result[lead.id] = MeetingMatch(
            lead_id=lead.id,
            has_upcoming=any(kind == 'upcoming' for _, kind in refs),
            has_past=any(kind == 'past' for _, kind in refs),
            upcoming_dates=upcoming_dates,
            past_dates=past_dates,
        )
    return result
