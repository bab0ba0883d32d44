"""
Identity normalization for matching leads against each other and against sales.

An empty normalized value means "no identity" and must never be used as a
positive match key — otherwise every identity-less lead would collapse into one.
"""
import re
from typing import Optional, Set, Tuple

from leadflow.pipeline.fields import candidate_values

COUNTRY_CODE = '55'
_NON_DIGITS = re.compile(r'\D')


def normalize_email(email: Optional[str]) -> str:
    if not email:
        return ''
    return str(email).strip().lower()


def normalize_phone(phone: Optional[str]) -> str:
    """Digits only, with the Brazilian country code stripped from full numbers."""
    if not phone:
        return ''
    digits = _NON_DIGITS.sub('', str(phone))
    if len(digits) >= 12 and digits.startswith(COUNTRY_CODE):
        return digits[len(COUNTRY_CODE):]
    return digits


def matching_keys(email: Optional[str], phone: Optional[str]) -> Tuple[str, ...]:
    """
    Dedup keys: one for the normalized email and one for the normalized phone.

    Blank parts produce no key. Prefixed so an email can never collide with a
    phone string.
    """
    keys = []
    e = normalize_email(email)
    if e:
        keys.append(f'email:{e}')
    p = normalize_phone(phone)
    if p:
        keys.append(f'phone:{p}')
    return tuple(keys)


def lead_matching_keys(lead) -> Tuple[str, ...]:
    return matching_keys(getattr(lead, 'email', None), getattr(lead, 'phone', None))


def lead_identities(lead) -> Tuple[Set[str], Set[str]]:
    """All normalized emails and phones a lead exposes (columns + bag aliases)."""
    emails = {normalize_email(e) for e in candidate_values(lead, 'email')}
    phones = {normalize_phone(p) for p in candidate_values(lead, 'phone')}
    emails.discard('')
    phones.discard('')
    return emails, phones
