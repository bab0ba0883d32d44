"""
Duplicate detection within a session.

Each lead carries up to two matching keys (normalized email, normalized phone).
Leads sharing any non-empty key belong to the same person, transitively: a lead
with A's email and B's phone joins A and B into one group. The keeper of a
group is the earliest created_at, ties broken by the lowest id; identity-less
leads are never grouped.

find_duplicate_ids() keeps one key → lead map plus a union-find forest over the
leads that have an identity.
"""
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Tuple

from leadflow.pipeline.identity import lead_matching_keys

_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


def _sort_instant(lead) -> datetime:
    """created_at as an aware datetime (SQLite hands back naive ones)."""
    created = getattr(lead, 'created_at', None)
    if created is None:
        # in-memory stubs without a timestamp go last
        return _FAR_FUTURE
    if created.tzinfo is None:
        return created.replace(tzinfo=timezone.utc)
    return created


def keeper_order(lead) -> Tuple[datetime, int]:
    return _sort_instant(lead), lead.id


def find_duplicate_ids(leads: Iterable, presorted: bool = False) -> List[int]:
    """
    Return the ids to delete so that exactly one lead per identity group remains.

    presorted=True means `leads` already arrive in keeper order (the DB path);
    otherwise they are sorted here first. Ids come back in keeper order.
    """
    ordered = leads if presorted else sorted(leads, key=keeper_order)

    parent: Dict[int, int] = {}
    rank: Dict[int, int] = {}   # position in keeper order; the lower root wins
    owner: Dict[str, int] = {}

    def find(lead_id):
        root = lead_id
        while parent[root] != root:
            root = parent[root]
        while parent[lead_id] != root:
            parent[lead_id], lead_id = root, parent[lead_id]
        return root

    def union(a, b):
        ra, rb = find(a), find(b)
        if ra == rb:
            return
        if rank[ra] < rank[rb]:
            parent[rb] = ra
        else:
            parent[ra] = rb

    for position, lead in enumerate(ordered):
        keys = lead_matching_keys(lead)
        if not keys:
            continue
        parent[lead.id] = lead.id
        rank[lead.id] = position
        for key in keys:
            if key in owner:
                union(lead.id, owner[key])
            else:
                owner[key] = lead.id

    return [lead_id for lead_id in parent if find(lead_id) != lead_id]
