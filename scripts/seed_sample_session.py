#!/usr/bin/env python3
"""
Seed a sample campaign session for trying the API locally.

Creates one session with leads covering the key scenarios:
  1. Qualified lead (revenue and profit both above their minimums)
  2. High revenue but low profit (not qualified)
  3. Duplicate pair (same email, different case)
  4. Lead with no UTM data ("Sem dados" bucket)
  5. Existing customer (matching sale record)

Usage:
    python scripts/seed_sample_session.py          # seed
    python scripts/seed_sample_session.py --clear  # wipe the sample session first

Requires: DATABASE_URL set (or defaults to sqlite:///local.db).
"""
import sys
import os
import argparse
from datetime import datetime, timezone, timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from leadflow import create_app
from leadflow.database import get_session, engine, Base
from leadflow.models.external_record import ExternalRecord
from leadflow.models.lead import Lead
from leadflow.models.stage_history import StageHistoryEntry

SESSION_ID = 'sample-session'
SALE_MARKER = 'seed:sample'


LEADS = [
    {'name': 'Ana Souza', 'email': 'ana@example.com', 'phone': '+55 11 98888-7777',
     'utm_source': 'instagram', 'utm_campaign': 'lancamento',
     'attributes': {'Faturamento': 'De R$50.000 a R$100.000', 'Lucro': 'De R$15.000 a R$30.000',
                    'Empreita': 'Não', 'Data de entrada': '07/03/2025 14:30'}},
    {'name': 'Bruno Lima', 'email': 'bruno@example.com', 'phone': '21 97777-6666',
     'utm_source': 'instagram', 'utm_campaign': 'lancamento',
     'attributes': {'Faturamento': 'Acima de R$100.000', 'Lucro': 'Até R$3.000',
                    'Data de entrada': '07/03/2025 16:05'}},
    {'name': 'Carla Dias', 'email': 'CARLA@example.com', 'phone': None,
     'utm_source': 'facebook',
     'attributes': {'Faturamento': 'De R$30.000 a R$50.000', 'Lucro': 'De R$10.000 a R$15.000',
                    'Data de entrada': '08/03/2025'}},
    {'name': 'Carla D.', 'email': ' carla@example.com ', 'phone': None,
     'utm_source': 'facebook',
     'attributes': {'Faturamento': 'De R$30.000 a R$50.000', 'Data de entrada': '09/03/2025'}},
    {'name': 'Diego Alves', 'email': None, 'phone': '31 96666-5555',
     'attributes': {'Faturamento': 'Até R$5.000'}},
]


def seed_session(session):
    now = datetime.now(timezone.utc)
    for i, data in enumerate(LEADS):
        session.add(Lead(
            session_id=SESSION_ID,
            order_index=i,
            created_at=now - timedelta(hours=len(LEADS) - i),
            **data,
        ))
    session.add(ExternalRecord(
        client_email='ana@example.com', product_name='Mentoria Premium', platform=SALE_MARKER,
    ))
    session.flush()
    print(f'  Seeded {len(LEADS)} leads into session {SESSION_ID}')


def clear_session(session):
    lead_ids = [row.id for row in session.query(Lead.id).filter(Lead.session_id == SESSION_ID)]
    if lead_ids:
        session.query(StageHistoryEntry).filter(
            StageHistoryEntry.lead_id.in_(lead_ids)).delete(synchronize_session=False)
    deleted = session.query(Lead).filter(Lead.session_id == SESSION_ID).delete(synchronize_session=False)
    sales = session.query(ExternalRecord).filter(
        ExternalRecord.platform == SALE_MARKER).delete(synchronize_session=False)
    session.commit()
    print(f'Cleared {deleted} leads, {sales} sales.')


def main():
    parser = argparse.ArgumentParser(description='Seed a sample lead session')
    parser.add_argument('--clear', action='store_true', help='Clear the sample session before seeding')
    parser.add_argument('--clear-only', action='store_true', help='Only clear, do not re-seed')
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        # Ensure tables exist (for SQLite local dev)
        Base.metadata.create_all(engine)

        session = get_session()
        try:
            if args.clear or args.clear_only:
                clear_session(session)
                if args.clear_only:
                    return

            print('Seeding sample session...')
            seed_session(session)
            session.commit()
            print(f'\nDone! Try GET /api/sessions/{SESSION_ID}/analytics')

        except Exception as e:
            session.rollback()
            print(f'Error: {e}')
            raise
        finally:
            session.close()


if __name__ == '__main__':
    main()
