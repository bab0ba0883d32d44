"""Shared test fixtures."""
import itertools
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from unittest.mock import patch, MagicMock
from sqlalchemy.orm import sessionmaker

from leadflow.database import Base, make_engine

BASE_TIME = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_engine():
    """In-memory SQLite engine (foreign keys on) with schema created."""
    engine = make_engine('sqlite:///:memory:')
    import leadflow.models.lead
    import leadflow.models.stage_history
    import leadflow.models.external_record
    import leadflow.models.qualification_criterion
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """SQLAlchemy session bound to in-memory SQLite. Rolls back after each test."""
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def patch_get_session(db_session):
    """Route all get_session() calls to the test session.

    We disable close() so that engine operations calling session.close()
    in their finally blocks don't invalidate the shared test session.

    leadflow.services.engine does `from leadflow.database import get_session`,
    so its local binding is patched as well.
    """
    _real_close = db_session.close
    db_session.close = lambda: None
    with patch('leadflow.database.get_session', return_value=db_session), \
            patch('leadflow.services.engine.get_session', return_value=db_session):
        yield db_session
    db_session.close = _real_close


@pytest.fixture(autouse=True)
def reset_scoring_cache():
    """Each test starts from the bundled YAML rules."""
    from leadflow.pipeline.scoring import reset_scoring_config
    reset_scoring_config()
    yield
    reset_scoring_config()


@pytest.fixture
def mock_redis():
    """Mock Redis client. lock() hands back a lock that acquires by default."""
    mock = MagicMock()
    mock.get.return_value = None
    mock.lock.return_value.acquire.return_value = True
    with patch('leadflow.extensions.redis_client', mock):
        yield mock


@pytest.fixture
def app():
    """Flask test app."""
    from leadflow import create_app
    app = create_app()
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c


@pytest.fixture
def make_lead(db_session):
    """Factory fixture — inserts and commits a Lead.

    created_at advances one minute per call unless given, so insertion order
    is also age order.
    """
    from leadflow.models.lead import Lead
    counter = itertools.count()

    def _make(**overrides):
        defaults = dict(
            session_id='session-1',
            name='Test Lead',
            stage='lead',
            attributes={},
            created_at=BASE_TIME + timedelta(minutes=next(counter)),
        )
        defaults.update(overrides)
        lead = Lead(**defaults)
        db_session.add(lead)
        db_session.commit()
        return lead
    return _make


@pytest.fixture
def make_sale(db_session):
    """Factory fixture — inserts and commits an ExternalRecord (sale)."""
    from leadflow.models.external_record import ExternalRecord

    def _make(**overrides):
        defaults = dict(client_email=None, client_phone=None, product_name='Mentoria', platform='hotmart')
        defaults.update(overrides)
        record = ExternalRecord(**defaults)
        db_session.add(record)
        db_session.commit()
        return record
    return _make


@pytest.fixture
def lead_stub():
    """Factory fixture — plain in-memory lead for pure-function tests (no DB)."""
    counter = itertools.count(1)

    def _make(**overrides):
        defaults = dict(
            id=next(counter),
            session_id='session-1',
            name='',
            email=None,
            phone=None,
            stage='lead',
            is_qualified=False,
            qualification_score=None,
            utm_source=None,
            utm_medium=None,
            utm_campaign=None,
            utm_content=None,
            attributes={},
            created_at=None,
        )
        defaults.update(overrides)
        return SimpleNamespace(**defaults)
    return _make


@pytest.fixture
def qualified_answers():
    """Survey answers that pass both revenue and profit gates."""
    return {
        'Faturamento': 'De R$30.000 a R$50.000',
        'Lucro': 'De R$15.000 a R$30.000',
        'Empreita': 'Não',
    }
