"""Tests for leadflow.services.engine — transactional pipeline operations."""
import pytest
from unittest.mock import MagicMock, patch
from sqlalchemy.exc import SQLAlchemyError

from leadflow.config import RESCORE_BATCH_SIZE, RESCORE_JOB_TIMEOUT
from leadflow.errors import (
    DeduplicationInProgress,
    HistoryWriteFailed,
    InvalidCriterion,
    InvalidFieldValue,
    LeadNotFound,
    NoOpTransition,
    ReadOnlyField,
    ScoreWriteFailed,
    UnknownStage,
)
from leadflow.models.lead import Lead
from leadflow.models.stage_history import StageHistoryEntry
from leadflow.pipeline.stages import replay_history
from leadflow.services import engine


def history_count(db_session, lead_id):
    return db_session.query(StageHistoryEntry).filter_by(lead_id=lead_id).count()


# ---------------------------------------------------------------------------
# transition_stage / get_stage_history
# ---------------------------------------------------------------------------

class TestTransitionStage:

    def test_moves_stage_and_records_entry(self, db_session, make_lead):
        lead = make_lead(stage='lead')
        updated, entry = engine.transition_stage(lead.id, 'qualified', actor='user-1', actor_name='Ana')
        assert updated.stage == 'qualified'
        assert entry.id is not None
        assert entry.previous_stage == 'lead'
        assert entry.new_stage == 'qualified'
        assert entry.actor_name == 'Ana'
        assert history_count(db_session, lead.id) == 1

    def test_noop_rejected_without_history(self, db_session, make_lead):
        lead = make_lead(stage='scheduled')
        with pytest.raises(NoOpTransition):
            engine.transition_stage(lead.id, 'scheduled')
        assert history_count(db_session, lead.id) == 0
        assert db_session.get(Lead, lead.id).stage == 'scheduled'

    def test_unknown_stage_rejected(self, db_session, make_lead):
        lead = make_lead()
        with pytest.raises(UnknownStage):
            engine.transition_stage(lead.id, 'archived')
        assert history_count(db_session, lead.id) == 0

    def test_missing_lead(self):
        with pytest.raises(LeadNotFound):
            engine.transition_stage(12345, 'won')

    def test_history_write_failure_rolls_back_stage(self, db_session, make_lead):
        lead = make_lead(stage='lead')
        lead_id = lead.id
        with patch('leadflow.services.engine.append_history', side_effect=SQLAlchemyError('disk full')):
            with pytest.raises(HistoryWriteFailed) as exc:
                engine.transition_stage(lead_id, 'won')
        assert exc.value.stage == 'lead'
        assert db_session.get(Lead, lead_id).stage == 'lead'
        assert history_count(db_session, lead_id) == 0

    def test_commit_failure_is_history_failure(self, db_session, make_lead):
        lead_id = make_lead(stage='lead').id
        with patch.object(db_session, 'commit', side_effect=SQLAlchemyError('lost connection')):
            with pytest.raises(HistoryWriteFailed):
                engine.transition_stage(lead_id, 'held')
        assert db_session.get(Lead, lead_id).stage == 'lead'

    def test_backwards_and_skips_allowed(self, make_lead):
        lead = make_lead(stage='lead')
        engine.transition_stage(lead.id, 'won')
        updated, _ = engine.transition_stage(lead.id, 'qualified')
        assert updated.stage == 'qualified'


class TestGetStageHistory:

    def test_most_recent_first_and_replays(self, make_lead):
        lead = make_lead(stage='lead')
        for stage in ('qualified', 'scheduled', 'held', 'scheduled'):
            engine.transition_stage(lead.id, stage)

        history = engine.get_stage_history(lead.id)
        assert [e.new_stage for e in history] == ['scheduled', 'held', 'scheduled', 'qualified']
        assert history[-1].previous_stage == 'lead'
        assert replay_history(reversed(history)) == 'scheduled'

    def test_empty_history(self, make_lead):
        assert engine.get_stage_history(make_lead().id) == []

    def test_missing_lead(self):
        with pytest.raises(LeadNotFound):
            engine.get_stage_history(999)


# ---------------------------------------------------------------------------
# update_lead
# ---------------------------------------------------------------------------

class TestUpdateLead:

    def test_updates_editable_fields(self, make_lead):
        lead = make_lead()
        updated = engine.update_lead(lead.id, {'observation': 'Ligar amanhã', 'order_index': 3})
        assert updated.observation == 'Ligar amanhã'
        assert updated.order_index == 3

    @pytest.mark.parametrize('field,value', [
        ('stage', 'won'),
        ('is_qualified', True),
        ('qualification_score', 100),
    ])
    def test_pipeline_fields_rejected(self, db_session, make_lead, field, value):
        lead = make_lead()
        with pytest.raises(ReadOnlyField) as exc:
            engine.update_lead(lead.id, {field: value, 'name': 'Changed'})
        assert exc.value.fields == [field]
        assert db_session.get(Lead, lead.id).name == 'Test Lead'

    def test_unknown_fields_rejected(self, make_lead):
        with pytest.raises(ReadOnlyField):
            engine.update_lead(make_lead().id, {'session_id': 'other'})

    @pytest.mark.parametrize('field,value', [
        ('order_index', 'abc'),
        ('order_index', True),
        ('order_index', 1.5),
        ('name', None),
        ('email', 42),
    ])
    def test_mistyped_values_rejected(self, db_session, make_lead, field, value):
        lead = make_lead(order_index=2)
        with pytest.raises(InvalidFieldValue) as exc:
            engine.update_lead(lead.id, {field: value})
        assert exc.value.field == field
        stored = db_session.get(Lead, lead.id)
        assert stored.order_index == 2 and stored.name == 'Test Lead'

    def test_nullable_fields_accept_none(self, make_lead):
        lead = make_lead(email='a@x.com', observation='x')
        updated = engine.update_lead(lead.id, {'email': None, 'observation': None})
        assert updated.email is None and updated.observation is None

    def test_missing_lead(self):
        with pytest.raises(LeadNotFound):
            engine.update_lead(999, {'name': 'x'})


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

class TestRecomputeScore:

    def test_persists_verdict(self, db_session, make_lead, qualified_answers):
        lead = make_lead(attributes=qualified_answers)
        updated, result = engine.recompute_score(lead.id)
        assert result.qualified is True
        stored = db_session.get(Lead, lead.id)
        assert stored.is_qualified is True
        assert stored.qualification_score == 90

    def test_overwrites_stale_flag(self, db_session, make_lead):
        lead = make_lead(is_qualified=True, qualification_score=80)
        engine.recompute_score(lead.id)
        stored = db_session.get(Lead, lead.id)
        assert stored.is_qualified is False
        assert stored.qualification_score == 0

    def test_missing_lead(self):
        with pytest.raises(LeadNotFound):
            engine.recompute_score(999)


class TestRescoreSession:

    def test_scores_every_lead_in_batches(self, db_session, make_lead, qualified_answers):
        ids = [make_lead(attributes=qualified_answers if i % 2 == 0 else {}).id for i in range(5)]
        make_lead(session_id='other')

        summary = engine.rescore_session('session-1', batch_size=2)

        assert summary == {'session_id': 'session-1', 'scored': 5, 'changed': 5}
        flags = [db_session.get(Lead, i).is_qualified for i in ids]
        assert flags == [True, False, True, False, True]

    def test_second_run_changes_nothing(self, make_lead, qualified_answers):
        for _ in range(3):
            make_lead(attributes=qualified_answers)
        engine.rescore_session('session-1')
        assert engine.rescore_session('session-1')['changed'] == 0

    def test_failed_batch_reports_committed_count(self, db_session, make_lead, qualified_answers):
        ids = [make_lead(attributes=qualified_answers).id for _ in range(4)]
        real_commit = db_session.commit
        calls = {'n': 0}

        def flaky_commit():
            calls['n'] += 1
            if calls['n'] == 2:
                raise SQLAlchemyError('deadlock')
            real_commit()

        with patch.object(db_session, 'commit', side_effect=flaky_commit):
            with pytest.raises(ScoreWriteFailed) as exc:
                engine.rescore_session('session-1', batch_size=2)

        assert exc.value.written == 2
        scores = [db_session.get(Lead, i).qualification_score for i in ids]
        assert scores == [90, 90, None, None]

    def test_empty_session(self):
        assert engine.rescore_session('empty')['scored'] == 0


class TestEnqueueSessionRescore:

    def test_enqueues_job(self):
        queue = MagicMock()
        queue.enqueue.return_value.id = 'job-123'
        with patch('leadflow.services.engine.get_queue', return_value=queue):
            job_id = engine.enqueue_session_rescore('session-1')
        assert job_id == 'job-123'
        queue.enqueue.assert_called_once_with(
            engine.rescore_session, 'session-1', RESCORE_BATCH_SIZE, job_timeout=RESCORE_JOB_TIMEOUT,
        )


# ---------------------------------------------------------------------------
# deduplicate_session
# ---------------------------------------------------------------------------

class TestDeduplicateSession:

    def test_removes_duplicates_keeping_oldest(self, db_session, make_lead, mock_redis):
        keeper = make_lead(email='Ana@x.com')
        dup = make_lead(email='ana@x.com')
        other = make_lead(email='bruno@x.com')
        phone_keeper = make_lead(phone='+55 11 98888-7777')
        phone_dup = make_lead(phone='11 98888-7777')
        anon = [make_lead(), make_lead()]
        make_lead(session_id='other', email='ana@x.com')
        dup_id, phone_dup_id = dup.id, phone_dup.id

        assert engine.deduplicate_session('session-1') == 2

        remaining = {l.id for l in db_session.query(Lead).filter_by(session_id='session-1')}
        assert remaining == {keeper.id, other.id, phone_keeper.id} | {a.id for a in anon}
        assert dup_id not in remaining and phone_dup_id not in remaining

    def test_shared_phone_matches_lead_with_email(self, db_session, make_lead, mock_redis):
        keeper = make_lead(email='a@x.com', phone='+55 11 98888-7777')
        make_lead(email=None, phone='11988887777')

        assert engine.deduplicate_session('session-1') == 1
        remaining = [l.id for l in db_session.query(Lead).filter_by(session_id='session-1')]
        assert remaining == [keeper.id]

    def test_second_run_removes_zero(self, make_lead, mock_redis):
        make_lead(email='a@x.com')
        make_lead(email='A@X.COM')
        assert engine.deduplicate_session('session-1') == 1
        assert engine.deduplicate_session('session-1') == 0

    def test_history_of_removed_lead_is_deleted(self, db_session, make_lead, mock_redis):
        make_lead(email='a@x.com')
        dup = make_lead(email='a@x.com')
        engine.transition_stage(dup.id, 'held')
        dup_id = dup.id
        engine.deduplicate_session('session-1')
        assert history_count(db_session, dup_id) == 0

    def test_busy_session_fails_fast(self, db_session, make_lead, mock_redis):
        mock_redis.lock.return_value.acquire.return_value = False
        make_lead(email='a@x.com')
        make_lead(email='a@x.com')
        with pytest.raises(DeduplicationInProgress):
            engine.deduplicate_session('session-1')
        assert db_session.query(Lead).filter_by(session_id='session-1').count() == 2

    def test_lock_released(self, make_lead, mock_redis):
        engine.deduplicate_session('session-1')
        mock_redis.lock.return_value.release.assert_called_once()


# ---------------------------------------------------------------------------
# Cross-reference
# ---------------------------------------------------------------------------

class TestMatching:

    def test_match_against_external(self, make_lead, make_sale):
        lead = make_lead(email='ana@x.com')
        make_sale(client_email='ANA@x.com', product_name='Imersão', platform='kiwify')
        result = engine.match_against_external(lead.id)
        assert result.is_match is True
        assert result.products == [{'name': 'Imersão', 'platform': 'kiwify'}]

    def test_match_against_external_missing_lead(self):
        with pytest.raises(LeadNotFound):
            engine.match_against_external(999)

    def test_session_matches(self, make_lead, make_sale):
        hit = make_lead(attributes={'whatsapp': '11 98888-7777'})
        make_lead(email='nobody@x.com')
        make_sale(client_phone='+55 11 98888-7777')
        result = engine.match_session_against_external('session-1')
        assert list(result) == [hit.id]

    def test_session_meetings(self, make_lead):
        lead = make_lead(email='ana@x.com')
        upcoming = [{'date': '2025-04-01', 'attendee_emails': ['ana@x.com']}]
        result = engine.match_session_meetings('session-1', upcoming, [])
        assert result[lead.id].has_upcoming is True
        assert result[lead.id].has_past is False


# ---------------------------------------------------------------------------
# Qualification criteria
# ---------------------------------------------------------------------------

class TestCriteria:

    def test_add_list_delete(self):
        created = engine.add_criterion('session-1', 'nicho', 'equals', 'moda', weight=2)
        assert created['weight'] == 2.0
        assert [c['field_name'] for c in engine.list_criteria('session-1')] == ['nicho']
        assert engine.delete_criterion(created['id']) is True
        assert engine.list_criteria('session-1') == []

    def test_delete_missing(self):
        assert engine.delete_criterion(999) is False

    @pytest.mark.parametrize('field_name,operator,weight', [
        ('nicho', 'regex', 1),
        ('', 'equals', 1),
        ('nicho', 'equals', 'heavy'),
        ('nicho', 'equals', 0),
    ])
    def test_invalid_criteria_rejected(self, field_name, operator, weight):
        with pytest.raises(InvalidCriterion):
            engine.add_criterion('session-1', field_name, operator, 'x', weight=weight)

    def test_criteria_fit_is_informational(self, db_session, make_lead):
        lead = make_lead(attributes={'nicho': 'moda'})
        engine.add_criterion('session-1', 'nicho', 'equals', 'moda')
        fits = engine.criteria_fit('session-1')
        assert fits[lead.id].fits is True
        assert db_session.get(Lead, lead.id).is_qualified is False


# ---------------------------------------------------------------------------
# Attribution analytics
# ---------------------------------------------------------------------------

class TestAnalytics:

    @pytest.fixture
    def session_leads(self, make_lead, qualified_answers):
        make_lead(utm_source='instagram', attributes=dict(qualified_answers, data='07/03/2025'), stage='won')
        make_lead(utm_source='instagram', attributes={'data': '07/03/2025'})
        make_lead(attributes={'data': '08/03/2025'})
        make_lead(session_id='other', utm_source='instagram')

    def test_aggregate_by_dimension(self, session_leads):
        rows = engine.aggregate_by_dimension('session-1', 'utm_source')
        assert [(r.dimension_value, r.total_count, r.qualified_count, r.won_count) for r in rows] == [
            ('instagram', 2, 1, 1), ('Sem dados', 1, 0, 0),
        ]

    def test_aggregate_funnel(self, session_leads):
        counts = {r.stage: r.count for r in engine.aggregate_funnel('session-1')}
        assert counts == {'lead': 2, 'qualified': 0, 'scheduled': 0, 'held': 0, 'won': 1}

    def test_aggregate_daily(self, session_leads):
        rows = engine.aggregate_daily('session-1')
        assert [(r.date, r.count) for r in rows] == [('2025-03-07', 2), ('2025-03-08', 1)]

    def test_attribution_report(self, session_leads):
        report = engine.attribution_report('session-1')
        assert report['session_id'] == 'session-1'
        assert (report['total'], report['qualified'], report['won']) == (3, 1, 1)
        assert sum(r['total_count'] for r in report['dimensions']['utm_term']) == 3

    def test_does_not_write_scores(self, db_session, session_leads):
        engine.attribution_report('session-1')
        assert db_session.query(Lead).filter(Lead.qualification_score.isnot(None)).count() == 0
