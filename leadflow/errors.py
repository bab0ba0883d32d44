"""
Typed failure conditions raised by the lead pipeline.

Pure computations (scoring, matching, aggregation) never raise for bad input
data. These are raised by stage transitions and storage-boundary operations.
"""


class PipelineError(Exception):
    """Base class for every lead-pipeline failure."""


class LeadNotFound(PipelineError):
    def __init__(self, lead_id):
        self.lead_id = lead_id
        super().__init__(f"Lead {lead_id} not found")


class UnknownStage(PipelineError):
    """Requested stage is not one of the configured funnel stages."""
    def __init__(self, stage):
        self.stage = stage
        super().__init__(f"Unknown stage '{stage}'")


class NoOpTransition(PipelineError):
    """
    Requested stage equals the current stage.

    Recoverable — callers should treat it as a non-event. Nothing was written.
    """
    def __init__(self, lead_id, stage):
        self.lead_id = lead_id
        self.stage = stage
        super().__init__(f"Lead {lead_id} is already in stage '{stage}'")


class HistoryWriteFailed(PipelineError):
    """The audit entry could not be persisted; the stage change was rolled back."""
    def __init__(self, lead_id, stage):
        self.lead_id = lead_id
        self.stage = stage
        super().__init__(f"History write failed for lead {lead_id}; stage kept at '{stage}'")


class ReadOnlyField(PipelineError):
    """A derived or pipeline-owned field was sent to the lead-update operation."""
    def __init__(self, fields):
        self.fields = sorted(fields)
        super().__init__(f"Fields are not directly editable: {', '.join(self.fields)}")


class DeduplicationInProgress(PipelineError):
    def __init__(self, session_id):
        self.session_id = session_id
        super().__init__(f"Deduplication already running for session '{session_id}'")


class ScoreWriteFailed(PipelineError):
    """Bulk score persistence failed. Batches before `written` were committed."""
    def __init__(self, session_id, written):
        self.session_id = session_id
        self.written = written
        super().__init__(f"Score write failed for session '{session_id}' after {written} leads")


class InvalidCriterion(PipelineError):
    def __init__(self, reason):
        self.reason = reason
        super().__init__(f"Invalid qualification criterion: {reason}")


class InvalidFieldValue(PipelineError):
    """An editable field was sent a value of the wrong type."""
    def __init__(self, field, value, expected):
        self.field = field
        self.value = value
        self.expected = expected
        super().__init__(f"Field '{field}' expects {expected}, got {type(value).__name__}")
