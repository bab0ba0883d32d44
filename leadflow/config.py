"""
Centralized configuration — env vars, stage definitions, analytics constants.
"""
import os


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Redis ─────────────────────────────────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── Paging / batching ─────────────────────────────────────────────────────────
LEAD_PAGE_SIZE = int(os.getenv('LEAD_PAGE_SIZE', '1000'))
RESCORE_BATCH_SIZE = int(os.getenv('RESCORE_BATCH_SIZE', '50'))
RESCORE_JOB_TIMEOUT = int(os.getenv('RESCORE_JOB_TIMEOUT', '3600'))

# ── Locks ─────────────────────────────────────────────────────────────────────
DEDUP_LOCK_TIMEOUT = int(os.getenv('DEDUP_LOCK_TIMEOUT', '300'))  # seconds before Redis expires the lock
DEDUP_LOCK_WAIT = float(os.getenv('DEDUP_LOCK_WAIT', '0'))        # 0 = fail fast

# ── Scoring ───────────────────────────────────────────────────────────────────
SCORING_CONFIG_PATH = os.getenv(
    'SCORING_CONFIG_PATH',
    os.path.join(os.path.dirname(__file__), 'pipeline', 'scoring_config.yaml'),
)

# ── Pipeline stage definitions ────────────────────────────────────────────────
STAGES = [
    'lead',
    'qualified',
    'scheduled',
    'held',
    'won',
]

INITIAL_STAGE = 'lead'
WON_STAGE = 'won'

STAGE_LABELS = {
    'lead': 'Lead',
    'qualified': 'Qualified',
    'scheduled': 'Scheduled',
    'held': 'Held',
    'won': 'Won',
}

# ── Attribution ───────────────────────────────────────────────────────────────
ATTRIBUTION_DIMENSIONS = [
    'utm_source',
    'utm_medium',
    'utm_campaign',
    'utm_content',
    'utm_term',
]

NO_DATA_LABEL = 'Sem dados'

# ── Cross-reference defaults ─────────────────────────────────────────────────
UNKNOWN_PRODUCT = 'Produto desconhecido'
UNKNOWN_PLATFORM = 'desconhecido'
