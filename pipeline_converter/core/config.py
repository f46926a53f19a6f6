# =============================================================================
# Batch Configuration
# =============================================================================

# Aggregate batch ceiling = per-item timeout * max concurrency * this factor
BATCH_TIMEOUT_SAFETY_FACTOR = 2

SESSION_ID_PREFIX = "pipeline"
UNNAMED_IDENTIFIER = "unnamed"

# =============================================================================
# Output Files
# =============================================================================

WORKFLOWS_SUBDIRECTORY = ".github/workflows"
WORKFLOW_EXTENSION = ".yml"
VALIDATION_REPORT_SUFFIX = ".validation.md"
SUMMARY_FILE = "conversion-summary.json"

# =============================================================================
# Conversation Service
# =============================================================================

CONVERSATION_SERVICE_NAME = "conversation"
DEFAULT_MODEL = "gpt-4.1"
DEFAULT_TEMPERATURE = 0.0
MAX_TOOL_ROUNDS = 5  # Tool-call round trips allowed inside one exchange

# =============================================================================
# Retry Configuration
# =============================================================================

MAX_RETRIES = 3
INITIAL_BACKOFF = 0.5  # seconds
BACKOFF_MULTIPLIER = 2  # Exponential backoff multiplier for retries

# =============================================================================
# Circuit Breaker
# =============================================================================

CIRCUIT_FAILURE_THRESHOLD = 5
CIRCUIT_RESET_TIMEOUT_SECONDS = 60

# =============================================================================
# Error Handling
# =============================================================================

ERROR_BODY_MAX_CHARS = 200  # Maximum chars from error response bodies
