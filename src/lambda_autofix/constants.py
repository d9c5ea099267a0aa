"""
Default values and platform limits shared across lambda-autofix.
"""

# Scheduling
DEFAULT_MAX_CONCURRENT_FIXES = 3
DEFAULT_COOLDOWN_SECONDS = 300
DEFAULT_ERROR_THRESHOLD = 5
DEFAULT_CIRCUIT_BREAKER_THRESHOLD = 3
DEFAULT_STALE_RESET_FACTOR = 2.0
DEFAULT_SETTLE_DELAY_SECONDS = 5.0
DEFAULT_INTER_BATCH_DELAY_SECONDS = 2.0

# Signal retrieval
DEFAULT_WINDOW_MINUTES = 15
DEFAULT_DIAGNOSTICS_LIMIT = 50
DEFAULT_DIAGNOSTICS_FILTER = "ERROR"
METRIC_PERIOD_SECONDS = 300

# Remediation targets
DEFAULT_ALIAS_NAME = "PROD"
DEFAULT_TIMEOUT_CEILING_SECONDS = 300
DEFAULT_MEMORY_CEILING_MB = 1024
MAX_TIMEOUT_SECONDS = 900
MAX_MEMORY_MB = 10240
MIN_MEMORY_MB = 128

# Policy thresholds
DEFAULT_MIN_CONFIDENCE = "medium"
DEFAULT_MIN_PRIORITY = 1
LOW_CONFIDENCE_SAMPLE_LIMIT = 3
MEDIUM_CONFIDENCE_SAMPLE_LIMIT = 10
HIGH_CONFIDENCE_RATIO = 0.8
PRIORITY_SAMPLE_DIVISOR = 5
MAX_PRIORITY_MULTIPLIER = 2
MAX_PRIORITY = 10

DEFAULT_REGION = "us-east-1"

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
