"""Centralized defaults for swapdeploy."""

# Health checks
DEFAULT_HEALTH_PATH = "/health"
DEFAULT_MAX_RETRIES = 5
DEFAULT_RETRY_INTERVAL_SECONDS = 5.0
DEFAULT_PROBE_TIMEOUT_SECONDS = 5.0

# Container naming
CANDIDATE_SUFFIX = "-candidate"

# Runtime commands (seconds)
DEFAULT_PULL_TIMEOUT = 600
DEFAULT_COMMAND_TIMEOUT = 120

# Promoted instance
DEFAULT_RESTART_POLICY = "unless-stopped"

# Process exit codes surfaced to the invoking pipeline
EXIT_PROMOTED = 0
EXIT_ROLLED_BACK = 1
EXIT_FATAL = 2
