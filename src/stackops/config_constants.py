#!/usr/bin/env python3
"""
Filename and marker constants for stackops.

This is the single place where file names, markers and patterns live.
Modules import from here instead of hardcoding strings.
"""

# ============================================================================
# Project files
# ============================================================================

# Compose file the stack is started from (input, never written)
DOCKER_COMPOSE_FILE = 'docker-compose.yml'

# Deployment secrets
ENV_FILE = '.env'
ENV_BACKUP_PREFIX = '.env.backup.'

# Settings: packaged defaults + optional per-project override
SETTINGS_DEFAULTS = 'defaults.toml'
SETTINGS_OVERRIDES = 'stackops.toml'

# ============================================================================
# Logs
# ============================================================================

LOG_DIR = 'logs'
REFRESH_LOG_PREFIX = 'refresh-'
REFRESH_LOG_GLOB = 'refresh-*.log'
CRON_TEST_LOG_PREFIX = 'cron-test-'

# ============================================================================
# Cron markers
# ============================================================================

CRON_JOB_ID = 'docker-compose-refresh'
CRON_COMMENT_PREFIX = '# Docker Compose Refresh - Auto-managed'
CRON_COMMENT = f'{CRON_COMMENT_PREFIX} by stackops'

# Command fragment identifying the refresh job in a crontab line
REFRESH_COMMAND_MARKER = '-m stackops refresh'

# Job lines written by the old shell tooling
LEGACY_REFRESH_MARKER = 'refresh.sh'

# ============================================================================
# Secrets
# ============================================================================

PLACEHOLDER_PASSWORD = 'your_secure_password_here'
MASKED_ENV_KEYS = (
    'CADDY_TLS',
    'N8N_BASIC_AUTH_USER',
    'N8N_BASIC_AUTH_PASSWORD',
    'POSTGRES_PASSWORD',
)
ENV_TEMPLATE = 'env.j2'


def refresh_log_name(date_stamp: str) -> str:
    """Return the daily refresh log file name for a YYYYMMDD stamp."""
    return f'{REFRESH_LOG_PREFIX}{date_stamp}.log'


def cron_test_log_name(timestamp: str) -> str:
    """Return the cron diagnostics log file name for a YYYYmmdd-HHMMSS stamp."""
    return f'{CRON_TEST_LOG_PREFIX}{timestamp}.log'
