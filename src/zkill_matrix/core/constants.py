"""
zkill-matrix Constants

Endpoints and fixed values shared across the bot.
"""

# =============================================================================
# External Endpoints
# =============================================================================

ESI_BASE_URL = "https://esi.evetech.net/latest"
ESI_DATASOURCE = "tranquility"

# RedisQ endpoint (moved to zkillredisq.stream in May 2025)
REDISQ_URL = "https://zkillredisq.stream/listen.php"

ZKILLBOARD_URL = "https://zkillboard.com"
IMAGE_SERVER_URL = "https://images.evetech.net"

# =============================================================================
# Health Thresholds (seconds)
# =============================================================================

MAX_POLL_AGE = 30.0
MAX_EXTERNAL_CALL_AGE = 60.0
MAX_DELIVERY_AGE = 60.0

# =============================================================================
# Poller Timing (seconds)
# =============================================================================

IDLE_DELAY_SECONDS = 10.0
BACKOFF_BASE_SECONDS = 1.0
BACKOFF_MAX_SECONDS = 30.0

# =============================================================================
# Message Styling
# =============================================================================

KILL_COLOR = "#4CAF50"  # Green
LOSS_COLOR = "#F44336"  # Red
KILL_EMOJI = "\U0001f3af"  # Direct hit
LOSS_EMOJI = "\U0001f480"  # Skull
