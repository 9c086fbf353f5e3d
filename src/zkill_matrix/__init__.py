"""
zkill-matrix - zKillboard to Matrix Kill Notifications

Watches zKillboard's RedisQ feed, picks out kills involving watched
corporations or alliances, and posts them to a Matrix room.

Usage as CLI:
    python -m zkill_matrix --config config.json

Package structure:
    zkill_matrix/
    ├── core/                 # Settings, logging, ESI client
    └── services/
        ├── health.py         # Pipeline liveness
        ├── health_server.py  # GET /health
        └── redisq/           # Poller, filter, name cache, notifications
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
