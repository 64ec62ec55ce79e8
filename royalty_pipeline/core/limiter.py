"""Rate limiter instance for SlowAPI.

Shared so both main (app.state.limiter) and route modules can use the same
instance without circular imports. Central limit strings and decorators
keep rate limits DRY.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from royalty_pipeline.core.config import get_settings

limiter = Limiter(key_func=get_remote_address)

# Single source of truth for rate limit strings and decorators.
WRITE_ENDPOINT_LIMIT = "120/minute"
ADMIN_ACTION_LIMIT = "10/minute"


def _ingestion_limit() -> str:
    return get_settings().ingestion_rate_limit


limit_ingestion = limiter.limit(_ingestion_limit)
limit_writes = limiter.limit(WRITE_ENDPOINT_LIMIT)
limit_admin_actions = limiter.limit(ADMIN_ACTION_LIMIT)
