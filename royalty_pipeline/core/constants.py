"""Core constants: Redis key prefixes, pub/sub channels and shared literal values.

Single source of truth for key structure. Used by the Redis aggregation
store and the stream event publisher.
"""

# Aggregation store keys (per window start, Unix seconds)
AGG_PREFIX_BUCKETS = "agg:bucket"
AGG_PREFIX_SEALED = "agg:sealed"
AGG_PREFIX_CLOSED = "agg:closed"
AGG_OPEN_WINDOWS = "agg:open"

# Listener / device history sorted sets
HISTORY_PREFIX_LISTENER = "history:listener"
HISTORY_PREFIX_DEVICE = "history:device"

# Delimiter for composite keys
KEY_SEP = ":"

# Separator inside a bucket hash field: artist, track, counter name
FIELD_SEP = "\x1f"

# Pub/sub channels
CHANNEL_STREAM_EVENT_RECORDED = "stream_events:recorded"
CHANNEL_STREAM_EVENT_FLAGGED = "stream_events:flagged"

# Payout webhook signature header (HMAC-SHA256, "sha256=<hex>")
PAYOUT_WEBHOOK_SIGNATURE_HEADER = "X-Webhook-Signature-256"
