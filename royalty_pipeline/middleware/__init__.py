"""HTTP middleware: timeout and request ID.

Applied in main app; order matters (first added = outermost).
Import and use from royalty_pipeline.main.
"""

from royalty_pipeline.middleware.request_id import RequestIDMiddleware
from royalty_pipeline.middleware.timeout import TimeoutMiddleware

__all__ = [
    "RequestIDMiddleware",
    "TimeoutMiddleware",
]
