"""
FleetPass - Shared Rate Limiter

One slowapi Limiter for the whole app. The app stores this instance on
app.state.limiter; routes apply per-endpoint limits with
@limiter.limit(), placed directly under @router.* and taking a
`request: Request` parameter.

A single shared instance keeps one counter store; separate instances per
module would each count in isolation. The instance is process-wide:
create_app() sets its `enabled` switch, so every app in the process follows
the most recently built one and shares its memory store.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address


# Credential and token endpoints, per client address
AUTH_RATE_LIMIT = "5/minute"

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
