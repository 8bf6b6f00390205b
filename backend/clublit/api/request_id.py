"""Request ID helper for endpoints.

The observability middleware binds a request id into the logging context; the
request id middleware stores it on ``request.state``. Either source works.
"""

from __future__ import annotations

from typing import Optional

from starlette.requests import Request

from clublit.obs import logging as obs_logging

REQUEST_ID_ATTR = "request_id"


def get_request_id(request: Optional[Request] = None, default: str = "unknown") -> str:
    """Return the current request id if bound, else ``default``."""
    if request is not None:
        rid = getattr(request.state, REQUEST_ID_ATTR, None)
        if rid:
            return str(rid)
    return obs_logging.current_request_id() or default
