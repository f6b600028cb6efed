"""
Request ID middleware for correlation tracking

Accepts an inbound X-Request-ID (e.g. from a partner network or load
balancer) or generates one, stores it on request.state and echoes it back.
Inbound ids longer than MAX_REQUEST_ID_LENGTH are replaced.
"""

import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
import logging

logger = logging.getLogger(__name__)

MAX_REQUEST_ID_LENGTH = 128


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware to generate and propagate request IDs"""

    async def dispatch(self, request: Request, call_next):
        inbound = request.headers.get("X-Request-ID")
        if inbound and len(inbound) <= MAX_REQUEST_ID_LENGTH:
            request_id = inbound
        else:
            request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        logger.debug(f"Request {request_id}: {request.method} {request.url.path}")

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
