import re
import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from prometheus_client import Counter, Histogram, Gauge

# Prometheus metrics
requests_total = Counter('affiliate_http_requests_total', 'Total HTTP requests', ['method', 'endpoint', 'status'])
request_duration = Histogram('affiliate_http_request_duration_seconds', 'HTTP request duration', ['method', 'endpoint'])
active_requests = Gauge('affiliate_http_active_requests', 'Currently active requests')

# Pipeline metrics
clicks_total = Counter('affiliate_clicks_total', 'Redirect hits', ['outcome'])  # recorded, bot, blocked, fraud, error
postbacks_total = Counter('affiliate_postbacks_total', 'Inbound postbacks', ['method', 'outcome'])
conversions_created_total = Counter('affiliate_conversions_created_total', 'New conversions', ['validation_method'])
payouts_total = Counter('affiliate_payouts_total', 'Payout state transitions', ['action'])

# Collapse ids/short codes so label cardinality stays bounded
_GO_PATH = re.compile(r'^/go/[^/]+$')
_ID_SEGMENT = re.compile(r'/[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}')


def normalize_endpoint(path: str) -> str:
    if _GO_PATH.match(path):
        return '/go/{short_code}'
    return _ID_SEGMENT.sub('/{id}', path)


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        active_requests.inc()
        start_time = time.time()
        endpoint = normalize_endpoint(request.url.path)
        try:
            response = await call_next(request)
        finally:
            active_requests.dec()

        duration = time.time() - start_time
        requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status=response.status_code
        ).inc()
        request_duration.labels(
            method=request.method,
            endpoint=endpoint
        ).observe(duration)

        return response
