from prometheus_client import Counter, Histogram

requests_total = Counter(
    'rpcbridge_requests_total',
    'Total dispatched API requests',
    ['route', 'method', 'code']
)

request_duration_seconds = Histogram(
    'rpcbridge_request_duration_seconds',
    'API request duration',
    ['route']
)


def observe(route: str, method: str, code: int, elapsed: float) -> None:
    requests_total.labels(route=route, method=method, code=str(code)).inc()
    request_duration_seconds.labels(route=route).observe(elapsed)
