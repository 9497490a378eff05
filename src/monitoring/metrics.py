"""Prometheus metrics for the arbitrage pipeline"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST, start_http_server

# Chain RPC Metrics
chain_rpc_latency = Histogram(
    'chain_rpc_latency_seconds',
    'RPC call latency in seconds',
    ['chain', 'endpoint', 'method'],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0)
)

chain_rpc_errors = Counter(
    'chain_rpc_errors_total',
    'Total number of RPC errors',
    ['chain', 'error_type']
)

# Quote Provider Metrics
quote_requests_total = Counter(
    'quote_requests_total',
    'Total number of quote requests by outcome',
    ['provider', 'network', 'kind', 'outcome']
)

quote_latency = Histogram(
    'quote_latency_seconds',
    'Quote request latency in seconds',
    ['provider', 'network'],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0)
)

quote_rate_limited_total = Counter(
    'quote_rate_limited_total',
    'Total number of rate-limited quote responses',
    ['provider', 'network']
)

# Scan Metrics
scan_combinations_total = Counter(
    'scan_combinations_total',
    'Scanned route combinations by classification',
    ['mode', 'status']
)

scan_aborted_total = Counter(
    'scan_aborted_total',
    'Scans aborted after repeated rate limiting',
    ['mode']
)

scan_duration = Histogram(
    'scan_duration_seconds',
    'Duration of a full scan in seconds',
    ['mode'],
    buckets=(1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0)
)

# Execution Metrics
execution_attempts_total = Counter(
    'execution_attempts_total',
    'Execution attempts by mode and resulting status',
    ['network', 'mode', 'status']
)

execution_rejections_total = Counter(
    'execution_rejections_total',
    'Executions rejected before any chain call',
    ['reason']
)

realized_profit_base_units = Counter(
    'realized_profit_base_units_total',
    'Cumulative positive realized profit in input-token base units',
    ['network']
)

execution_lock_engaged = Gauge(
    'execution_lock_engaged',
    'Whether the global execution lock is engaged (1) or not (0)'
)

# Anomaly Metrics
alerts_raised_total = Counter(
    'pnl_alerts_raised_total',
    'PnL alerts raised by type and severity',
    ['alert_type', 'severity']
)

# Database Performance Metrics
db_query_latency = Histogram(
    'db_query_latency_seconds',
    'Database query latency in seconds',
    ['operation'],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0)
)

db_errors = Counter(
    'db_errors_total',
    'Total number of database errors',
    ['operation', 'error_type']
)

# API Performance Metrics
api_requests_total = Counter(
    'api_requests_total',
    'Total number of API requests',
    ['endpoint', 'method', 'status']
)

api_request_latency = Histogram(
    'api_request_latency_seconds',
    'API request latency in seconds',
    ['endpoint', 'method'],
    buckets=(0.01, 0.05, 0.1, 0.2, 0.5, 1.0, 2.0)
)

api_errors = Counter(
    'api_errors_total',
    'Total number of API errors',
    ['endpoint', 'error_type']
)


def get_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format.

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest()


def get_content_type() -> str:
    """
    Get the content type for Prometheus metrics.

    Returns:
        Content type string
    """
    return CONTENT_TYPE_LATEST


def start_metrics_server(port: int = 9090) -> None:
    """
    Start Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default 9090)
    """
    start_http_server(port)
