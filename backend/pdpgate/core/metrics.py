"""
Prometheus metrics configuration
"""
import os

from prometheus_client import (CONTENT_TYPE_LATEST, Counter, Gauge, Histogram,
                               Info, generate_latest)
from prometheus_client.multiprocess import MultiProcessCollector
from prometheus_client.registry import REGISTRY

# Check if we're in multiprocess mode
if os.environ.get('PROMETHEUS_MULTIPROC_DIR'):
    REGISTRY = MultiProcessCollector(REGISTRY)

# ============================================================================
# HTTP Request Metrics
# ============================================================================

http_requests_total = Counter(
    'http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint', 'status_code'],
    buckets=(0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0)
)

http_errors_total = Counter(
    'http_errors_total',
    'Total number of HTTP errors',
    ['method', 'endpoint', 'status_code', 'error_type']
)

# ============================================================================
# pdptool Metrics
# ============================================================================

pdp_tool_invocations_total = Counter(
    'pdp_tool_invocations_total',
    'Total number of pdptool invocations',
    ['subcommand', 'status']  # status: 'success', 'failed', 'timeout', 'spawn_error'
)

pdp_tool_duration_seconds = Histogram(
    'pdp_tool_duration_seconds',
    'pdptool invocation duration in seconds',
    ['subcommand'],
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 300.0)
)

pdp_retry_attempts_total = Counter(
    'pdp_retry_attempts_total',
    'Total number of retried operation attempts',
    ['operation', 'outcome']  # outcome: 'success', 'transient', 'terminal', 'exhausted'
)

pdp_status_polls_total = Counter(
    'pdp_status_polls_total',
    'Total number of proof set creation status polls',
    ['result']  # result: 'pending', 'confirmed', 'error'
)

pdp_workflows_total = Counter(
    'pdp_workflows_total',
    'Total number of upload workflows',
    ['flow', 'status']  # flow: 'full', 'bind'
)

pdp_workflow_duration_seconds = Histogram(
    'pdp_workflow_duration_seconds',
    'Upload workflow duration in seconds',
    ['flow'],
    buckets=(1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0)
)

pdp_persistence_failures_total = Counter(
    'pdp_persistence_failures_total',
    'Total number of best-effort metadata writes that failed',
    ['table']
)

# ============================================================================
# Database Metrics
# ============================================================================

db_queries_total = Counter(
    'db_queries_total',
    'Total number of database queries',
    ['operation', 'table']  # operation: 'select', 'insert', 'update', 'delete'
)

db_query_duration_seconds = Histogram(
    'db_query_duration_seconds',
    'Database query duration in seconds',
    ['operation', 'table'],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5)
)

db_connection_pool_size = Gauge(
    'db_connection_pool_size',
    'Database connection pool size',
    ['state']  # state: 'active', 'idle'
)

# ============================================================================
# Logging Metrics
# ============================================================================

log_messages_total = Counter(
    'log_messages_total',
    'Total number of log records emitted',
    ['level']
)

# ============================================================================
# System Info
# ============================================================================

app_info = Info(
    'app_info',
    'Application information'
)


def get_metrics():
    """
    Get Prometheus metrics in text format

    Returns:
        bytes: Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def get_metrics_content_type():
    """Get content type for Prometheus metrics"""
    return CONTENT_TYPE_LATEST
