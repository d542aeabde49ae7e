"""Prometheus metrics - minimal implementation."""
from prometheus_client import Counter, Histogram

# Relayed stream counter by terminal outcome
requests_total = Counter(
    "chatrelay_requests_total",
    "Total relayed chat streams",
    ["provider", "outcome"],
)

# Errors counter with detailed labels
errors_total = Counter(
    "chatrelay_errors_total",
    "Total terminal error events",
    ["provider", "error_code", "upstream_status"],
)

# Time from dispatch to first upstream chunk
first_chunk_latency_ms = Histogram(
    "chatrelay_first_chunk_latency_ms",
    "Latency until the first upstream chunk in milliseconds",
    ["provider"],
    buckets=[50, 100, 200, 500, 1000, 2000, 5000, 10000, 30000],
)

# Full stream duration
stream_duration_ms = Histogram(
    "chatrelay_stream_duration_ms",
    "Relayed stream duration in milliseconds",
    ["provider", "outcome"],
    buckets=[100, 500, 1000, 2000, 5000, 10000, 30000, 60000, 120000],
)

# Tokens reported by providers
tokens_total = Counter(
    "chatrelay_tokens_total",
    "Total tokens reported by providers",
    ["provider", "direction"],
)

# Output throughput per completed stream
tokens_per_second = Histogram(
    "chatrelay_tokens_per_second",
    "Output tokens per second for completed streams",
    ["provider"],
    buckets=[5, 10, 20, 40, 60, 80, 120, 200, 400],
)

# Client disconnects before a terminal event
client_disconnects_total = Counter(
    "chatrelay_client_disconnects_total",
    "Streams abandoned by the client before completion",
    ["provider"],
)

# Web search grounding outcomes
web_search_total = Counter(
    "chatrelay_web_search_total",
    "Web search grounding attempts",
    ["outcome"],
)
