"""Prometheus metrics for the chat, ingestion and gateway paths."""

from prometheus_client import Counter, Histogram

chat_requests_total = Counter(
    "chat_requests_total",
    "Total chat requests by outcome",
    ["outcome"],
)

access_denied_total = Counter(
    "access_denied_total",
    "Total chat requests refused by the access gate",
    ["reason"],
)

gateway_latency_ms = Histogram(
    "gateway_latency_ms",
    "Embedding/completion gateway latency in milliseconds",
    ["operation", "outcome"],
    buckets=[10, 50, 100, 200, 500, 1000, 2000, 4000, 8000, 16000],
)

documents_ingested_total = Counter(
    "documents_ingested_total",
    "Total documents that finished ingestion",
    ["status"],
)

analytics_failures_total = Counter(
    "analytics_failures_total",
    "Total analytics writes that failed or were dropped",
    ["reason"],
)


class PrometheusPipelineMetrics:
    """Prometheus-based metrics for the service pipelines."""

    def record_chat(self, outcome: str) -> None:
        """Count a chat request outcome (answered, fallback, denied, failed)."""
        chat_requests_total.labels(outcome=outcome).inc()

    def record_denial(self, reason: str) -> None:
        """Count an access gate denial."""
        access_denied_total.labels(reason=reason).inc()

    def record_gateway_latency(self, operation: str, outcome: str, latency_ms: float) -> None:
        """Record a gateway call latency."""
        gateway_latency_ms.labels(operation=operation, outcome=outcome).observe(latency_ms)

    def record_ingestion(self, status: str) -> None:
        """Count a document reaching a terminal status."""
        documents_ingested_total.labels(status=status).inc()

    def inc_analytics_failure(self, reason: str) -> None:
        """Count a swallowed analytics failure."""
        analytics_failures_total.labels(reason=reason).inc()
