"""Prometheus metrics for the ingestion pipeline."""

from prometheus_client import Counter, Histogram

pipeline_step_latency_ms = Histogram(
    "pipeline_step_latency_ms",
    "Pipeline step latency in milliseconds",
    ["step", "outcome"],
    buckets=[10, 50, 100, 500, 1000, 5000, 15000, 30000, 60000, 120000],
)

external_tool_errors_total = Counter(
    "external_tool_errors_total",
    "Total external tool failures",
    ["tool", "reason"],
)

documents_ingested_total = Counter(
    "documents_ingested_total",
    "Total documents ingested",
    ["complexity"],
)


class PrometheusPipelineMetrics:
    """Prometheus-based pipeline metrics implementation."""

    def record_latency(self, step: str, outcome: str, latency_ms: float) -> None:
        """Record pipeline step latency."""
        pipeline_step_latency_ms.labels(step=step, outcome=outcome).observe(latency_ms)

    def inc_tool_error(self, tool: str, reason: str) -> None:
        """Increment external tool error counter."""
        external_tool_errors_total.labels(tool=tool, reason=reason).inc()

    def inc_ingested(self, complexity: str) -> None:
        """Increment ingested document counter."""
        documents_ingested_total.labels(complexity=complexity).inc()


pipeline_metrics = PrometheusPipelineMetrics()
