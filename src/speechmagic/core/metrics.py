"""
Prometheus Metrics for the Generation Service.

Metrics Exposed:
    speechmagic_generations_total            - Generations by status (success/error)
    speechmagic_generation_duration_seconds  - End-to-end generation latency
    speechmagic_provider_duration_seconds    - Time spent waiting on the provider
    speechmagic_audio_bytes_total            - Audio bytes written to storage
    speechmagic_failures_total               - Failed generations by error code
    speechmagic_rate_limited_total           - Rejections by limiter name
    speechmagic_artifacts_deleted_total      - Deleted artifacts by outcome

Usage:
    from speechmagic.core.metrics import metrics

    metrics.record_generation("success", duration=1.8, audio_bytes=48213)
    metrics.record_failure("PROVIDER_UNAVAILABLE")
    metrics.record_rate_limited("generate")

    content, content_type = metrics.get_metrics_response()

Prometheus Scrape Config Example:
    scrape_configs:
      - job_name: 'speechmagic'
        static_configs:
          - targets: ['localhost:8000']
        metrics_path: '/metrics'
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


class GenerationMetrics:
    """
    Metric collection for the generation pipeline.

    Uses a private CollectorRegistry so several instances (e.g. in tests)
    never collide on metric names. All operations are thread-safe.
    """

    def __init__(self) -> None:
        self._registry = CollectorRegistry()

        self._generations_total = Counter(
            "speechmagic_generations_total",
            "Total generation requests",
            ["status"],
            registry=self._registry,
        )
        self._generation_duration = Histogram(
            "speechmagic_generation_duration_seconds",
            "Generation duration in seconds",
            buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 40.0, 60.0),
            registry=self._registry,
        )
        self._provider_duration = Histogram(
            "speechmagic_provider_duration_seconds",
            "Time spent in the speech provider call",
            buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 40.0, 60.0),
            registry=self._registry,
        )
        self._audio_bytes_total = Counter(
            "speechmagic_audio_bytes_total",
            "Total audio bytes written",
            registry=self._registry,
        )
        self._failures_total = Counter(
            "speechmagic_failures_total",
            "Failed generations by error code",
            ["code"],
            registry=self._registry,
        )
        self._rate_limited_total = Counter(
            "speechmagic_rate_limited_total",
            "Requests rejected by a rate limiter",
            ["limiter"],
            registry=self._registry,
        )
        self._artifacts_deleted_total = Counter(
            "speechmagic_artifacts_deleted_total",
            "Artifact deletions by outcome",
            ["outcome"],
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_generation(self, status: str, duration: float, audio_bytes: int = 0) -> None:
        """
        Record a finished generation.

        Args:
            status: "success" or "error"
            duration: Wall time of the whole pipeline in seconds
            audio_bytes: Size of the written artifact
        """
        self._generations_total.labels(status=status).inc()
        self._generation_duration.observe(duration)
        if audio_bytes > 0:
            self._audio_bytes_total.inc(audio_bytes)

    def observe_provider(self, seconds: float) -> None:
        self._provider_duration.observe(seconds)

    def record_failure(self, code: str) -> None:
        self._failures_total.labels(code=code).inc()

    def record_rate_limited(self, limiter: str) -> None:
        self._rate_limited_total.labels(limiter=limiter).inc()

    def record_artifact_deleted(self, deleted: bool) -> None:
        self._artifacts_deleted_total.labels(outcome="deleted" if deleted else "missing").inc()

    def get_metrics_response(self) -> tuple[bytes, str]:
        """
        Get metrics in Prometheus text format.

        Returns:
            Tuple of (content_bytes, content_type)
        """
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


# Process-wide instance: from speechmagic.core.metrics import metrics
metrics = GenerationMetrics()
