# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics for the mail dispatch layer.

All metrics use the ``sub_`` prefix.

Metrics exposed:
    - ``sub_mail_sent_total``: Counter of successfully delivered emails.
    - ``sub_mail_errors_total``: Counter of delivery failures.
    - ``sub_mail_queued``: Gauge of messages waiting in the outbound queue.
    - ``sub_inflight_tasks``: Gauge of tracked background tasks.

Example:
    Accessing metrics via the REST API::

        GET /metrics
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest


class MailMetrics:
    """Prometheus metrics collector for the mailer.

    Attributes:
        registry: The Prometheus CollectorRegistry holding all metrics.
        sent: Counter tracking delivered emails.
        errors: Counter tracking failed deliveries.
        queued: Gauge showing the current queue depth.
        inflight: Gauge showing outstanding background tasks.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()
        self.sent = Counter(
            "sub_mail_sent_total",
            "Total sent emails",
            registry=self.registry,
        )
        self.errors = Counter(
            "sub_mail_errors_total",
            "Total delivery errors",
            registry=self.registry,
        )
        self.queued = Gauge(
            "sub_mail_queued",
            "Messages waiting in the outbound queue",
            registry=self.registry,
        )
        self.inflight = Gauge(
            "sub_inflight_tasks",
            "Background tasks the shutdown waits for",
            registry=self.registry,
        )

    def inc_sent(self) -> None:
        self.sent.inc()

    def inc_error(self) -> None:
        self.errors.inc()

    def set_queued(self, value: int) -> None:
        self.queued.set(value)

    def set_inflight(self, value: int) -> None:
        self.inflight.set(value)

    def generate_latest(self) -> bytes:
        """Export all metrics in Prometheus text exposition format."""
        return generate_latest(self.registry)
