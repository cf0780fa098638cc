from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

# =====================================
# METRICS COLLECTOR
# =====================================

class MetricsCollector:
    """Prometheus metrics for leases, payments and the energy simulator"""

    def __init__(self, registry: CollectorRegistry = None):
        self.registry = registry or CollectorRegistry()

        self.payments_total = Counter(
            "spms_payments_total",
            "Mock payments processed",
            ["status"],
            registry=self.registry,
        )

        self.ledger_transitions_total = Counter(
            "spms_ledger_transitions_total",
            "Ledger entries moved from Pending to Paid",
            ["policy"],  # policy=sequential|named_month
            registry=self.registry,
        )

        self.lease_approvals_total = Counter(
            "spms_lease_approvals_total",
            "Property requests approved into leases",
            registry=self.registry,
        )

        self.energy_readings_total = Counter(
            "spms_energy_readings_total",
            "Synthetic energy readings generated",
            ["kind"],  # kind=spike|random_walk
            registry=self.registry,
        )

        self.energy_tick_failures_total = Counter(
            "spms_energy_tick_failures_total",
            "Per-property failures while generating readings",
            registry=self.registry,
        )

        self.energy_spike_notify_failures_total = Counter(
            "spms_energy_spike_notify_failures_total",
            "Spike events that could not be published",
            registry=self.registry,
        )

        self.energy_tick_duration = Histogram(
            "spms_energy_tick_duration_seconds",
            "Duration of one simulator tick",
            registry=self.registry,
        )

    def record_payment(self, status: str):
        self.payments_total.labels(status=status).inc()

    def record_ledger_transition(self, policy: str):
        self.ledger_transitions_total.labels(policy=policy).inc()

    def record_reading(self, kind: str):
        self.energy_readings_total.labels(kind=kind).inc()

    def render(self) -> bytes:
        return generate_latest(self.registry)


# Global metrics instance
_metrics_collector = MetricsCollector()

METRICS_CONTENT_TYPE = CONTENT_TYPE_LATEST


def get_metrics() -> MetricsCollector:
    """Dependency to get metrics collector"""
    return _metrics_collector
