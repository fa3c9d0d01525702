"""
Prometheus-compatible counters for the booking and payment core.

Usage:
    from salonbook.lib.metrics import get_metrics_collector

    metrics = get_metrics_collector()
    metrics.increment_bookings_created(payment_percentage=50)
    metrics.increment_payment_events(kind="CAPTURED", source="WEBHOOK", outcome="applied")

    # Export for Prometheus
    prometheus_output = metrics.export_prometheus()
"""

from typing import Dict, Tuple
from threading import Lock


LabelKey = Tuple[Tuple[str, str], ...]


class MetricsCollector:
    """
    Prometheus-style metrics collector.

    Counters:
    - bookings_created_total: Reservations committed (labels: payment_percentage)
    - booking_conflicts_total: Reservations rejected because the slot was taken
    - payment_events_total: Reconciled payment events (labels: kind, source, outcome)
    - payouts_total: Owner payout attempts (labels: status)

    Thread-safe for concurrent increments.
    """

    HELP_TEXTS = {
        "bookings_created_total": "Total number of bookings reserved",
        "booking_conflicts_total": "Total number of reservations rejected for an overlapping slot",
        "payment_events_total": "Total number of payment events processed",
        "payouts_total": "Total number of owner payout attempts",
    }

    def __init__(self):
        self._lock = Lock()
        self._counters: Dict[Tuple[str, LabelKey], int] = {}

    def _get_counter_key(self, metric_name: str, labels: Dict[str, str]) -> Tuple[str, LabelKey]:
        return (metric_name, tuple(sorted(labels.items())))

    def _increment(self, metric_name: str, labels: Dict[str, str], amount: int = 1):
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    # ===== Booking Metrics =====

    def increment_bookings_created(self, payment_percentage: int, amount: int = 1):
        self._increment(
            "bookings_created_total",
            {"payment_percentage": str(payment_percentage)},
            amount,
        )

    def increment_booking_conflicts(self, amount: int = 1):
        self._increment("booking_conflicts_total", {}, amount)

    # ===== Payment Metrics =====

    def increment_payment_events(self, kind: str, source: str, outcome: str, amount: int = 1):
        """
        Count one processed payment event.

        Args:
            kind: CAPTURED, FAILED, REFUNDED, REFUND_FAILED
            source: WEBHOOK, CLIENT, DIRECT
            outcome: applied, duplicate, ignored
            amount: Increment amount (default 1)
        """
        labels = {
            "kind": kind.upper(),
            "source": source.upper(),
            "outcome": outcome.lower(),
        }
        self._increment("payment_events_total", labels, amount)

    def increment_payouts(self, status: str, amount: int = 1):
        self._increment("payouts_total", {"status": status.upper()}, amount)

    # ===== Export =====

    def export_prometheus(self) -> str:
        """
        Export all metrics in Prometheus text format.

        Returns:
            Prometheus-compatible text output
        """
        output_lines = []

        metrics_by_name: Dict[str, list] = {}
        with self._lock:
            for (metric_name, labels_tuple), value in self._counters.items():
                metrics_by_name.setdefault(metric_name, []).append((dict(labels_tuple), value))

        for metric_name in sorted(metrics_by_name.keys()):
            help_text = self.HELP_TEXTS.get(metric_name, "Counter metric")
            output_lines.append(f"# HELP {metric_name} {help_text}")
            output_lines.append(f"# TYPE {metric_name} counter")

            for labels_dict, value in sorted(metrics_by_name[metric_name], key=lambda x: str(x[0])):
                if labels_dict:
                    labels_str = ",".join(f'{k}="{v}"' for k, v in sorted(labels_dict.items()))
                    output_lines.append(f"{metric_name}{{{labels_str}}} {value}")
                else:
                    output_lines.append(f"{metric_name} {value}")

            output_lines.append("")

        return "\n".join(output_lines)

    def get_counter_value(self, metric_name: str, labels: Dict[str, str]) -> int:
        """Get current value of a specific counter."""
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            return self._counters.get(key, 0)

    def reset_all(self):
        """Reset all counters (for testing)."""
        with self._lock:
            self._counters.clear()


# Global singleton instance
_metrics_collector: MetricsCollector | None = None
_metrics_lock = Lock()


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector singleton."""
    global _metrics_collector
    if _metrics_collector is None:
        with _metrics_lock:
            if _metrics_collector is None:
                _metrics_collector = MetricsCollector()
    return _metrics_collector


def reset_metrics():
    """Reset global metrics collector (for testing)."""
    with _metrics_lock:
        if _metrics_collector is not None:
            _metrics_collector.reset_all()
