"""Settlement Observability Metrics.

Metrics are collected from the ledger tables, so any process with database
access reports the same numbers.

Metric Categories:
- Ledger metrics: records by status, credited sessions, credits granted
- Health indicators: verified-but-uncredited rows, stale pending rows,
  credited rows without an audit entry, negative balances

Usage:
    collector = MetricsCollector(session)
    metrics = collector.collect_all()

    # For Prometheus export
    print(metrics.to_prometheus())

    # For JSON export
    print(metrics.to_json())
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from settlement_engine.models import CurrencyTransaction, PaymentRecord, Profile
from settlement_engine.payments.services.creditor import CREDIT_KIND

payment_record = PaymentRecord.__table__
profile = Profile.__table__
currency_transaction = CurrencyTransaction.__table__


@dataclass
class Counter:
    """A counter metric (monotonically increasing)."""

    name: str
    value: int
    labels: dict[str, str] = field(default_factory=dict)
    help_text: str = ""


@dataclass
class Gauge:
    """A gauge metric (can go up or down)."""

    name: str
    value: float | int
    labels: dict[str, str] = field(default_factory=dict)
    help_text: str = ""


@dataclass
class SettlementMetrics:
    """Collection of all settlement metrics."""

    # Ledger metrics
    records_by_status: list[Counter]
    sessions_credited: Counter
    credits_granted: Counter
    audit_entries: Counter

    # Health indicators
    verified_uncredited: Gauge
    stale_pending: Gauge
    credited_without_audit: Gauge
    negative_balances: Gauge

    collected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def metrics(self) -> list[Counter | Gauge]:
        """Flat list of every metric."""
        result: list[Counter | Gauge] = []
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, list):
                result.extend(value)
            elif isinstance(value, (Counter, Gauge)):
                result.append(value)
        return result

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = {"collected_at": self.collected_at.isoformat()}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, list):
                result[f.name] = [self._metric_to_dict(m) for m in value]
            elif isinstance(value, (Counter, Gauge)):
                result[f.name] = self._metric_to_dict(value)
        return result

    @staticmethod
    def _metric_to_dict(metric: Counter | Gauge) -> dict[str, Any]:
        return {
            "name": metric.name,
            "value": metric.value,
            "labels": metric.labels,
            "help": metric.help_text,
        }

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    def to_prometheus(self) -> str:
        """Convert to Prometheus text format."""
        lines: list[str] = []
        described: set[str] = set()

        for metric in self.metrics():
            if metric.name not in described:
                if metric.help_text:
                    lines.append(f"# HELP {metric.name} {metric.help_text}")
                metric_type = "counter" if isinstance(metric, Counter) else "gauge"
                lines.append(f"# TYPE {metric.name} {metric_type}")
                described.add(metric.name)

            labels = ""
            if metric.labels:
                label_parts = [f'{k}="{v}"' for k, v in metric.labels.items()]
                labels = "{" + ",".join(label_parts) + "}"
            lines.append(f"{metric.name}{labels} {metric.value}")

        return "\n".join(lines)


class MetricsCollector:
    """Collects metrics from database."""

    def __init__(self, session: Session, stale_after: timedelta = timedelta(hours=1)) -> None:
        self._session = session
        self._stale_after = stale_after

    def collect_all(self) -> SettlementMetrics:
        """Collect all metrics."""
        return SettlementMetrics(
            records_by_status=self._count_records_by_status(),
            sessions_credited=self._count_credited(),
            credits_granted=self._sum_credits(),
            audit_entries=self._count_audit_entries(),
            verified_uncredited=self._gauge_verified_uncredited(),
            stale_pending=self._gauge_stale_pending(),
            credited_without_audit=self._gauge_credited_without_audit(),
            negative_balances=self._gauge_negative_balances(),
        )

    def _scalar(self, stmt: Any) -> int:
        return self._session.execute(stmt).scalar() or 0

    def _count_records_by_status(self) -> list[Counter]:
        rows = self._session.execute(
            select(payment_record.c.status, func.count())
            .group_by(payment_record.c.status)
            .order_by(payment_record.c.status)
        ).all()
        return [
            Counter(
                name="settlement_payment_records_total",
                value=count,
                labels={"status": status},
                help_text="Payment records by status",
            )
            for status, count in rows
        ]

    def _count_credited(self) -> Counter:
        return Counter(
            name="settlement_sessions_credited_total",
            value=self._scalar(
                select(func.count()).select_from(payment_record).where(payment_record.c.credited.is_(True))
            ),
            help_text="Checkout sessions credited",
        )

    def _sum_credits(self) -> Counter:
        return Counter(
            name="settlement_credits_granted_total",
            value=self._scalar(
                select(func.coalesce(func.sum(payment_record.c.credit_amount), 0)).where(
                    payment_record.c.credited.is_(True)
                )
            ),
            help_text="Currency granted by credited sessions",
        )

    def _count_audit_entries(self) -> Counter:
        return Counter(
            name="settlement_audit_entries_total",
            value=self._scalar(
                select(func.count())
                .select_from(currency_transaction)
                .where(currency_transaction.c.kind == CREDIT_KIND)
            ),
            help_text="Payment credit audit entries",
        )

    def _gauge_verified_uncredited(self) -> Gauge:
        return Gauge(
            name="settlement_verified_uncredited",
            value=self._scalar(
                select(func.count())
                .select_from(payment_record)
                .where(
                    payment_record.c.provider_verified.is_(True),
                    payment_record.c.credited.is_(False),
                )
            ),
            help_text="Provider-confirmed sessions awaiting credit",
        )

    def _gauge_stale_pending(self) -> Gauge:
        cutoff = datetime.now(timezone.utc) - self._stale_after
        return Gauge(
            name="settlement_stale_pending",
            value=self._scalar(
                select(func.count())
                .select_from(payment_record)
                .where(
                    payment_record.c.status == "pending",
                    payment_record.c.created_at < cutoff,
                )
            ),
            help_text="Pending records older than the stale threshold",
        )

    def _gauge_credited_without_audit(self) -> Gauge:
        audit_join = payment_record.outerjoin(
            currency_transaction,
            and_(
                currency_transaction.c.reference == payment_record.c.session_id,
                currency_transaction.c.kind == CREDIT_KIND,
            ),
        )
        return Gauge(
            name="settlement_credited_without_audit",
            value=self._scalar(
                select(func.count())
                .select_from(audit_join)
                .where(
                    payment_record.c.credited.is_(True),
                    currency_transaction.c.currency_transaction_id.is_(None),
                )
            ),
            help_text="Credited sessions missing an audit entry (must be 0)",
        )

    def _gauge_negative_balances(self) -> Gauge:
        return Gauge(
            name="settlement_negative_balances",
            value=self._scalar(
                select(func.count()).select_from(profile).where(profile.c.currency_balance < 0)
            ),
            help_text="Profiles with a negative balance (must be 0)",
        )
