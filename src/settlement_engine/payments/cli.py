"""Settlement Command Line Interface.

Provides operational tools for:
- Scheduled reconciliation sweeps
- Session inspection (ledger row and provider truth)
- Balance queries
- Metrics emission
- Health checks
- Schema creation

Usage:
    settlement-cli sweep --limit 500
    settlement-cli inspect-session --session-id cs_live_...
    settlement-cli balance --user-id X
    settlement-cli metrics --format prometheus
    settlement-cli health
    settlement-cli init-db
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from typing import Any, Callable

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from settlement_engine.config import get_settings
from settlement_engine.database import create_schema, init_db
from settlement_engine.payments.errors import Rejection
from settlement_engine.payments.metrics import MetricsCollector
from settlement_engine.payments.services.payment_ledger import PaymentLedger
from settlement_engine.payments.settlement import Settlement

logger = logging.getLogger(__name__)


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


class SettlementCli:
    """Settlement Command Line Interface.

    The facade and session factory are built from settings on first use
    unless injected.
    """

    def __init__(
        self,
        settlement: Settlement | None = None,
        session_factory: sessionmaker[Session] | None = None,
    ) -> None:
        self.parser = self._build_parser()
        self._settlement = settlement
        self._session_factory = session_factory or (settlement.session_factory if settlement else None)

    @property
    def session_factory(self) -> sessionmaker[Session]:
        if self._session_factory is None:
            _, self._session_factory = init_db()
        return self._session_factory

    @property
    def settlement(self) -> Settlement:
        if self._settlement is None:
            self._settlement = Settlement.from_settings(get_settings(), self.session_factory)
        return self._settlement

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="settlement-cli",
            description="Settlement operational tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        sweep = subparsers.add_parser(
            "sweep",
            help="Credit every provider-confirmed but uncredited session",
        )
        sweep.add_argument(
            "--limit",
            type=int,
            default=None,
            help="Maximum uncredited rows to examine (default: configured batch size)",
        )
        sweep.add_argument(
            "--json",
            action="store_true",
            help="Print the result as JSON",
        )

        inspect = subparsers.add_parser(
            "inspect-session",
            help="Show the ledger row for a session and what the provider reports",
        )
        inspect.add_argument(
            "--session-id",
            type=str,
            required=True,
            help="Provider checkout session id",
        )
        inspect.add_argument(
            "--no-provider",
            action="store_true",
            help="Only show the ledger row",
        )

        balance = subparsers.add_parser(
            "balance",
            help="Show a user's currency balance",
        )
        balance.add_argument(
            "--user-id",
            type=str,
            required=True,
            help="User to query",
        )

        metrics = subparsers.add_parser(
            "metrics",
            help="Emit settlement metrics",
        )
        metrics.add_argument(
            "--format",
            choices=["prometheus", "json"],
            default="prometheus",
            help="Output format (default: prometheus)",
        )

        subparsers.add_parser(
            "health",
            help="Check database connectivity",
        )

        subparsers.add_parser(
            "init-db",
            help="Create settlement tables if missing",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        handlers: dict[str, Callable[..., int]] = {
            "sweep": self._cmd_sweep,
            "inspect-session": self._cmd_inspect_session,
            "balance": self._cmd_balance,
            "metrics": self._cmd_metrics,
            "health": self._cmd_health,
            "init-db": self._cmd_init_db,
        }

        handler = handlers.get(parsed.command)
        if handler:
            return handler(parsed)

        print(f"Unknown command: {parsed.command}", file=sys.stderr)
        return 1

    def _cmd_sweep(self, args: argparse.Namespace) -> int:
        """Run a global reconciliation sweep."""
        result = self.settlement.sweep(args.limit)

        if args.json:
            print(json.dumps(_to_jsonable(asdict(result)), indent=2))
        else:
            print("Reconciliation sweep")
            print("=" * 40)
            print(f"  Examined:          {result.examined}")
            print(f"  Credited:          {result.processed_count}")
            print(f"  Total credits:     {result.total_credits}")
            print(f"  Already credited:  {result.already_credited}")
            print(f"  Failures:          {len(result.failures)}")
            for failure in result.failures:
                print(f"    - {failure.get('session_id', '-')}: {failure['code']} {failure['message']}")

        return 0 if result.success else 2

    def _cmd_inspect_session(self, args: argparse.Namespace) -> int:
        """Show ledger and provider state for one session."""
        with self.session_factory() as db:
            record = PaymentLedger(db).get(args.session_id)

        print(f"Session: {args.session_id}")
        print("\n  Ledger:")
        if record is None:
            print("    (no record)")
        else:
            for key, value in asdict(record).items():
                print(f"    {key}: {value}")

        if args.no_provider:
            return 0 if record else 1

        print("\n  Provider:")
        verifier = self.settlement.verifier
        try:
            truth = verifier.fetch(verifier.check_shape(args.session_id))
        except Rejection as e:
            print(f"    unavailable: {e.kind.value} ({e.detail})")
            return 1

        print(f"    payment_captured: {truth.payment_captured}")
        print(f"    session_closed: {truth.session_closed}")
        print(f"    amount_total: {truth.amount_total}")
        print(f"    metadata: {truth.metadata}")
        try:
            verified = verifier.evaluate(truth, None)
        except Rejection as e:
            print(f"\n  Verdict: rejected ({e.kind.value}: {e.detail})")
        else:
            print(f"\n  Verdict: settleable for {verified.credit_amount} to user {verified.user_id}")
        return 0

    def _cmd_balance(self, args: argparse.Namespace) -> int:
        """Query a user's balance."""
        balance = self.settlement.get_balance(args.user_id)
        print(f"Balance for user: {args.user_id}")
        print(f"\n  Paw Dollars: {balance:>12,}")
        return 0

    def _cmd_metrics(self, args: argparse.Namespace) -> int:
        """Emit metrics."""
        with self.session_factory() as db:
            metrics = MetricsCollector(db).collect_all()

        if args.format == "json":
            print(metrics.to_json())
        else:
            print(metrics.to_prometheus())
        return 0

    def _cmd_health(self, args: argparse.Namespace) -> int:
        """Check database health."""
        print("Settlement Health Check")
        print("=" * 40)
        try:
            with self.session_factory() as db:
                db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            print(f"\ndb: FAIL\n  error: {e}")
            return 1
        print("\ndb: OK")
        return 0

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create tables."""
        engine = self.session_factory.kw["bind"]
        create_schema(engine)
        print("Schema created.")
        return 0


def main() -> int:
    """CLI entry point."""
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cli = SettlementCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
