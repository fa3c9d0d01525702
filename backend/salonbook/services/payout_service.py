"""Owner payouts.

Collects each owner's unsettled ledger entries (captures minus refunds across
all their stores) and sends the net amount to the owner's fund account.
Entries are marked PAID_OUT only when the gateway accepts the payout; a
failed payout leaves them pending for the next run.
"""
from collections import defaultdict
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from salonbook.api.middleware.error_handler import GatewayException
from salonbook.lib.logging import get_logger
from salonbook.lib.metrics import get_metrics_collector
from salonbook.lib.request_context import Actor
from salonbook.lib.settings import settings
from salonbook.models.bookings import Booking
from salonbook.models.payment_events import PaymentEvent, PaymentEventKind, SettlementStatus
from salonbook.models.payouts import OwnerPayout, PayoutStatus
from salonbook.models.stores import Store
from salonbook.models.users import User
from salonbook.services.payment_gateway import PaymentGateway, get_payment_gateway

logger = get_logger(__name__)


class PayoutService:
    def __init__(self, session: Session, gateway: Optional[PaymentGateway] = None):
        self.session = session
        self.gateway = gateway or get_payment_gateway()
        self.metrics = get_metrics_collector()

    def pending_entries_by_owner(self) -> Dict[UUID, List[PaymentEvent]]:
        rows = self.session.execute(
            select(PaymentEvent, Store.owner_id)
            .join(Booking, PaymentEvent.booking_id == Booking.id)
            .join(Store, Booking.store_id == Store.id)
            .where(PaymentEvent.payout_status == SettlementStatus.PENDING)
            .order_by(PaymentEvent.created_at)
        ).all()
        grouped: Dict[UUID, List[PaymentEvent]] = defaultdict(list)
        for entry, owner_id in rows:
            grouped[owner_id].append(entry)
        return grouped

    @staticmethod
    def net_amount(entries: List[PaymentEvent]) -> Decimal:
        total = Decimal("0")
        for entry in entries:
            if entry.kind == PaymentEventKind.CAPTURED:
                total += Decimal(entry.amount)
            elif entry.kind == PaymentEventKind.REFUNDED:
                total -= Decimal(entry.amount)
        return total

    def run_owner_payouts(self) -> List[OwnerPayout]:
        """Pay out every owner with a positive pending balance.

        Returns:
            Payout records created in this run (processed and failed)
        """
        grouped = self.pending_entries_by_owner()
        self.session.commit()

        results: List[OwnerPayout] = []
        for owner_id, entries in grouped.items():
            payout = self._pay_owner(owner_id, entries)
            if payout is not None:
                results.append(payout)

        logger.info(
            "Owner payout run finished",
            extra={
                "owners_pending": len(grouped),
                "processed": sum(1 for p in results if p.status == PayoutStatus.PROCESSED),
                "failed": sum(1 for p in results if p.status == PayoutStatus.FAILED),
            },
        )
        return results

    def _pay_owner(self, owner_id: UUID, entries: List[PaymentEvent]) -> Optional[OwnerPayout]:
        owner = self.session.get(User, owner_id)
        if owner is None or not owner.fund_account_id:
            logger.info("Owner has no fund account, skipping payout", extra={"owner_id": str(owner_id)})
            self.session.commit()
            return None

        amount = self.net_amount(entries)
        if amount <= 0:
            logger.info(
                "No positive balance to pay out",
                extra={"owner_id": str(owner_id), "net_amount": str(amount)},
            )
            self.session.commit()
            return None

        payout = OwnerPayout(owner_id=owner_id, amount=amount, currency=settings.currency)
        try:
            self.session.add(payout)
            self.session.flush()
            try:
                response = self.gateway.create_payout(
                    owner.fund_account_id, amount, settings.currency, reference_id=str(payout.id)
                )
            except GatewayException as exc:
                payout.status = PayoutStatus.FAILED
                payout.failure_reason = exc.message
                logger.error(
                    "Owner payout failed",
                    extra={"owner_id": str(owner_id), "amount": str(amount), "error": exc.message},
                )
            else:
                payout.status = PayoutStatus.PROCESSED
                payout.gateway_payout_id = response.get("id")
                for entry in entries:
                    entry.payout_status = SettlementStatus.PAID_OUT
                    entry.payout_id = payout.id
                logger.info(
                    "Owner payout processed",
                    extra={
                        "owner_id": str(owner_id),
                        "amount": str(amount),
                        "gateway_payout_id": payout.gateway_payout_id,
                        "entries": len(entries),
                    },
                )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.metrics.increment_payouts(payout.status.value)
        return payout

    def list_payouts(self, actor: Actor) -> List[OwnerPayout]:
        stmt = select(OwnerPayout).order_by(OwnerPayout.created_at.desc())
        if not actor.is_admin:
            stmt = stmt.where(OwnerPayout.owner_id == actor.user_id)
        return list(self.session.execute(stmt).scalars())
