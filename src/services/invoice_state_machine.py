"""Rent invoice status transitions, late fees and the overdue sweep.

Legal moves::

    draft/pending -> sent | paid | overdue | cancelled
    sent          -> paid | overdue | cancelled
    overdue       -> paid | cancelled
    paid, cancelled: terminal

Each transition is one atomic read-validate-write: the row is re-read (with
a row lock where the database supports it), checked against the table
above, changed and committed. The invoice's ``version_id`` makes a
concurrent writer's commit fail with StaleDataError; the transition is then
retried against the fresh row, so a lost race surfaces as InvalidTransition
instead of a lost update.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Awaitable, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from src.models.money import Money
from src.models.rent_invoice import InvoiceStatus, PaymentDetails, RentInvoice
from src.services.audit_service import InvoiceAuditTrail
from src.services.errors import ConcurrentModification, InvalidTransition, InvoiceError
from src.services.invoice_repository import InvoiceRepository
from src.services.payment_recorder import PaymentRecorder

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset(
        {InvoiceStatus.SENT, InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED}
    ),
    InvoiceStatus.PENDING: frozenset(
        {InvoiceStatus.SENT, InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED}
    ),
    InvoiceStatus.SENT: frozenset(
        {InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED}
    ),
    InvoiceStatus.OVERDUE: frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
}

LATE_FEE_ACTION = "late_fee"
NOTES_ACTION = "notes"

Mutation = Callable[[RentInvoice], Awaitable[None]]


def can_transition(current: InvoiceStatus, target: InvoiceStatus) -> bool:
    return InvoiceStatus(target) in ALLOWED_TRANSITIONS[InvoiceStatus(current)]


def calculate_late_fee(invoice: RentInvoice, as_of: date, daily_rate: Decimal | int) -> Money:
    """Late fee accrued by ``as_of``: whole days past due times ``daily_rate``.

    Zero on or before the due date. Paid and cancelled invoices keep the fee
    they had when they were closed.
    """
    if invoice.is_terminal:
        return invoice.late_fee_money
    days_overdue = max(0, (as_of - invoice.due_date).days)
    return Money(Decimal(daily_rate) * days_overdue, invoice.currency)


class InvoiceStateMachine:
    """Owns every status change of a rent invoice.

    Public methods return a detached, fully loaded snapshot of the invoice
    after the change has been committed.
    """

    MAX_ATTEMPTS = 3

    def __init__(
        self,
        session: AsyncSession,
        recorder: PaymentRecorder | None = None,
        repository: InvoiceRepository | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.session = session
        self.recorder = recorder or PaymentRecorder(session)
        self.repository = repository or InvoiceRepository(session)
        self.today = today

    async def mark_sent(self, invoice_id: int, actor_id: int | None = None) -> RentInvoice:
        """pending/draft -> sent. Delivery (email, PDF) is the caller's job."""
        return await self._apply(invoice_id, InvoiceStatus.SENT.value, actor_id, target=InvoiceStatus.SENT)

    async def mark_paid(
        self,
        invoice_id: int,
        details: PaymentDetails | None = None,
        actor_id: int | None = None,
        notes: str | None = None,
    ) -> RentInvoice:
        """pending/sent/overdue -> paid, emitting one ledger entry when details are given.

        Raises:
            InvalidTransition: invoice is already paid or cancelled
            MissingTenantSnapshot: payer name cannot be resolved (nothing changes)
            MissingCurrency: invoice currency is not configured (nothing changes)
        """

        async def pay(invoice: RentInvoice) -> None:
            paid_date = (details.payment_date if details else None) or self.today()
            if details is not None:
                await self.recorder.record(invoice, details, paid_date, created_by=actor_id)
            invoice.paid_date = paid_date
            invoice.payment_details = details.to_dict() if details is not None else None
            if notes:
                invoice.notes = notes

        return await self._apply(
            invoice_id, InvoiceStatus.PAID.value, actor_id, target=InvoiceStatus.PAID, mutate=pay
        )

    async def mark_overdue(
        self,
        invoice_id: int,
        actor_id: int | None = None,
        daily_late_fee: Decimal | None = None,
        as_of: date | None = None,
    ) -> RentInvoice:
        """pending/sent -> overdue; optionally stores the accrued late fee."""
        mutate = None
        if daily_late_fee is not None:
            mutate = self._late_fee_mutation(as_of or self.today(), daily_late_fee)
        return await self._apply(
            invoice_id,
            InvoiceStatus.OVERDUE.value,
            actor_id,
            target=InvoiceStatus.OVERDUE,
            mutate=mutate,
        )

    async def cancel(self, invoice_id: int, actor_id: int | None = None) -> RentInvoice:
        """Any non-terminal status -> cancelled."""
        return await self._apply(
            invoice_id, InvoiceStatus.CANCELLED.value, actor_id, target=InvoiceStatus.CANCELLED
        )

    async def apply_late_fee(
        self,
        invoice_id: int,
        daily_rate: Decimal,
        as_of: date | None = None,
        actor_id: int | None = None,
    ) -> RentInvoice:
        """Store the late fee accrued by ``as_of`` and recompute the total.

        Raises:
            InvalidTransition: invoice is paid or cancelled (its fee is frozen)
        """
        return await self._apply(
            invoice_id,
            LATE_FEE_ACTION,
            actor_id,
            mutate=self._late_fee_mutation(as_of or self.today(), daily_rate),
        )

    async def update_notes(
        self, invoice_id: int, notes: str | None, actor_id: int | None = None
    ) -> RentInvoice:
        """Replace the invoice notes; status is untouched.

        Raises:
            InvalidTransition: invoice is paid or cancelled
        """

        async def set_notes(invoice: RentInvoice) -> None:
            invoice.notes = notes

        return await self._apply(invoice_id, NOTES_ACTION, actor_id, mutate=set_notes)

    async def sweep_overdue(
        self,
        today: date | None = None,
        daily_late_fee: Decimal | None = None,
    ) -> list[RentInvoice]:
        """Mark every unpaid invoice past its due date as overdue.

        Best effort: a failure on one invoice is logged and the sweep moves on.

        Returns:
            Invoices moved to overdue by this sweep
        """
        today = today or self.today()
        candidate_ids = await self.repository.list_overdue_candidate_ids(today)
        logger.info("Overdue sweep for %s: %d candidates", today, len(candidate_ids))

        updated: list[RentInvoice] = []
        for invoice_id in candidate_ids:
            try:
                invoice = await self.mark_overdue(
                    invoice_id, daily_late_fee=daily_late_fee, as_of=today
                )
            except InvoiceError as e:
                logger.warning("Overdue sweep skipped invoice %d: %s", invoice_id, e.message)
                continue
            except SQLAlchemyError:
                logger.exception("Overdue sweep failed for invoice %d", invoice_id)
                await self.session.rollback()
                continue
            updated.append(invoice)

        logger.info("Overdue sweep for %s completed: %d marked overdue", today, len(updated))
        return updated

    def _late_fee_mutation(self, as_of: date, daily_rate: Decimal) -> Mutation:
        async def set_fee(invoice: RentInvoice) -> None:
            invoice.set_late_fee(calculate_late_fee(invoice, as_of, daily_rate))

        return set_fee

    async def _apply(
        self,
        invoice_id: int,
        action: str,
        actor_id: int | None,
        target: InvoiceStatus | None = None,
        mutate: Mutation | None = None,
    ) -> RentInvoice:
        """Read, validate, change and commit one invoice, retrying on version conflicts."""
        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            invoice = await self.repository.get_or_raise(invoice_id, for_update=True)
            current = InvoiceStatus(invoice.status)

            allowed = can_transition(current, target) if target else not current.is_terminal
            if not allowed:
                await self.session.rollback()
                logger.warning(
                    "Rejected %s on invoice %d: current status is %s",
                    action,
                    invoice_id,
                    current.value,
                )
                raise InvalidTransition(invoice_id, current.value, action)

            try:
                if mutate is not None:
                    await mutate(invoice)
                if target is not None:
                    invoice.status = target
                InvoiceAuditTrail(self.session).record(
                    invoice_id,
                    action,
                    actor_id,
                    {
                        "from": current.value,
                        "to": InvoiceStatus(invoice.status).value,
                        "late_fee": str(invoice.late_fee_money.amount),
                        "total_amount": str(invoice.total.amount),
                    },
                )
                await self.session.commit()
            except StaleDataError:
                await self.session.rollback()
                logger.warning(
                    "Invoice %d changed concurrently during %s (attempt %d/%d)",
                    invoice_id,
                    action,
                    attempt,
                    self.MAX_ATTEMPTS,
                )
                continue
            except Exception:
                await self.session.rollback()
                raise

            await self.session.refresh(invoice)
            self.session.expunge(invoice)
            logger.info(
                "Invoice %s (id=%d): %s -> %s via %s",
                invoice.invoice_number,
                invoice_id,
                current.value,
                InvoiceStatus(invoice.status).value,
                action,
            )
            return invoice

        raise ConcurrentModification(invoice_id)


__all__ = [
    "InvoiceStateMachine",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "calculate_late_fee",
]
