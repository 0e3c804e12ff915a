"""
Append-only tenant credit ledger.

The balance is the sum of earned credit minus spent and expired credit.
Earned entries stop counting once past ``expires_at`` until the expiry
sweep converts them into ``expired`` entries, after which they count again
together with the offsetting entry. Either way the balance is the same and
never negative.
"""

from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal

import structlog

from codesolve.platform.billing.credits.models import (
    CreditReferenceType,
    CreditSummary,
    CreditTransaction,
    CreditTransactionType,
)
from codesolve.platform.billing.exceptions import InsufficientCreditError, InvalidCreditAmountError
from codesolve.platform.billing.money_utils import ZERO, round_amount, to_decimal
from codesolve.platform.billing.repository import BillingRepository
from codesolve.platform.billing.time_utils import utcnow

logger = structlog.get_logger(__name__)


def _swept_ids(transactions: list[CreditTransaction]) -> set[str]:
    return {
        tx.source_reference
        for tx in transactions
        if tx.type == CreditTransactionType.EXPIRED and tx.source_reference
    }


def _raw_balance(transactions: list[CreditTransaction], now: datetime) -> Decimal:
    swept = _swept_ids(transactions)
    total = ZERO
    for tx in transactions:
        if tx.type == CreditTransactionType.EARNED:
            live = tx.expires_at is None or tx.expires_at > now
            if live or tx.id in swept:
                total += tx.amount
        else:
            total -= tx.amount
    return total


def compute_balance(transactions: list[CreditTransaction], now: datetime) -> Decimal:
    """Balance of a tenant's transactions at ``now``."""
    return max(ZERO, _raw_balance(transactions, now))


class CreditLedger:
    """Credit ledger backed by a ``BillingRepository``.

    Callers serialize writes per tenant; the ledger itself does not lock.
    """

    def __init__(
        self,
        repository: BillingRepository,
        clock: Callable[[], datetime] = utcnow,
        expiry_days: int = 365,
        currency: str = "BRL",
    ) -> None:
        self.repository = repository
        self._clock = clock
        self.expiry_days = expiry_days
        self.currency = currency

    async def transactions(self, tenant_id: str) -> list[CreditTransaction]:
        return await self.repository.list_credit_transactions(tenant_id)

    async def balance(self, tenant_id: str, now: datetime | None = None) -> Decimal:
        transactions = await self.repository.list_credit_transactions(tenant_id)
        return compute_balance(transactions, now or self._clock())

    def _validate_amount(self, amount: Decimal | int | str) -> Decimal:
        value = round_amount(to_decimal(amount), self.currency)
        if value <= ZERO:
            raise InvalidCreditAmountError("Credit amount must be greater than zero", amount=amount)
        return value

    async def earn(
        self,
        tenant_id: str,
        amount: Decimal | int | str,
        reason: str,
        source_reference: str | None = None,
        expires_at: datetime | None = None,
        reference_type: CreditReferenceType = CreditReferenceType.PLAN_CHANGE,
    ) -> CreditTransaction:
        """Append an ``earned`` entry. Expiry defaults to ``expiry_days`` from now."""
        value = self._validate_amount(amount)
        now = self._clock()
        before = await self.balance(tenant_id, now)

        transaction = CreditTransaction(
            tenant_id=tenant_id,
            type=CreditTransactionType.EARNED,
            amount=value,
            reason=reason,
            source_reference=source_reference,
            reference_type=reference_type,
            balance_before=before,
            balance_after=before + value,
            created_at=now,
            expires_at=expires_at or now + timedelta(days=self.expiry_days),
        )
        await self.repository.add_credit_transaction(transaction)

        logger.info(
            "Credits earned",
            tenant_id=tenant_id,
            amount=str(value),
            balance=str(transaction.balance_after),
            source_reference=source_reference,
        )
        return transaction

    async def spend(
        self,
        tenant_id: str,
        amount: Decimal | int | str,
        reason: str,
        source_reference: str | None = None,
        reference_type: CreditReferenceType = CreditReferenceType.PLAN_CHANGE,
    ) -> CreditTransaction:
        """Append a ``spent`` entry, refusing to take the balance below zero."""
        value = self._validate_amount(amount)
        now = self._clock()
        before = await self.balance(tenant_id, now)

        if value > before:
            raise InsufficientCreditError(
                f"Insufficient credit: requested {value}, available {before}",
                tenant_id=tenant_id,
                requested=value,
                available=before,
            )

        transaction = CreditTransaction(
            tenant_id=tenant_id,
            type=CreditTransactionType.SPENT,
            amount=value,
            reason=reason,
            source_reference=source_reference,
            reference_type=reference_type,
            balance_before=before,
            balance_after=before - value,
            created_at=now,
        )
        await self.repository.add_credit_transaction(transaction)

        logger.info(
            "Credits spent",
            tenant_id=tenant_id,
            amount=str(value),
            balance=str(transaction.balance_after),
            source_reference=source_reference,
        )
        return transaction

    async def expiring_credits(
        self, tenant_id: str, now: datetime | None = None
    ) -> list[CreditTransaction]:
        """Earned entries past their expiry that the sweep has not converted yet."""
        now = now or self._clock()
        transactions = await self.repository.list_credit_transactions(tenant_id)
        swept = _swept_ids(transactions)
        return [
            tx
            for tx in transactions
            if tx.type == CreditTransactionType.EARNED
            and tx.expires_at is not None
            and tx.expires_at <= now
            and tx.id not in swept
        ]

    async def expire_credits(
        self, tenant_id: str, now: datetime | None = None
    ) -> list[CreditTransaction]:
        """
        Convert lapsed earned entries into ``expired`` entries.

        Each expired entry only removes what is still outstanding of the
        earned one, so running the sweep never changes the balance.
        """
        now = now or self._clock()
        transactions = await self.repository.list_credit_transactions(tenant_id)
        lapsed = await self.expiring_credits(tenant_id, now)

        created: list[CreditTransaction] = []
        for earned in sorted(lapsed, key=lambda tx: tx.expires_at or now):
            before = compute_balance(transactions, now)
            # Balance as it would be with this entry counted again
            counted = _raw_balance(transactions, now) + earned.amount
            outstanding = min(earned.amount, max(ZERO, counted))

            if outstanding > ZERO:
                entry = CreditTransaction(
                    tenant_id=tenant_id,
                    type=CreditTransactionType.EXPIRED,
                    amount=outstanding,
                    reason=f"Credit expired: {earned.reason}",
                    source_reference=earned.id,
                    reference_type=CreditReferenceType.EXPIRY,
                    balance_before=before,
                    balance_after=before,
                    created_at=now,
                )
                await self.repository.add_credit_transaction(entry)
                transactions.append(entry)
                created.append(entry)

        if created:
            logger.info(
                "Expired credits swept",
                tenant_id=tenant_id,
                entries=len(created),
                amount=str(sum((tx.amount for tx in created), ZERO)),
            )
        return created

    async def summary(
        self, tenant_id: str, warning_days: int = 30, now: datetime | None = None
    ) -> CreditSummary:
        now = now or self._clock()
        transactions = await self.repository.list_credit_transactions(tenant_id)

        def total(kind: CreditTransactionType) -> Decimal:
            return sum((tx.amount for tx in transactions if tx.type == kind), ZERO)

        horizon = now + timedelta(days=warning_days)
        live_earned = [
            tx
            for tx in transactions
            if tx.type == CreditTransactionType.EARNED
            and tx.expires_at is not None
            and now < tx.expires_at <= horizon
        ]
        balance = compute_balance(transactions, now)
        expiring = min(balance, sum((tx.amount for tx in live_earned), ZERO))

        return CreditSummary(
            tenant_id=tenant_id,
            balance=balance,
            total_earned=total(CreditTransactionType.EARNED),
            total_spent=total(CreditTransactionType.SPENT),
            total_expired=total(CreditTransactionType.EXPIRED),
            expiring_soon=expiring,
            next_expiry=min((tx.expires_at for tx in live_earned if tx.expires_at), default=None),
        )
