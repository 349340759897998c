# portfolio_accounting/services/valuation/fifo.py
"""
FIFO lot matching.

Every BUY opens a lot. Every SELL consumes the oldest open lots first and
produces one ClosedLot per lot it touches.

Commission allocation:
    A lot's commission follows its quantity. When part of a lot is sold,
    the consumed part takes

        lot.commission_remaining × consumed / lot.quantity_remaining

    and the rest stays with the open remainder. A SELL's commission is
    spread over the ClosedLots it produces in proportion to the matched
    quantity; the last piece takes whatever is left so the pieces add up
    exactly to the SELL commission.

Ordering:
    Transactions are sorted by date. Same-day transactions keep the caller's
    order, unless every transaction carries created_at, in which case
    created_at breaks the tie.

Design Principles:
- Pure: input sequence is not mutated
- Decimal throughout, no intermediate rounding
- A SELL with no open lot behind it is an error, never a negative position
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Sequence

from portfolio_accounting.models import Transaction, TransactionType
from portfolio_accounting.services.constants import ZERO
from portfolio_accounting.services.exceptions import (
    InventoryInconsistencyError,
    ValidationError,
)
from portfolio_accounting.services.valuation.types import (
    ClosedLot,
    FIFOResult,
    OpenLot,
)

logger = logging.getLogger(__name__)


@dataclass
class _InventoryLot:
    """Mutable working copy of an open lot."""

    transaction_id: str
    date: date
    price: Decimal
    quantity: Decimal
    commission: Decimal
    original_quantity: Decimal

    def freeze(self) -> OpenLot:
        return OpenLot(
            transaction_id=self.transaction_id,
            date=self.date,
            quantity=self.quantity,
            price=self.price,
            commission=self.commission,
            original_quantity=self.original_quantity,
        )


def order_transactions(transactions: Sequence[Transaction]) -> list[Transaction]:
    """
    Matching order: by date, ties kept in input order.

    created_at breaks same-day ties only when every transaction has one;
    a partial set of timestamps would make the order depend on which rows
    happen to carry them.
    """
    if transactions and all(t.created_at is not None for t in transactions):
        return sorted(transactions, key=lambda t: (t.date, t.created_at))
    return sorted(transactions, key=lambda t: t.date)


class FIFOLotMatcher:
    """
    Matches SELLs against BUYs in first-in, first-out order.

    Stateless: one instance can serve any number of instruments.

    Example:
        result = FIFOLotMatcher().match(transactions, instrument_id="inst-1")
        result.open_quantity      # units still held
        result.realized_gain      # sum of closed-lot gains
    """

    def match(
            self,
            transactions: Sequence[Transaction],
            instrument_id: str | None = None,
    ) -> FIFOResult:
        """
        Run FIFO matching over one instrument's transactions.

        Args:
            transactions: BUY/SELL records of a single instrument, any order.
                          Amounts must already be in one currency.
            instrument_id: Used in error messages only

        Returns:
            FIFOResult with open lots (oldest first) and closed lots
            (in the order they were closed)

        Raises:
            ValidationError: A quantity is not positive or a commission is
                             negative
            InventoryInconsistencyError: A SELL exceeds the open quantity
        """
        queue: deque[_InventoryLot] = deque()
        closed: list[ClosedLot] = []

        for txn in order_transactions(transactions):
            self._validate(txn)

            if txn.type == TransactionType.BUY:
                queue.append(
                    _InventoryLot(
                        transaction_id=txn.id,
                        date=txn.date,
                        price=txn.price,
                        quantity=txn.quantity,
                        commission=txn.commission,
                        original_quantity=txn.quantity,
                    )
                )
            else:
                closed.extend(self._consume(queue, txn, instrument_id))

        result = FIFOResult(
            open_lots=tuple(lot.freeze() for lot in queue),
            closed_lots=tuple(closed),
        )

        logger.debug(
            f"FIFO {instrument_id or '<unknown>'}: {len(result.open_lots)} open lots, "
            f"{len(result.closed_lots)} closed lots, open quantity {result.open_quantity}"
        )

        return result

    # =========================================================================
    # PRIVATE HELPERS
    # =========================================================================

    @staticmethod
    def _validate(txn: Transaction) -> None:
        if txn.quantity <= ZERO:
            raise ValidationError(
                f"Transaction {txn.id} quantity must be positive, got {txn.quantity}",
                field="quantity",
            )
        if txn.commission < ZERO:
            raise ValidationError(
                f"Transaction {txn.id} commission cannot be negative, got {txn.commission}",
                field="commission",
            )

    @staticmethod
    def _consume(
            queue: deque[_InventoryLot],
            sell: Transaction,
            instrument_id: str | None,
    ) -> list[ClosedLot]:
        """Consume open lots for one SELL (mutates queue)."""
        closed: list[ClosedLot] = []
        remaining = sell.quantity
        sell_commission_left = sell.commission

        while remaining > ZERO and queue:
            lot = queue[0]
            consumed = min(remaining, lot.quantity)

            if consumed == lot.quantity:
                buy_commission = lot.commission
                queue.popleft()
            else:
                buy_commission = lot.commission * consumed / lot.quantity
                lot.quantity -= consumed
                lot.commission -= buy_commission

            remaining -= consumed

            if remaining == ZERO:
                sell_commission = sell_commission_left
            else:
                sell_commission = sell.commission * consumed / sell.quantity
                sell_commission_left -= sell_commission

            closed.append(
                ClosedLot(
                    buy_transaction_id=lot.transaction_id,
                    sell_transaction_id=sell.id,
                    buy_date=lot.date,
                    sell_date=sell.date,
                    quantity=consumed,
                    buy_price=lot.price,
                    buy_commission=buy_commission,
                    sell_price=sell.price,
                    sell_commission=sell_commission,
                )
            )

        if remaining > ZERO:
            raise InventoryInconsistencyError(
                instrument_id=instrument_id,
                transaction_id=sell.id,
                requested_quantity=sell.quantity,
                unmatched_quantity=remaining,
            )

        return closed
