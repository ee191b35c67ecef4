# Overview: Warehouse-scoped stock counters with a floor of zero; the only mutation point for stock levels.

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from ..validation import to_decimal


logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class StockTransactionType(str, Enum):
    STOCK_INCREASE = "Stock Increase"
    STOCK_DECREASE = "Stock Decrease"
    TRANSFER_IN = "Transfer In"
    TRANSFER_OUT = "Transfer Out"
    GOODS_RECEIVED = "Goods Received"
    SALE = "Sale"
    SALE_REVERSAL = "Sale Reversal"


# Manual adjustment reasons, by direction
INCREASE_REASONS = (
    "Initial Stock Entry",
    "Stock Take Gain",
    "Goods Received (Manual)",
    "Other Increase",
)
DECREASE_REASONS = (
    "Stock Take Loss",
    "Damaged Goods",
    "Expired Goods",
    "Internal Consumption",
    "Promotion/Sample",
    "Other Decrease",
)


class StockError(ValueError):
    """Raised when a stock movement cannot be applied."""
    pass


class InvalidAdjustmentReason(StockError):
    pass


class InsufficientStockError(StockError):
    pass


def reason_direction(reason: str) -> int:
    """+1 for an increase reason, -1 for a decrease reason."""
    if reason in INCREASE_REASONS:
        return 1
    if reason in DECREASE_REASONS:
        return -1
    raise InvalidAdjustmentReason(
        f"Unknown adjustment reason {reason!r}. "
        f"Must be one of: {', '.join(INCREASE_REASONS + DECREASE_REASONS)}"
    )


def clamp_level(current: Decimal, delta: Decimal) -> Decimal:
    return max(ZERO, current + delta)


@dataclass(frozen=True)
class StockMovement:
    product_id: Any
    warehouse_id: Any
    transaction_type: StockTransactionType
    quantity_change: Decimal
    new_stock_level: Decimal
    reason: str | None = None
    reference: str | None = None


class StockLedger:
    """
    Key -> quantity map over (product_id, warehouse_id).

    adjust() owns the clamping rule; subclasses only load and store.
    quantity_change on the recorded movement is what was actually applied,
    which differs from the requested delta when a decrease hits zero.
    """

    def level(self, product_id, warehouse_id, *, for_update: bool = False) -> Decimal:
        return self._load_level(product_id, warehouse_id, for_update=for_update)

    def adjust(
        self,
        product_id,
        warehouse_id,
        delta: Any,
        *,
        transaction_type: StockTransactionType | str | None = None,
        reason: str | None = None,
        reference: str | None = None,
    ) -> Decimal:
        delta = to_decimal(delta, "delta")
        if transaction_type is None:
            transaction_type = (
                StockTransactionType.STOCK_INCREASE if delta >= 0 else StockTransactionType.STOCK_DECREASE
            )
        else:
            transaction_type = StockTransactionType(transaction_type)

        current = self._load_level(product_id, warehouse_id, for_update=True)
        new_level = clamp_level(current, delta)
        if new_level != current + delta:
            logger.warning(
                "Stock clamped at zero: product=%s warehouse=%s level=%s delta=%s",
                product_id, warehouse_id, current, delta,
            )

        self._store(
            StockMovement(
                product_id=product_id,
                warehouse_id=warehouse_id,
                transaction_type=transaction_type,
                quantity_change=new_level - current,
                new_stock_level=new_level,
                reason=reason,
                reference=reference,
            )
        )
        return new_level

    def _load_level(self, product_id, warehouse_id, *, for_update: bool) -> Decimal:
        raise NotImplementedError

    def _store(self, movement: StockMovement) -> None:
        raise NotImplementedError


class InMemoryStockLedger(StockLedger):
    def __init__(self, levels: dict | None = None):
        self.levels: dict[tuple, Decimal] = {
            key: to_decimal(value, "stock_level") for key, value in (levels or {}).items()
        }
        self.movements: list[StockMovement] = []

    def _load_level(self, product_id, warehouse_id, *, for_update: bool) -> Decimal:
        return self.levels.get((product_id, warehouse_id), ZERO)

    def _store(self, movement: StockMovement) -> None:
        self.levels[(movement.product_id, movement.warehouse_id)] = movement.new_stock_level
        self.movements.append(movement)
