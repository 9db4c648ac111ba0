"""
Pricing -- pure line and invoice amount arithmetic.

Responsibility:
    The one place where billed amounts are derived from quantities, trade
    price and discounts.  Invoice creation stores these figures and the
    profit & loss engine recomputes from the same functions, so settled
    invoices and reports cannot disagree.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Revenue is trade price x PAID quantity.  Free quantity never bills.
    - Discounts apply to trade price, never to MRP.
    - A discount cannot exceed the amount it applies to.

Failure modes:
    - ValueError on negative quantities or discount values, PERCENT above
      100, or an AMOUNT discount larger than its base.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from stock_kernel.db.types import HUNDRED, ZERO, round_money


class DiscountType(str, Enum):
    AMOUNT = "amount"
    PERCENT = "percent"


@dataclass(frozen=True)
class LineAmounts:
    """Billed figures for one invoice line."""

    gross: Decimal  # tp_rate x paid_quantity
    discount: Decimal
    net: Decimal  # gross - discount, the stored line_total


def discount_amount(
    base: Decimal,
    discount_type: DiscountType | str,
    discount_value: Decimal,
) -> Decimal:
    """
    Resolve a discount type and value to an amount against ``base``.

    AMOUNT discounts are taken as-is; PERCENT discounts are
    ``base x value / 100``.  Result is rounded to money precision.
    """
    if discount_value < 0:
        raise ValueError(f"Discount value must be non-negative, got {discount_value}")
    kind = DiscountType(discount_type)
    if kind == DiscountType.PERCENT:
        if discount_value > HUNDRED:
            raise ValueError(f"Percent discount above 100: {discount_value}")
        return round_money(base * discount_value / HUNDRED)
    amount = round_money(discount_value)
    if amount > base:
        raise ValueError(f"Discount {amount} exceeds the amount it applies to ({base})")
    return amount


def compute_line_amounts(
    tp_rate: Decimal,
    paid_quantity: int,
    discount_type: DiscountType | str = DiscountType.AMOUNT,
    discount_value: Decimal = ZERO,
) -> LineAmounts:
    if paid_quantity < 0:
        raise ValueError(f"Paid quantity must be non-negative, got {paid_quantity}")
    gross = round_money(tp_rate * paid_quantity)
    discount = discount_amount(gross, discount_type, discount_value)
    return LineAmounts(gross=gross, discount=discount, net=gross - discount)


def compute_invoice_total(
    subtotal: Decimal,
    discount_type: DiscountType | str,
    discount_value: Decimal,
) -> tuple[Decimal, Decimal]:
    """
    Apply the invoice-level discount to the line subtotal.

    Returns:
        (discount_amount, total) with total = max(0, subtotal - discount).
    """
    discount = discount_amount(subtotal, discount_type, discount_value)
    return discount, max(ZERO, subtotal - discount)


def allocate_invoice_discount(
    invoice_discount: Decimal,
    line_nets: list[Decimal],
) -> list[Decimal]:
    """
    Split an invoice discount across lines in proportion to line net.

    When every line nets to zero the discount is split evenly.  The last
    line absorbs the rounding remainder so the shares sum exactly to the
    discount.
    """
    if not line_nets:
        return []
    total = sum(line_nets, ZERO)
    count = len(line_nets)
    shares: list[Decimal] = []
    for net in line_nets[:-1]:
        if total == 0:
            share = invoice_discount / count
        else:
            share = invoice_discount * net / total
        shares.append(round_money(share))
    shares.append(invoice_discount - sum(shares, ZERO))
    return shares
