"""
Totals calculation for invoices and quotations.

    subtotal = sum of item amounts
    tax      = subtotal * tax_rate / 100
    discount = subtotal * value / 100  (percentage)  or  value  (fixed)
    total    = subtotal + tax - discount

Every intermediate value is rounded half-up to cents.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Union

from app.modules.invoices.models import DiscountType
from app.modules.invoices.schemas import DocumentTotals

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Optional[Number]) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Optional[Number]) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_item_amount(quantity: Number, rate: Number, amount: Optional[Number] = None) -> Decimal:
    """Explicit amount wins; otherwise quantity times rate."""
    if amount is not None:
        return round_money(amount)
    return round_money(to_decimal(quantity) * to_decimal(rate))


def calculate_discount(
    subtotal: Decimal,
    discount_type: Optional[DiscountType],
    discount_value: Optional[Number]
) -> Decimal:
    value = to_decimal(discount_value)
    if value < 0:
        raise ValueError("Discount cannot be negative")
    if discount_type is None or value == 0:
        return Decimal("0.00")
    if discount_type == DiscountType.PERCENTAGE:
        if value > HUNDRED:
            raise ValueError("Percentage discount cannot exceed 100")
        return round_money(subtotal * value / HUNDRED)
    return round_money(value)


def calculate_totals(
    item_amounts: Iterable[Number],
    tax_rate: Optional[Number] = 0,
    discount_type: Optional[DiscountType] = None,
    discount_value: Optional[Number] = 0
) -> DocumentTotals:
    rate = to_decimal(tax_rate)
    if rate < 0 or rate > HUNDRED:
        raise ValueError("Tax rate must be between 0 and 100")

    subtotal = sum((round_money(amount) for amount in item_amounts), Decimal("0.00"))
    tax_amount = round_money(subtotal * rate / HUNDRED)
    discount_amount = calculate_discount(subtotal, discount_type, discount_value)

    if discount_amount > subtotal + tax_amount:
        raise ValueError("Discount cannot exceed the document amount")

    return DocumentTotals(
        subtotal=subtotal,
        tax_amount=tax_amount,
        discount_amount=discount_amount,
        total=round_money(subtotal + tax_amount - discount_amount)
    )
