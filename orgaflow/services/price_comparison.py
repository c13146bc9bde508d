"""
Price comparison: per-item supplier prices, lowest-price flags, totals
before and after each supplier's discount.

Prices arrive as a matrix {item_id: {supplier_id: price}}. A missing or
zero price means "not quoted": it contributes 0 to totals and is never the
lowest price. Ties are not broken; every supplier at the lowest price is
flagged.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Mapping, Optional, Sequence

from orgaflow.errors import ValidationError

PriceMatrix = Mapping[str, Mapping[str, Decimal]]

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

# Widest values the price, discount and amount columns hold without rounding
PRICE_PLACES = 4
PRICE_LIMIT = Decimal(10) ** 10
DISCOUNT_PLACES = 2
AMOUNT_LIMIT = Decimal(10) ** 14


@dataclass
class ComparisonRow:
    item_id: str
    quantity: int
    prices: dict[str, Decimal]
    lowest_price: Decimal

    def is_lowest(self, supplier_id: str) -> bool:
        price = self.prices.get(supplier_id, ZERO)
        return price > 0 and price == self.lowest_price

    @property
    def lowest_supplier_ids(self) -> list[str]:
        return [s for s in self.prices if self.is_lowest(s)]


@dataclass
class PriceComparison:
    supplier_ids: list[str]
    rows: list[ComparisonRow]
    totals: dict[str, Decimal] = field(default_factory=dict)
    discounts: dict[str, Decimal] = field(default_factory=dict)
    final_totals: dict[str, Decimal] = field(default_factory=dict)

    @property
    def best_supplier_ids(self) -> list[str]:
        """Suppliers with the lowest positive total after discount."""
        positive = {s: t for s, t in self.final_totals.items() if t > 0}
        if not positive:
            return []
        best = min(positive.values())
        return [s for s in self.supplier_ids if positive.get(s) == best]


def to_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _to_decimal(value, label: str) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return ZERO
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{label} must be a number, got {value!r}")
    if not parsed.is_finite():
        raise ValidationError(f"{label} must be a finite number")
    return parsed


def _check_places(value: Decimal, places: int, label: str) -> Decimal:
    if value != value.quantize(Decimal(1).scaleb(-places)):
        raise ValidationError(f"{label} allows at most {places} decimal places, got {value}")
    return value


def parse_price(value) -> Decimal:
    """Blank -> 0; negative, non-numeric or too wide for storage is rejected."""
    price = _to_decimal(value, "Price")
    if price < 0:
        raise ValidationError(f"Price cannot be negative, got {price}")
    if price >= PRICE_LIMIT:
        raise ValidationError(f"Price must be below {PRICE_LIMIT:,}, got {price}")
    return _check_places(price, PRICE_PLACES, "Price")


def parse_discount(value) -> Decimal:
    """Blank -> 0; values outside 0-100 are rejected, never clamped."""
    discount = _to_decimal(value, "Discount")
    if discount < 0 or discount > HUNDRED:
        raise ValidationError(f"Discount must be between 0 and 100, got {discount}")
    return _check_places(discount, DISCOUNT_PLACES, "Discount")


def normalize_price_matrix(raw: Mapping[str, Mapping[str, object]]) -> dict[str, dict[str, Decimal]]:
    return {
        item_id: {supplier_id: parse_price(price) for supplier_id, price in (by_supplier or {}).items()}
        for item_id, by_supplier in (raw or {}).items()
    }


def normalize_discounts(raw: Optional[Mapping[str, object]]) -> dict[str, Decimal]:
    return {supplier_id: parse_discount(value) for supplier_id, value in (raw or {}).items()}


def check_amount(amount: Decimal, label: str = "Total") -> Decimal:
    if abs(amount) >= AMOUNT_LIMIT:
        raise ValidationError(f"{label} must be below {AMOUNT_LIMIT:,}, got {amount}")
    return amount


def lookup_price(price_matrix: PriceMatrix, item_id: str, supplier_id: str) -> Decimal:
    return (price_matrix.get(item_id) or {}).get(supplier_id) or ZERO


def compute_rows(
    line_items: Sequence,
    price_matrix: PriceMatrix,
    supplier_ids: Sequence[str],
) -> list[ComparisonRow]:
    """One row per request line item with the selected suppliers' prices."""
    rows = []
    for li in line_items:
        prices = {s: lookup_price(price_matrix, li.item_id, s) for s in supplier_ids}
        quoted = [p for p in prices.values() if p > 0]
        rows.append(
            ComparisonRow(
                item_id=li.item_id,
                quantity=li.quantity,
                prices=prices,
                lowest_price=min(quoted) if quoted else ZERO,
            )
        )
    return rows


def compute_supplier_total(
    rows: Iterable[ComparisonRow],
    supplier_id: str,
    price_matrix: PriceMatrix,
) -> Decimal:
    """Pre-discount subtotal: sum of quantity x price (unset price counts as 0)."""
    total = ZERO
    for row in rows:
        total += row.quantity * lookup_price(price_matrix, row.item_id, supplier_id)
    return to_money(total)


def compute_final_total(subtotal: Decimal, discount_percent=None) -> Decimal:
    discount = parse_discount(discount_percent)
    return to_money(Decimal(subtotal) * (1 - discount / HUNDRED))


def compare(
    line_items: Sequence,
    supplier_ids: Sequence[str],
    price_matrix: PriceMatrix,
    discounts: Optional[Mapping[str, Decimal]] = None,
) -> PriceComparison:
    discounts = discounts or {}
    rows = compute_rows(line_items, price_matrix, supplier_ids)
    comparison = PriceComparison(supplier_ids=list(supplier_ids), rows=rows)
    for supplier_id in supplier_ids:
        subtotal = compute_supplier_total(rows, supplier_id, price_matrix)
        discount = parse_discount(discounts.get(supplier_id))
        comparison.totals[supplier_id] = subtotal
        comparison.discounts[supplier_id] = discount
        comparison.final_totals[supplier_id] = compute_final_total(subtotal, discount)
    return comparison


def dedupe_supplier_ids(supplier_ids: Iterable[str]) -> list[str]:
    seen: list[str] = []
    for supplier_id in supplier_ids:
        supplier_id = (supplier_id or "").strip()
        if not supplier_id:
            raise ValidationError("Supplier id cannot be blank")
        if supplier_id not in seen:
            seen.append(supplier_id)
    return seen
