"""
Pricing engine

Pure functions that turn a product (or combo), the customer's selection and
the active promotion configuration into integer-cent prices. Nothing in here
touches the database or the clock: callers pass the catalog data, the
promotions and ``now`` (already in business time) as values.

Rules:
- Unit price = base or double price + sum of selected modifier deltas
- Percentage promotions never stack; the highest applicable percent wins
- The percent discount applies to each unit first, then 2-for-1 waives the
  cheapest floor(qty/2) units of the line
- Combos are charged their listed price, never the sum of components
- Rounding is half away from zero
"""

from dataclasses import dataclass, field
from datetime import datetime, time
from decimal import Decimal, ROUND_HALF_UP
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple
import uuid

from posflow.core.exceptions import InvalidConfiguration, ValidationError
from posflow.models.coupon import CouponType
from posflow.models.promotion import PromotionKind
from posflow.models.selection import (
    ComboComponent,
    ItemSelection,
    SelectedModifier,
    Size,
    UnitSelection,
)


# ============================================================================
# Catalog values
# ============================================================================

@dataclass(frozen=True)
class ModifierInfo:
    id: uuid.UUID
    name: str
    price_delta_cents: int


@dataclass(frozen=True)
class ProductInfo:
    """Read-only view of a product as pricing needs it"""
    id: uuid.UUID
    name: str
    base_price_cents: int
    double_price_cents: Optional[int] = None
    station: str = "KITCHEN"
    modifiers: Tuple[ModifierInfo, ...] = ()

    def modifier(self, modifier_id: uuid.UUID) -> Optional[ModifierInfo]:
        for modifier in self.modifiers:
            if modifier.id == modifier_id:
                return modifier
        return None


@dataclass(frozen=True)
class ComboComponentInfo:
    product_id: uuid.UUID
    name: str
    qty: int
    base_price_cents: int
    station: str = "KITCHEN"


@dataclass(frozen=True)
class ComboInfo:
    id: uuid.UUID
    name: str
    price_cents: int
    components: Tuple[ComboComponentInfo, ...] = ()


@dataclass(frozen=True)
class PromotionRule:
    """One promotion, as configuration"""
    kind: PromotionKind
    percent: int = 0
    weekdays: FrozenSet[int] = frozenset()         # empty = every day, Monday=0
    start_time: Optional[time] = None               # None = all day
    end_time: Optional[time] = None
    product_ids: FrozenSet[uuid.UUID] = frozenset()  # empty = every product
    name: str = ""

    def targets(self, product_id: uuid.UUID) -> bool:
        return not self.product_ids or product_id in self.product_ids

    def is_active_at(self, now: datetime) -> bool:
        if self.weekdays and now.weekday() not in self.weekdays:
            return False
        return in_window(now.time(), self.start_time, self.end_time)

    def applies(self, product_id: uuid.UUID, now: datetime) -> bool:
        return self.targets(product_id) and self.is_active_at(now)


@dataclass(frozen=True)
class PromotionSet:
    rules: Tuple[PromotionRule, ...] = ()

    @classmethod
    def empty(cls) -> "PromotionSet":
        return cls()

    def of_kind(self, kind: PromotionKind) -> Iterable[PromotionRule]:
        return (rule for rule in self.rules if rule.kind == kind)


# ============================================================================
# Selection input / priced output
# ============================================================================

@dataclass(frozen=True)
class UnitRequest:
    """Configuration of a single unit"""
    size: Size = Size.SINGLE
    modifier_ids: Tuple[uuid.UUID, ...] = ()
    note: Optional[str] = None


@dataclass(frozen=True)
class SelectionRequest:
    """What the customer asked for on one line

    ``units`` carries per-unit configurations for mixed lines and must then
    hold exactly ``qty`` entries. Without it every unit uses the line-level
    size and modifiers.
    """
    qty: int = 1
    size: Size = Size.SINGLE
    modifier_ids: Tuple[uuid.UUID, ...] = ()
    note: Optional[str] = None
    units: Tuple[UnitRequest, ...] = ()

    def unit_requests(self) -> Tuple[UnitRequest, ...]:
        if self.qty < 1:
            raise ValidationError("Quantity must be at least 1", qty=self.qty)
        if self.units:
            if len(self.units) != self.qty:
                raise ValidationError(
                    "Per-unit configurations must match the quantity",
                    qty=self.qty,
                    units=len(self.units),
                )
            return self.units
        return (UnitRequest(self.size, self.modifier_ids, self.note),) * self.qty


@dataclass(frozen=True)
class PricedLine:
    unit_prices: Tuple[int, ...]
    unit_price_cents: int
    modifiers_total_cents: int
    line_total_cents: int
    free_units: int
    percent_applied: int
    selection: ItemSelection

    @property
    def qty(self) -> int:
        return len(self.unit_prices)


@dataclass(frozen=True)
class PricedCombo:
    unit_price_cents: int
    line_total_cents: int
    savings_cents: int
    selection: ItemSelection = field(default_factory=ItemSelection)


# ============================================================================
# Primitives
# ============================================================================

def round_half_away(value: Decimal) -> int:
    """Round to whole cents, ties away from zero"""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def apply_percent(price_cents: int, percent: int) -> int:
    """Price after a percent discount; non-positive percents are ignored"""
    if percent <= 0:
        return price_cents
    percent = min(percent, 100)
    return round_half_away(Decimal(price_cents) * (Decimal(100) - Decimal(percent)) / Decimal(100))


def in_window(moment: time, start: Optional[time], end: Optional[time]) -> bool:
    """Check ``moment`` against a [start, end) window

    A missing bound, or equal bounds, means all day. A window whose start is
    after its end wraps past midnight.
    """
    if start is None or end is None or start == end:
        return True
    if start < end:
        return start <= moment < end
    return moment >= start or moment < end


def best_percent(promotions: PromotionSet, product_id: uuid.UUID, now: datetime) -> int:
    """Highest applicable percent promotion for the product, 0 when none"""
    return max(
        (rule.percent for rule in promotions.of_kind(PromotionKind.PERCENT)
         if rule.applies(product_id, now)),
        default=0,
    )


def two_for_one_applies(promotions: PromotionSet, product_id: uuid.UUID, now: datetime) -> bool:
    return any(
        rule.applies(product_id, now)
        for rule in promotions.of_kind(PromotionKind.TWO_FOR_ONE)
    )


def two_for_one_total(unit_prices: Sequence[int]) -> int:
    """Line total when every second unit is free

    The customer pays for the ceil(qty/2) priciest units; the cheapest
    floor(qty/2) are waived.
    """
    ordered = sorted(unit_prices, reverse=True)
    paid = len(ordered) - len(ordered) // 2
    return sum(ordered[:paid])


# ============================================================================
# Line pricing
# ============================================================================

def _resolve_modifiers(product: ProductInfo, unit: UnitRequest) -> Tuple[SelectedModifier, ...]:
    if len(set(unit.modifier_ids)) != len(unit.modifier_ids):
        raise InvalidConfiguration("Modifier selected more than once", product_id=product.id)

    selected: List[SelectedModifier] = []
    for modifier_id in unit.modifier_ids:
        modifier = product.modifier(modifier_id)
        if modifier is None:
            raise InvalidConfiguration(
                f"Modifier is not available for {product.name}",
                product_id=product.id,
                modifier_id=modifier_id,
            )
        selected.append(SelectedModifier(
            id=modifier.id,
            name=modifier.name,
            price_delta_cents=modifier.price_delta_cents,
        ))
    return tuple(selected)


def unit_price(product: ProductInfo, unit: UnitRequest) -> int:
    """Price of one unit before promotions"""
    if unit.size == Size.DOUBLE:
        if product.double_price_cents is None:
            raise InvalidConfiguration(
                f"{product.name} is not offered as a double",
                product_id=product.id,
            )
        price = product.double_price_cents
    else:
        price = product.base_price_cents
    return price + sum(m.price_delta_cents for m in _resolve_modifiers(product, unit))


def price_line(
    product: ProductInfo,
    selection: SelectionRequest,
    promotions: PromotionSet,
    now: datetime,
) -> PricedLine:
    """Price one product line under the promotions active at ``now``"""
    units = selection.unit_requests()
    percent = best_percent(promotions, product.id, now)

    unit_details = []
    unit_prices = []
    modifiers_total = 0
    for unit in units:
        modifiers = _resolve_modifiers(product, unit)
        price = apply_percent(unit_price(product, unit), percent)
        modifiers_total += sum(m.price_delta_cents for m in modifiers)
        unit_prices.append(price)
        unit_details.append(UnitSelection(
            size=unit.size,
            modifiers=modifiers,
            note=unit.note,
            unit_price_cents=price,
        ))

    free_units = 0
    if len(unit_prices) >= 2 and two_for_one_applies(promotions, product.id, now):
        line_total = two_for_one_total(unit_prices)
        free_units = len(unit_prices) // 2
    else:
        line_total = sum(unit_prices)

    first = unit_details[0]
    snapshot = ItemSelection(
        size=first.size,
        modifiers=first.modifiers,
        note=selection.note,
        units=tuple(unit_details) if selection.units else (),
    )

    return PricedLine(
        unit_prices=tuple(unit_prices),
        unit_price_cents=max(unit_prices),
        modifiers_total_cents=modifiers_total,
        line_total_cents=line_total,
        free_units=free_units,
        percent_applied=percent,
        selection=snapshot,
    )


def price_combo(combo: ComboInfo, qty: int, note: Optional[str] = None) -> PricedCombo:
    """Price a combo line at its listed price

    ``savings_cents`` is display-only: what one combo saves against buying
    its components separately.
    """
    if qty < 1:
        raise ValidationError("Quantity must be at least 1", qty=qty)

    components_total = sum(c.base_price_cents * c.qty for c in combo.components)
    snapshot = ItemSelection(
        note=note,
        combo_components=tuple(
            ComboComponent(product_id=c.product_id, name=c.name, qty=c.qty, station=c.station)
            for c in combo.components
        ),
    )
    return PricedCombo(
        unit_price_cents=combo.price_cents,
        line_total_cents=combo.price_cents * qty,
        savings_cents=max(0, components_total - combo.price_cents),
        selection=snapshot,
    )


def coupon_discount(coupon, subtotal_cents: int) -> int:
    """Discount a coupon grants on ``subtotal_cents``, capped at the subtotal"""
    if coupon.type == CouponType.PERCENT:
        discount = round_half_away(Decimal(subtotal_cents) * Decimal(coupon.value) / Decimal(100))
    else:
        discount = coupon.value
    return max(0, min(discount, subtotal_cents))
