"""
Catalog gateway

Read-only access to products, combos and promotions. Order creation talks to
the ``CatalogGateway`` protocol; ``SqlCatalogGateway`` is the implementation
backed by the catalog tables.
"""

from typing import Optional, Protocol
import uuid

from sqlmodel import Session, select
import structlog

from posflow.core.config import get_settings
from posflow.core.exceptions import NotFound, ValidationError
from posflow.models.combo import Combo, ComboItem
from posflow.models.menu_category import Category
from posflow.models.menu_item import Product
from posflow.models.promotion import Promotion
from posflow.services.pricing import (
    ComboComponentInfo,
    ComboInfo,
    ModifierInfo,
    ProductInfo,
    PromotionRule,
    PromotionSet,
)

logger = structlog.get_logger(__name__)


class CatalogGateway(Protocol):
    def resolve_product(self, product_id: uuid.UUID) -> ProductInfo:
        ...

    def resolve_combo(self, combo_id: uuid.UUID) -> ComboInfo:
        ...

    def current_promotions(self) -> PromotionSet:
        ...


class SqlCatalogGateway:
    """Catalog reads over the current database session"""

    def __init__(self, session: Session, default_station: Optional[str] = None):
        self.session = session
        self.default_station = default_station or get_settings().DEFAULT_STATION

    def _station_for(self, product: Product) -> str:
        category = self.session.get(Category, product.category_id)
        if category is not None and category.default_station is not None:
            return category.default_station.value
        return self.default_station

    def _active_product(self, product_id: uuid.UUID) -> Product:
        product = self.session.get(Product, product_id)
        if product is None:
            raise NotFound("Product not found", product_id=product_id)
        if not product.is_active:
            raise ValidationError(f"{product.name} is not available", product_id=product_id)
        return product

    def resolve_product(self, product_id: uuid.UUID) -> ProductInfo:
        product = self._active_product(product_id)
        return ProductInfo(
            id=product.id,
            name=product.name,
            base_price_cents=product.base_price_cents,
            double_price_cents=product.double_price_cents,
            station=self._station_for(product),
            modifiers=tuple(
                ModifierInfo(id=m.id, name=m.name, price_delta_cents=m.price_delta_cents)
                for m in product.modifiers
                if m.is_active
            ),
        )

    def resolve_combo(self, combo_id: uuid.UUID) -> ComboInfo:
        combo = self.session.get(Combo, combo_id)
        if combo is None:
            raise NotFound("Combo not found", combo_id=combo_id)
        if not combo.is_active:
            raise ValidationError(f"{combo.name} is not available", combo_id=combo_id)

        rows = self.session.exec(
            select(ComboItem, Product)
            .where(ComboItem.combo_id == combo_id)
            .where(ComboItem.product_id == Product.id)
        ).all()
        components = tuple(
            ComboComponentInfo(
                product_id=product.id,
                name=product.name,
                qty=item.qty,
                base_price_cents=product.base_price_cents,
                station=self._station_for(product),
            )
            for item, product in sorted(rows, key=lambda row: row[1].name)
        )
        return ComboInfo(id=combo.id, name=combo.name, price_cents=combo.price_cents, components=components)

    def current_promotions(self) -> PromotionSet:
        promotions = self.session.exec(
            select(Promotion).where(Promotion.is_active == True)  # noqa: E712
        ).all()
        rules = []
        for promotion in promotions:
            try:
                product_ids = frozenset(uuid.UUID(str(pid)) for pid in promotion.product_ids)
            except ValueError:
                logger.warning("promotion_skipped_bad_product_ids", promotion_id=str(promotion.id))
                continue
            rules.append(PromotionRule(
                kind=promotion.kind,
                percent=promotion.percent,
                weekdays=frozenset(promotion.weekdays),
                start_time=promotion.start_time,
                end_time=promotion.end_time,
                product_ids=product_ids,
                name=promotion.name,
            ))
        return PromotionSet(rules=tuple(rules))
