"""
Item selection snapshot

The configuration a customer picked for one order line (size, modifiers,
combo breakdown, per-unit detail), fixed at order creation and stored as
JSON on the order item. Records are immutable and versioned; readers check
``version`` instead of probing for keys.
"""

from typing import List, Optional, Tuple
from enum import Enum
import uuid

from pydantic import BaseModel


SELECTION_VERSION = 1


class Size(str, Enum):
    """Portion size of a product unit"""
    SINGLE = "SINGLE"
    DOUBLE = "DOUBLE"


class SelectedModifier(BaseModel):
    id: uuid.UUID
    name: str
    price_delta_cents: int

    class Config:
        frozen = True


class ComboComponent(BaseModel):
    product_id: uuid.UUID
    name: str
    qty: int
    station: str

    class Config:
        frozen = True


class UnitSelection(BaseModel):
    """One unit of a mixed-configuration line"""
    size: Size = Size.SINGLE
    modifiers: Tuple[SelectedModifier, ...] = ()
    note: Optional[str] = None
    unit_price_cents: int = 0

    class Config:
        frozen = True


class ItemSelection(BaseModel):
    """Snapshot of everything that determined an order line's price"""

    version: int = SELECTION_VERSION
    size: Size = Size.SINGLE
    modifiers: Tuple[SelectedModifier, ...] = ()
    combo_components: Tuple[ComboComponent, ...] = ()
    note: Optional[str] = None
    units: Tuple[UnitSelection, ...] = ()

    class Config:
        frozen = True

    def to_json(self) -> dict:
        return self.model_dump(mode="json")

    @classmethod
    def from_json(cls, data: dict) -> "ItemSelection":
        if data.get("version") != SELECTION_VERSION:
            raise ValueError(f"Unsupported selection version: {data.get('version')}")
        return cls.model_validate(data)

    def modifier_names(self) -> List[str]:
        return [m.name for m in self.modifiers]
