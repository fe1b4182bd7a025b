"""
Value objects passed between the return service and its collaborators.

They are frozen: the service builds a new value with dataclasses.replace()
instead of editing a shared model instance.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class ReturnLine:
    """A line item matched against a return request, with the quantity to return."""

    item: Any
    quantity: int
    reason_id: Optional[int] = None
    note: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def item_id(self):
        return self.item.pk

    @property
    def unit_price(self):
        return self.item.unit_price


@dataclass(frozen=True)
class FulfillmentItem:
    return_item: Any
    item: Any

    @property
    def quantity(self):
        return self.return_item.quantity


@dataclass(frozen=True)
class FulfillmentReturn:
    """What a fulfillment provider gets to build the return shipment."""

    return_id: int
    order_id: Optional[int]
    swap_id: Optional[int]
    claim_order_id: Optional[int]
    shipping_method: Any
    items: Tuple[FulfillmentItem, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def provider_id(self):
        return self.shipping_method.shipping_option.provider_id
