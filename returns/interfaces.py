"""
Returns Module - Collaborator Interfaces

The return service never touches other domains' tables directly. Each
sibling domain is one capability below; ReturnService takes an
implementation of each in its constructor. The ORM-backed defaults live in
collaborators.py, tests can hand in mocks.

Every method that reads or writes the database takes `using`, the database
alias of the transaction the caller is running in.
"""

from typing import Any, Dict, Iterable, List, Optional, Protocol


class OrderReader(Protocol):
    def retrieve(self, order_id, select: Optional[Iterable[str]] = None,
                 relations: Optional[Iterable[str]] = None, using: str = 'default'):
        """Order with refunded_total, total, refundable_amount, tax_rate, items, swaps."""

    def retrieve_by_swap(self, swap_id, select: Optional[Iterable[str]] = None,
                         relations: Optional[Iterable[str]] = None, using: str = 'default'):
        """The order a swap was made on."""


class LineItemStore(Protocol):
    def retrieve(self, item_id, relations: Optional[Iterable[str]] = None, using: str = 'default'):
        ...

    def list(self, selector: Dict[str, Any], using: str = 'default') -> List[Any]:
        ...

    def update(self, item_id, data: Dict[str, Any], using: str = 'default'):
        ...


class ShippingOptionProvider(Protocol):
    def retrieve(self, option_id, using: str = 'default'):
        """Shipping option exposing `amount`."""

    def create_shipping_method(self, option_id, data: Dict[str, Any],
                               config: Dict[str, Any], using: str = 'default'):
        """config carries price and return_id (or order_id)."""


class ReturnFulfiller(Protocol):
    def create_return(self, return_data) -> Dict[str, Any]:
        """Opaque shipping payload for the return (label, tracking, ...)."""


class RefundCalculator(Protocol):
    def get_refund_total(self, order, lines) -> int:
        ...


class InventoryAdjuster(Protocol):
    def adjust_inventory(self, variant_id, quantity: int, using: str = 'default') -> None:
        ...


class ReturnReasonReader(Protocol):
    def retrieve(self, reason_id, using: str = 'default'):
        ...
