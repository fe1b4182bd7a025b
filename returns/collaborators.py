"""
Returns Module - Default Collaborators

ORM-backed implementations of the interfaces in interfaces.py. In a full
commerce backend these would be the order, line item, shipping, totals and
inventory services of their own apps; here they work against the simplified
models in models.py.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db.models import F
from django.utils.module_loading import import_string

from .exceptions import NotFoundError
from .models import (
    LineItem, Order, ProductVariant, ReturnReason, ShippingMethod, ShippingOption,
)
from .utils import build_filters, prefetch_names

logger = logging.getLogger('returns')


# ============================================================
# ORDERS
# ============================================================

class OrderService:

    def retrieve(self, order_id, select=None, relations=None, using='default'):
        queryset = Order.objects.using(using).prefetch_related(*prefetch_names(relations))

        # Computed values (refundable_amount) are not columns; skip them
        columns = {f.attname for f in Order._meta.concrete_fields}
        fields = [name for name in select or [] if name in columns]
        if fields:
            queryset = queryset.only('id', *fields)

        order = queryset.filter(pk=order_id).first()
        if order is None:
            raise NotFoundError(f"Order with id: {order_id} was not found")
        return order

    def retrieve_by_swap(self, swap_id, select=None, relations=None, using='default'):
        order_id = (
            Order.objects.using(using)
            .filter(swaps__id=swap_id)
            .values_list('id', flat=True)
            .first()
        )
        if order_id is None:
            raise NotFoundError(f"Order for swap with id: {swap_id} was not found")
        return self.retrieve(order_id, select=select, relations=relations, using=using)


# ============================================================
# LINE ITEMS
# ============================================================

class LineItemService:

    def retrieve(self, item_id, relations=None, using='default'):
        item = (
            LineItem.objects.using(using)
            .prefetch_related(*prefetch_names(relations))
            .filter(pk=item_id)
            .first()
        )
        if item is None:
            raise NotFoundError(f"Line item with id: {item_id} was not found")
        return item

    def list(self, selector, using='default'):
        return list(LineItem.objects.using(using).filter(**build_filters(selector)))

    def update(self, item_id, data, using='default'):
        item = self.retrieve(item_id, using=using)
        for key, value in data.items():
            setattr(item, key, value)
        item.save(using=using, update_fields=list(data.keys()))
        return item


# ============================================================
# SHIPPING OPTIONS
# ============================================================

class ShippingOptionService:

    def retrieve(self, option_id, using='default'):
        option = ShippingOption.objects.using(using).filter(pk=option_id).first()
        if option is None:
            raise NotFoundError(f"Shipping option with id: {option_id} was not found")
        return option

    def create_shipping_method(self, option_id, data, config, using='default'):
        """
        Apply a shipping option to an order or a return.

        config: {'price': int, 'return_id': id} or {'price': int, 'order_id': id}
        """
        option = self.retrieve(option_id, using=using)
        price = config.get('price')
        method = ShippingMethod.objects.using(using).create(
            shipping_option=option,
            price=option.amount if price is None else price,
            data=data or {},
            order_id=config.get('order_id'),
            return_order_id=config.get('return_id'),
        )
        logger.info(
            f"Shipping method {method.pk} created from option {option.pk} "
            f"(price {method.price})"
        )
        return method


# ============================================================
# TOTALS
# ============================================================

class TotalsService:

    def get_refund_total(self, order, lines):
        """Tax-inclusive amount to refund for the given return lines, rounded to a whole unit."""
        subtotal = Decimal(sum(line.unit_price * line.quantity for line in lines))
        tax_rate = Decimal(str(order.tax_rate or 0))
        total = subtotal + subtotal * tax_rate / 100
        return int(total.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


# ============================================================
# INVENTORY
# ============================================================

class InventoryService:

    def adjust_inventory(self, variant_id, quantity, using='default'):
        if variant_id is None:
            return

        variant = ProductVariant.objects.using(using).filter(pk=variant_id).first()
        if variant is None:
            raise NotFoundError(f"Variant with id: {variant_id} was not found")

        if not variant.manage_inventory:
            return

        ProductVariant.objects.using(using).filter(pk=variant_id).update(
            inventory_quantity=F('inventory_quantity') + quantity
        )
        logger.info(f"Inventory adjusted: variant {variant.sku} by {quantity}")


# ============================================================
# FULFILLMENT PROVIDERS
# ============================================================

class FulfillmentProviderService:
    """Routes a return to the provider of its shipping option."""

    def __init__(self, providers=None):
        if providers is None:
            providers = {
                provider_id: import_string(path)()
                for provider_id, path in settings.RETURNS['FULFILLMENT_PROVIDERS'].items()
            }
        self.providers = providers

    def retrieve_provider(self, provider_id):
        try:
            return self.providers[provider_id]
        except KeyError:
            raise NotFoundError(
                f"Could not find a fulfillment provider with id: {provider_id}"
            )

    def create_return(self, return_data):
        provider = self.retrieve_provider(return_data.provider_id)
        return provider.create_return(return_data)


# ============================================================
# RETURN REASONS
# ============================================================

class ReturnReasonService:

    def retrieve(self, reason_id, using='default'):
        reason = ReturnReason.objects.using(using).filter(pk=reason_id).first()
        if reason is None:
            raise NotFoundError(f"Return reason with id: {reason_id} was not found")
        return reason
