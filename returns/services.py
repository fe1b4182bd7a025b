"""
Returns Module - Return Lifecycle Service

ReturnService is the one place where return business rules live:

    create()   → validate items against the order, work out the refund,
                 store the return as "requested"
    fulfill()  → ask the fulfillment provider for shipping data (label etc.)
    receive()  → reconcile what arrived against what was requested,
                 bump returned quantities and restock inventory
    cancel() / update() / retrieve() / list()

Every mutating call runs in one transaction.atomic() block on the database
alias given as `using`, and the same alias is handed to every collaborator.
If anything raises, the whole operation rolls back.
"""

import logging
import math
from dataclasses import replace
from typing import Optional

from django.conf import settings
from django.db import DEFAULT_DB_ALIAS, transaction
from django.utils import timezone
from kombu.exceptions import KombuError

from .collaborators import (
    FulfillmentProviderService, InventoryService, LineItemService, OrderService,
    ReturnReasonService, ShippingOptionService, TotalsService,
)
from .exceptions import InvalidDataError, NotAllowedError, NotFoundError
from .interfaces import (
    InventoryAdjuster, LineItemStore, OrderReader, RefundCalculator,
    ReturnFulfiller, ReturnReasonReader, ShippingOptionProvider,
)
from .lines import FulfillmentItem, FulfillmentReturn, ReturnLine
from .models import Return, ReturnItem, ReturnStatusHistory, ShippingMethod
from .tasks import send_return_notification
from .utils import build_filters, prefetch_names, set_metadata

logger = logging.getLogger('returns')


class ReturnService:
    """Handles returns on orders, swaps and claims."""

    def __init__(
        self,
        order_service: Optional[OrderReader] = None,
        line_item_service: Optional[LineItemStore] = None,
        shipping_option_service: Optional[ShippingOptionProvider] = None,
        fulfillment_provider_service: Optional[ReturnFulfiller] = None,
        totals_service: Optional[RefundCalculator] = None,
        inventory_service: Optional[InventoryAdjuster] = None,
        return_reason_service: Optional[ReturnReasonReader] = None,
    ):
        self.order_service = order_service or OrderService()
        self.line_item_service = line_item_service or LineItemService()
        self.shipping_option_service = shipping_option_service or ShippingOptionService()
        self.fulfillment_provider_service = (
            fulfillment_provider_service or FulfillmentProviderService()
        )
        self.totals_service = totals_service or TotalsService()
        self.inventory_service = inventory_service or InventoryService()
        self.return_reason_service = return_reason_service or ReturnReasonService()

    # ============================================================
    # HELPERS
    # ============================================================

    def _validate_id(self, value):
        try:
            return int(value)
        except (TypeError, ValueError):
            raise InvalidDataError(f"Invalid id: {value!r}")

    def _build_queryset(self, using, selector=None, config=None):
        config = config or {}
        queryset = Return.objects.using(using).filter(**build_filters(selector))

        relations = prefetch_names(config.get('relations'))
        if relations:
            queryset = queryset.prefetch_related(*relations)
        if config.get('select'):
            queryset = queryset.only('id', *config['select'])

        ordering = [
            f'-{field}' if direction.upper() == 'DESC' else field
            for field, direction in (config.get('order') or {}).items()
        ]
        if ordering:
            queryset = queryset.order_by(*ordering)

        skip = config.get('skip') or 0
        take = config.get('take')
        if take is not None:
            queryset = queryset[skip:skip + take]
        elif skip:
            queryset = queryset[skip:]
        return queryset

    def _get_fulfillment_items(self, order, items, transformer):
        """
        Match requested {item_id, quantity, ...} dicts against the order's
        items plus the additional items of all its swaps.

        transformer(line_item_or_None, quantity, data) builds each line;
        lines it returns as None are dropped.
        """
        merged = list(order.items.all())
        for swap in order.swaps.all():
            merged.extend(swap.additional_items.all())
        by_id = {str(item.pk): item for item in merged}

        lines = []
        seen = set()
        for data in items:
            key = str(data['item_id'])
            if key in seen:
                raise InvalidDataError(f"Return contains line item {key} more than once")
            seen.add(key)

            line = transformer(by_id.get(key), data['quantity'], data)
            if line is not None:
                lines.append(line)
        return lines

    def _get_shipping_method(self, ret):
        try:
            return ret.shipping_method
        except ShippingMethod.DoesNotExist:
            return None

    def _record_status(self, ret, from_status, comment, using):
        ReturnStatusHistory.objects.using(using).create(
            return_order=ret,
            from_status=from_status,
            to_status=ret.status,
            changed_by='system',
            comment=comment,
        )

    def _notify(self, ret, event, using):
        if ret.no_notification:
            return
        return_id = ret.pk

        def dispatch():
            # Runs after commit; a broker outage must not fail the committed call
            try:
                send_return_notification.delay(return_id, event)
            except KombuError:
                logger.exception(
                    "Could not queue %s notification for return %s", event, return_id
                )

        transaction.on_commit(dispatch, using=using)

    # ============================================================
    # VALIDATION
    # ============================================================

    def validate_return_statuses(self, order):
        """
        Checks that an order can be returned at all: it must be fulfilled
        (and not already returned) and its payment must be captured.
        """
        if order.fulfillment_status in ('not_fulfilled', 'returned'):
            raise NotAllowedError("Can't return an unfulfilled or already returned order")

        if order.payment_status != 'captured':
            raise NotAllowedError("Can't return an order with payment unprocessed")

    def validate_return_line_item(self, item, quantity, additional):
        """
        Checks that `quantity` of `item` can still be returned and builds the
        return line for it. Returning exactly the returnable quantity is fine.

        reason_id, note and metadata are copied from `additional` when present.
        """
        if item is None:
            raise InvalidDataError("Return contains invalid line item")

        returnable = item.quantity - (item.returned_quantity or 0)
        if quantity > returnable:
            raise NotAllowedError("Cannot return more items than have been purchased")

        line = ReturnLine(item=item, quantity=quantity, metadata=dict(item.metadata or {}))

        if 'reason_id' in additional:
            line = replace(line, reason_id=additional['reason_id'])
        if 'note' in additional:
            line = replace(line, note=additional['note'])
        if 'metadata' in additional:
            line = replace(line, metadata=dict(additional['metadata'] or {}))

        return line

    # ============================================================
    # READS
    # ============================================================

    def list(self, selector=None, config=None, using=DEFAULT_DB_ALIAS):
        if config is None:
            config = {
                'skip': 0,
                'take': settings.RETURNS['DEFAULT_PAGE_SIZE'],
                'order': {'created_at': 'DESC'},
            }
        return [ret for ret in self._build_queryset(using, selector, config)]

    def retrieve(self, return_id, config=None, using=DEFAULT_DB_ALIAS):
        validated_id = self._validate_id(return_id)
        config = config or {}
        query_config = {
            'relations': config.get('relations'),
            'select': config.get('select'),
        }

        ret = self._build_queryset(using, {'id': validated_id}, query_config).first()
        if ret is None:
            raise NotFoundError(f"Return with id: {return_id} was not found")
        return ret

    def retrieve_by_swap(self, swap_id, relations=None, using=DEFAULT_DB_ALIAS):
        validated_id = self._validate_id(swap_id)

        ret = (
            Return.objects.using(using)
            .prefetch_related(*prefetch_names(relations))
            .filter(swap_id=validated_id)
            .first()
        )
        if ret is None:
            raise NotFoundError(f"Return with swap_id: {swap_id} was not found")
        return ret

    # ============================================================
    # CANCEL / UPDATE
    # ============================================================

    def cancel(self, return_id, using=DEFAULT_DB_ALIAS):
        """Cancels a return unless it has already been received."""
        with transaction.atomic(using=using):
            ret = self.retrieve(return_id, using=using)

            if ret.status == Return.STATUS_RECEIVED:
                logger.warning("Cancel rejected: return %s already received", ret.pk)
                raise NotAllowedError("Can't cancel a return which has been returned")

            previous_status = ret.status
            ret.status = Return.STATUS_CANCELED
            ret.save(using=using)
            self._record_status(ret, previous_status, 'Return canceled', using)

        logger.info(f"Return canceled: {ret.pk} (was {previous_status})")
        return ret

    def update(self, return_id, data, using=DEFAULT_DB_ALIAS):
        with transaction.atomic(using=using):
            ret = self.retrieve(return_id, using=using)

            if ret.status == Return.STATUS_CANCELED:
                raise NotAllowedError("Cannot update a canceled return")

            rest = {key: value for key, value in data.items() if key != 'metadata'}
            if 'metadata' in data:
                ret.metadata = set_metadata(ret, data['metadata'] or {})

            columns = {f.attname for f in Return._meta.concrete_fields} - {'id'}
            for key, value in rest.items():
                if key not in columns:
                    raise InvalidDataError(f"Return has no field named {key!r}")
                setattr(ret, key, value)

            ret.save(using=using)

        logger.info(f"Return updated: {ret.pk} ({', '.join(sorted(data))})")
        return ret

    # ============================================================
    # CREATE
    # ============================================================

    def create(self, data, using=DEFAULT_DB_ALIAS):
        """
        Creates a return request for an order (or a swap), with the given
        items and an optional return shipping method. If no refund amount is
        provided it is calculated from the return lines minus the
        tax-inclusive shipping cost, never below zero.

        data keys: order_id, swap_id, claim_order_id, items, shipping_method,
        refund_amount, no_notification, metadata, idempotency_key
        """
        with transaction.atomic(using=using):
            idempotency_key = data.get('idempotency_key')
            if idempotency_key:
                existing = (
                    Return.objects.using(using).filter(idempotency_key=idempotency_key).first()
                )
                if existing is not None:
                    logger.info(
                        f"Duplicate return request blocked. Idempotency key: {idempotency_key}"
                    )
                    return existing

            items = data.get('items') or []
            if not items:
                raise InvalidDataError("Return must contain at least one item")

            order_id = data.get('order_id')
            swap_id = data.get('swap_id')
            if order_id is None and swap_id is None:
                raise InvalidDataError("Return must reference an order or a swap")

            for requested in items:
                line = self.line_item_service.retrieve(
                    requested['item_id'],
                    relations=['order', 'swap', 'claim_order'],
                    using=using,
                )
                owners = (line.order, line.swap, line.claim_order)
                if any(owner is not None and owner.canceled_at for owner in owners):
                    raise InvalidDataError("Cannot create a return for a canceled item.")

            order_config = {
                'select': ['refunded_total', 'paid_total', 'total', 'refundable_amount', 'tax_rate'],
                'relations': ['swaps', 'swaps.additional_items', 'items'],
                'using': using,
            }
            if order_id is not None:
                order = self.order_service.retrieve(order_id, **order_config)
            else:
                order = self.order_service.retrieve_by_swap(swap_id, **order_config)

            return_lines = self._get_fulfillment_items(
                order, items, self.validate_return_line_item
            )

            for line in return_lines:
                if line.reason_id is not None:
                    try:
                        self.return_reason_service.retrieve(line.reason_id, using=using)
                    except NotFoundError as err:
                        raise InvalidDataError(err.message) from err

            shipping_method = data.get('shipping_method')
            if shipping_method:
                shipping_method = dict(shipping_method)
                if shipping_method.get('price') is None:
                    option = self.shipping_option_service.retrieve(
                        shipping_method['option_id'], using=using
                    )
                    shipping_method['price'] = option.amount

            to_refund = data.get('refund_amount')
            if to_refund is not None:
                if to_refund > order.refundable_amount:
                    raise InvalidDataError("Cannot refund more than the original payment")
            else:
                to_refund = self.totals_service.get_refund_total(order, return_lines)
                if shipping_method:
                    shipping_cost = shipping_method['price'] * (1 + order.tax_rate / 100)
                    to_refund = max(0, to_refund - shipping_cost)

            no_notification = data.get('no_notification')
            ret = Return(
                order_id=None if swap_id is not None else order.pk,
                swap_id=swap_id,
                claim_order_id=data.get('claim_order_id'),
                status=Return.STATUS_REQUESTED,
                refund_amount=math.floor(to_refund),
                metadata=data.get('metadata') or {},
                no_notification=no_notification,
                idempotency_key=idempotency_key or None,
            )
            ret.save(using=using)

            ReturnItem.objects.using(using).bulk_create([
                ReturnItem(
                    return_order=ret,
                    item_id=line.item_id,
                    quantity=line.quantity,
                    requested_quantity=line.quantity,
                    reason_id=line.reason_id,
                    note=line.note,
                    metadata=line.metadata,
                    no_notification=no_notification,
                )
                for line in return_lines
            ])

            if shipping_method:
                self.shipping_option_service.create_shipping_method(
                    shipping_method['option_id'],
                    {},
                    {'price': shipping_method['price'], 'return_id': ret.pk},
                    using=using,
                )

            self._record_status(
                ret, '', f'Return requested with {len(return_lines)} item(s)', using
            )
            self._notify(ret, 'return.requested', using)

        logger.info(
            f"Return created: {ret.pk} for order {order.pk} | "
            f"{len(return_lines)} item(s) | refund {ret.refund_amount}"
        )
        return ret

    # ============================================================
    # FULFILL
    # ============================================================

    def fulfill(self, return_id, using=DEFAULT_DB_ALIAS):
        """
        Asks the fulfillment provider of the return's shipping method for the
        return shipment (label, tracking...) and stores it as shipping_data.
        A return without a shipping method is returned untouched.
        """
        with transaction.atomic(using=using):
            ret = self.retrieve(return_id, {
                'relations': [
                    'items',
                    'shipping_method',
                    'shipping_method.shipping_option',
                    'swap',
                    'claim_order',
                ],
            }, using=using)

            if ret.status == Return.STATUS_CANCELED:
                raise NotAllowedError("Cannot fulfill a canceled return")

            return_items = list(ret.items.all())
            line_items = self.line_item_service.list(
                {'id': [item.item_id for item in return_items]}, using=using
            )
            by_id = {item.pk: item for item in line_items}

            if ret.shipping_data is not None:
                raise NotAllowedError("Return has already been fulfilled")

            shipping_method = self._get_shipping_method(ret)
            if shipping_method is None:
                return ret

            return_data = FulfillmentReturn(
                return_id=ret.pk,
                order_id=ret.order_id,
                swap_id=ret.swap_id,
                claim_order_id=ret.claim_order_id,
                shipping_method=shipping_method,
                items=tuple(
                    FulfillmentItem(return_item=item, item=by_id.get(item.item_id))
                    for item in return_items
                ),
                metadata=dict(ret.metadata or {}),
            )

            ret.shipping_data = self.fulfillment_provider_service.create_return(return_data)
            ret.save(using=using)

        logger.info(f"Return fulfilled: {ret.pk} via {return_data.provider_id}")
        return ret

    # ============================================================
    # RECEIVE
    # ============================================================

    def _received_item(self, ret, line, existing):
        """The ReturnItem row to store for a received line."""
        if existing is None:
            return ReturnItem(
                return_order_id=ret.pk,
                item_id=line.item_id,
                quantity=line.quantity,
                is_requested=False,
                received_quantity=line.quantity,
                metadata=line.metadata or {},
                no_notification=ret.no_notification,
            )

        # Same row, new values. Lines that arrived unrequested keep no request.
        requested = existing.requested_quantity
        if requested is None and existing.is_requested:
            requested = existing.quantity
        return ReturnItem(
            pk=existing.pk,
            return_order_id=existing.return_order_id,
            item_id=existing.item_id,
            quantity=line.quantity,
            requested_quantity=requested,
            received_quantity=line.quantity,
            is_requested=requested is not None and line.quantity == requested,
            reason_id=existing.reason_id,
            note=existing.note,
            metadata=existing.metadata,
            no_notification=existing.no_notification,
        )

    def receive(self, return_id, received_items, refund_amount=None,
                allow_mismatch=False, using=DEFAULT_DB_ALIAS):
        """
        Registers a requested return as received.

        A return in "requires_action" can be received again with the full
        count of what has arrived so far. Only the difference to the earlier
        count is restocked, and returned quantities on the line items, which
        were counted on the first receive, are left alone.

        If the received items don't match the requested items the return goes
        to "requires_action" instead of "received", unless allow_mismatch is
        set. Useful when the warehouse gets fewer (or other) items than the
        customer announced and someone needs to decide on the refund.
        """
        with transaction.atomic(using=using):
            ret = self.retrieve(return_id, {
                'relations': ['items', 'swap', 'swap.additional_items'],
            }, using=using)

            if ret.status == Return.STATUS_CANCELED:
                raise NotAllowedError("Cannot receive a canceled return")

            if ret.status == Return.STATUS_RECEIVED:
                logger.warning("Receive rejected: return %s already received", ret.pk)
                raise NotAllowedError(f"Return with id {return_id} has already been received")

            # Returns on a swap are reconciled against the swap's order
            order_id = ret.swap.order_id if ret.swap else ret.order_id
            order = self.order_service.retrieve(order_id, relations=[
                'items',
                'returns',
                'shipping_methods',
                'swaps',
                'swaps.additional_items',
            ], using=using)

            original_items = list(ret.items.all())
            existing_by_item = {item.item_id: item for item in original_items}
            first_receive = ret.status == Return.STATUS_REQUESTED

            # Units of this return already counted in returned_quantity
            counted = {} if first_receive else {
                item.item_id: item.requested_quantity
                for item in original_items
                if item.requested_quantity is not None
            }

            def received_line(item, quantity, data):
                credit = counted.get(item.pk, 0) if item is not None else 0
                line = self.validate_return_line_item(item, quantity - credit, data)
                return replace(line, quantity=quantity)

            return_lines = self._get_fulfillment_items(order, received_items, received_line)
            new_items = [
                self._received_item(ret, line, existing_by_item.get(line.item_id))
                for line in return_lines
            ]

            is_matching = all(item.is_requested for item in new_items)
            previous_status = ret.status
            if is_matching or allow_mismatch:
                ret.status = Return.STATUS_RECEIVED
            else:
                ret.status = Return.STATUS_REQUIRES_ACTION

            if refund_amount is not None:
                ret.refund_amount = math.floor(refund_amount)
            ret.received_at = timezone.now()
            ret.save(using=using)

            for item in new_items:
                item.save(using=using)

            if first_receive:
                for item in original_items:
                    line_item = self.line_item_service.retrieve(item.item_id, using=using)
                    returned_quantity = (line_item.returned_quantity or 0) + item.quantity
                    self.line_item_service.update(
                        item.item_id, {'returned_quantity': returned_quantity}, using=using
                    )

            order_items = {item.pk: item for item in order.items.all()}
            for item in new_items:
                order_item = order_items.get(item.item_id)
                existing = existing_by_item.get(item.item_id)
                restock = item.received_quantity - (
                    (existing.received_quantity or 0) if existing is not None else 0
                )
                if order_item is not None and restock:
                    self.inventory_service.adjust_inventory(
                        order_item.variant_id, restock, using=using
                    )

            self._record_status(
                ret,
                previous_status,
                f"Received {sum(item.received_quantity for item in new_items)} item(s)"
                + ("" if is_matching else " (mismatch)"),
                using,
            )
            self._notify(
                ret,
                'return.received' if ret.status == Return.STATUS_RECEIVED
                else 'return.requires_action',
                using,
            )

        logger.info(f"Return received: {ret.pk} | status {ret.status} | refund {ret.refund_amount}")
        return self.retrieve(ret.pk, {'relations': ['items']}, using=using)
