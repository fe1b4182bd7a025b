"""
Returns Module - Tests

These tests validate the core return workflows:
1. Line validation (returnable quantities, reasons, notes)
2. Return creation (refund calculation, shipping, swaps, idempotency)
3. Status transitions (cancel, update, fulfill, receive)
4. Notifications, the admin API and the Django admin

Run tests with: python manage.py test returns
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import Mock, patch

from django.contrib import admin
from django.core import mail
from django.test import RequestFactory, TestCase, TransactionTestCase
from django.utils import timezone
from kombu.exceptions import OperationalError
from rest_framework.test import APIClient

from .admin import ReturnAdmin
from .collaborators import FulfillmentProviderService, TotalsService
from .exceptions import InvalidDataError, NotAllowedError, NotFoundError
from .lines import FulfillmentReturn, ReturnLine
from .models import (
    ClaimOrder, LineItem, Order, ProductVariant, Return, ReturnItem,
    ReturnReason, ReturnStatusHistory, ShippingMethod, ShippingOption, Swap,
)
from .services import ReturnService
from .tasks import send_return_notification
from .utils import build_filters, set_metadata


class BaseTestCase(TestCase):
    """
    Base test class with helper methods to create test data.
    All test classes inherit from this.
    """

    def setUp(self):
        """Runs before EVERY test method. Creates fresh test data."""
        self.client = APIClient()
        self.base_url = '/api/v1/returns'
        self.service = ReturnService()

        # Shipped and paid order with 25% tax
        self.order = Order.objects.create(
            order_number='ORD-TEST-001',
            email='test@example.com',
            fulfillment_status='fulfilled',
            payment_status='captured',
            tax_rate=Decimal('25.00'),
            total=10000,
            paid_total=10000,
            refunded_total=0,
        )

        self.variant = ProductVariant.objects.create(
            sku='TSHIRT-M', title='T-Shirt M', inventory_quantity=10,
        )

        # 3 x 1000 with a tracked variant
        self.shirt = LineItem.objects.create(
            order=self.order, variant=self.variant,
            title='T-Shirt', unit_price=1000, quantity=3,
            metadata={'color': 'blue'},
        )

        # 1 x 500, no variant
        self.cap = LineItem.objects.create(
            order=self.order, title='Cap', unit_price=500, quantity=1,
        )

        # Exchange on the order with one new item sent out
        self.swap = Swap.objects.create(order=self.order)
        self.swap_item = LineItem.objects.create(
            swap=self.swap, title='T-Shirt L', unit_price=2000, quantity=1,
        )

        self.return_option = ShippingOption.objects.create(
            name='Return label', provider_id='manual', amount=100, is_return=True,
        )
        self.reason = ReturnReason.objects.create(value='too_small', label='Too small')

    def _create_return(self, quantity=2, **extra):
        """Helper to create a return for the shirt line."""
        data = {
            'order_id': self.order.pk,
            'items': [{'item_id': self.shirt.pk, 'quantity': quantity}],
        }
        data.update(extra)
        return self.service.create(data)


# ============================================================
# LINE VALIDATION TESTS
# ============================================================

class ValidateReturnLineItemTests(BaseTestCase):
    """Test the per-line returnable quantity check."""

    def test_exactly_returnable_quantity_is_allowed(self):
        """Returning everything that is left should pass."""
        self.shirt.returned_quantity = 1
        line = self.service.validate_return_line_item(self.shirt, 2, {})
        self.assertEqual(line.quantity, 2)
        self.assertEqual(line.item_id, self.shirt.pk)

    def test_more_than_returnable_quantity_is_rejected(self):
        self.shirt.returned_quantity = 1
        with self.assertRaises(NotAllowedError) as ctx:
            self.service.validate_return_line_item(self.shirt, 3, {})
        self.assertEqual(ctx.exception.message, "Cannot return more items than have been purchased")

    def test_missing_returned_quantity_counts_as_zero(self):
        self.shirt.returned_quantity = None
        line = self.service.validate_return_line_item(self.shirt, 3, {})
        self.assertEqual(line.quantity, 3)

    def test_missing_item_is_invalid(self):
        with self.assertRaises(InvalidDataError):
            self.service.validate_return_line_item(None, 1, {})

    def test_additional_fields_are_copied(self):
        """reason_id, note and metadata come from the request when given."""
        line = self.service.validate_return_line_item(
            self.shirt, 1,
            {'reason_id': self.reason.pk, 'note': 'Too tight', 'metadata': {'x': 1}},
        )
        self.assertEqual(line.reason_id, self.reason.pk)
        self.assertEqual(line.note, 'Too tight')
        self.assertEqual(line.metadata, {'x': 1})

    def test_item_metadata_is_the_default(self):
        line = self.service.validate_return_line_item(self.shirt, 1, {})
        self.assertEqual(line.metadata, {'color': 'blue'})
        self.assertIsNone(line.reason_id)
        self.assertIsNone(line.note)


class ValidateReturnStatusesTests(BaseTestCase):
    """Test whether an order can be returned at all."""

    def test_fulfilled_and_captured_order_passes(self):
        self.service.validate_return_statuses(self.order)

    def test_unfulfilled_order_is_rejected(self):
        self.order.fulfillment_status = 'not_fulfilled'
        with self.assertRaises(NotAllowedError):
            self.service.validate_return_statuses(self.order)

    def test_returned_order_is_rejected(self):
        self.order.fulfillment_status = 'returned'
        with self.assertRaises(NotAllowedError):
            self.service.validate_return_statuses(self.order)

    def test_uncaptured_payment_is_rejected(self):
        self.order.payment_status = 'awaiting'
        with self.assertRaises(NotAllowedError):
            self.service.validate_return_statuses(self.order)


# ============================================================
# RETURN CREATION TESTS
# ============================================================

class ReturnCreationTests(BaseTestCase):
    """Test return request creation."""

    def test_create_return_success(self):
        """Refund is the tax-inclusive value of the returned lines."""
        ret = self._create_return()

        self.assertEqual(ret.status, Return.STATUS_REQUESTED)
        self.assertEqual(ret.order_id, self.order.pk)
        self.assertEqual(ret.refund_amount, 2500)  # 2 x 1000 + 25% tax

        item = ReturnItem.objects.get(return_order=ret)
        self.assertEqual(item.item_id, self.shirt.pk)
        self.assertEqual(item.quantity, 2)
        self.assertEqual(item.requested_quantity, 2)
        self.assertTrue(item.is_requested)
        self.assertEqual(item.metadata, {'color': 'blue'})

    def test_shipping_cost_is_deducted_with_tax(self):
        """Return label (100 + 25% tax) comes off the refund."""
        ret = self._create_return(shipping_method={'option_id': self.return_option.pk})
        self.assertEqual(ret.refund_amount, 2375)

        method = ShippingMethod.objects.get(return_order=ret)
        self.assertEqual(method.price, 100)
        self.assertEqual(method.shipping_option_id, self.return_option.pk)
        self.assertIsNone(method.order_id)

    def test_explicit_shipping_price_overrides_option_amount(self):
        ret = self._create_return(
            shipping_method={'option_id': self.return_option.pk, 'price': 0}
        )
        self.assertEqual(ret.refund_amount, 2500)
        self.assertEqual(ret.shipping_method.price, 0)

    def test_refund_is_floored(self):
        """2500 - 33 * 1.25 = 2458.75 -> 2458"""
        ret = self._create_return(
            shipping_method={'option_id': self.return_option.pk, 'price': 33}
        )
        self.assertEqual(ret.refund_amount, 2458)

    def test_refund_never_goes_below_zero(self):
        ret = self._create_return(
            shipping_method={'option_id': self.return_option.pk, 'price': 5000}
        )
        self.assertEqual(ret.refund_amount, 0)

    def test_explicit_refund_amount_is_used(self):
        ret = self._create_return(refund_amount=1200)
        self.assertEqual(ret.refund_amount, 1200)

    def test_refund_cannot_exceed_refundable_amount(self):
        self.order.refunded_total = 9000
        self.order.save()

        with self.assertRaises(InvalidDataError) as ctx:
            self._create_return(refund_amount=1001)
        self.assertEqual(ctx.exception.message, "Cannot refund more than the original payment")
        self.assertEqual(Return.objects.count(), 0)

    def test_refund_equal_to_refundable_amount_is_allowed(self):
        self.order.refunded_total = 9000
        self.order.save()

        ret = self._create_return(refund_amount=1000)
        self.assertEqual(ret.refund_amount, 1000)

    def test_create_return_records_status_history(self):
        ret = self._create_return()

        history = ReturnStatusHistory.objects.filter(return_order=ret)
        self.assertEqual(history.count(), 1)
        self.assertEqual(history.first().to_status, 'requested')

    def test_reason_and_note_are_stored(self):
        ret = self.service.create({
            'order_id': self.order.pk,
            'items': [{
                'item_id': self.shirt.pk, 'quantity': 1,
                'reason_id': self.reason.pk, 'note': 'Too tight',
            }],
        })
        item = ret.items.get()
        self.assertEqual(item.reason_id, self.reason.pk)
        self.assertEqual(item.note, 'Too tight')

    def test_unknown_reason_is_rejected(self):
        with self.assertRaises(InvalidDataError):
            self.service.create({
                'order_id': self.order.pk,
                'items': [{'item_id': self.shirt.pk, 'quantity': 1, 'reason_id': 9999}],
            })

    def test_idempotency_prevents_duplicates(self):
        """Same idempotency key should return existing return, not create new."""
        first = self._create_return(idempotency_key='unique-key-123')
        second = self._create_return(idempotency_key='unique-key-123')

        self.assertEqual(first.pk, second.pk)
        self.assertEqual(Return.objects.count(), 1)

    def test_empty_items_rejected(self):
        with self.assertRaises(InvalidDataError):
            self.service.create({'order_id': self.order.pk, 'items': []})

    def test_order_or_swap_required(self):
        with self.assertRaises(InvalidDataError):
            self.service.create({'items': [{'item_id': self.shirt.pk, 'quantity': 1}]})

    def test_unknown_line_item_is_not_found(self):
        with self.assertRaises(NotFoundError):
            self.service.create({
                'order_id': self.order.pk,
                'items': [{'item_id': 9999, 'quantity': 1}],
            })

    def test_item_from_another_order_is_invalid(self):
        other_order = Order.objects.create(order_number='ORD-TEST-002')
        other_item = LineItem.objects.create(
            order=other_order, title='Mug', unit_price=700, quantity=1,
        )

        with self.assertRaises(InvalidDataError) as ctx:
            self.service.create({
                'order_id': self.order.pk,
                'items': [{'item_id': other_item.pk, 'quantity': 1}],
            })
        self.assertEqual(ctx.exception.message, "Return contains invalid line item")

    def test_more_than_purchased_is_rejected(self):
        with self.assertRaises(NotAllowedError):
            self._create_return(quantity=4)

    def test_already_returned_units_count(self):
        self.shirt.returned_quantity = 2
        self.shirt.save()

        with self.assertRaises(NotAllowedError):
            self._create_return(quantity=2)

    def test_duplicate_item_in_request_is_rejected(self):
        with self.assertRaises(InvalidDataError):
            self.service.create({
                'order_id': self.order.pk,
                'items': [
                    {'item_id': self.shirt.pk, 'quantity': 1},
                    {'item_id': self.shirt.pk, 'quantity': 1},
                ],
            })

    def test_canceled_order_cannot_be_returned(self):
        self.order.canceled_at = timezone.now()
        self.order.save()

        with self.assertRaises(InvalidDataError) as ctx:
            self._create_return()
        self.assertEqual(ctx.exception.message, "Cannot create a return for a canceled item.")

    def test_canceled_swap_item_cannot_be_returned(self):
        self.swap.canceled_at = timezone.now()
        self.swap.save()

        with self.assertRaises(InvalidDataError):
            self.service.create({
                'swap_id': self.swap.pk,
                'items': [{'item_id': self.swap_item.pk, 'quantity': 1}],
            })

    def test_canceled_claim_item_cannot_be_returned(self):
        claim = ClaimOrder.objects.create(order=self.order, canceled_at=timezone.now())
        claim_item = LineItem.objects.create(
            claim_order=claim, title='Replacement', unit_price=1000, quantity=1,
        )

        with self.assertRaises(InvalidDataError):
            self.service.create({
                'order_id': self.order.pk,
                'items': [{'item_id': claim_item.pk, 'quantity': 1}],
            })

    def test_create_return_for_swap(self):
        """Swap returns hang off the swap, not the order."""
        ret = self.service.create({
            'swap_id': self.swap.pk,
            'items': [{'item_id': self.swap_item.pk, 'quantity': 1}],
        })

        self.assertIsNone(ret.order_id)
        self.assertEqual(ret.swap_id, self.swap.pk)
        self.assertEqual(ret.refund_amount, 2500)  # 2000 + 25% tax

    def test_swap_items_can_be_returned_on_the_order(self):
        """The order's pool includes additional items of its swaps."""
        ret = self.service.create({
            'order_id': self.order.pk,
            'items': [{'item_id': self.swap_item.pk, 'quantity': 1}],
        })
        self.assertEqual(ret.items.get().item_id, self.swap_item.pk)

    def test_failed_create_leaves_nothing_behind(self):
        """Shipping method creation fails -> return and items are rolled back."""
        with self.assertRaises(NotFoundError):
            self._create_return(shipping_method={'option_id': 9999, 'price': 10})

        self.assertEqual(Return.objects.count(), 0)
        self.assertEqual(ReturnItem.objects.count(), 0)


# ============================================================
# CANCEL / UPDATE TESTS
# ============================================================

class CancelReturnTests(BaseTestCase):
    """Test return cancellation."""

    def test_cancel_requested_return(self):
        ret = self._create_return()
        canceled = self.service.cancel(ret.pk)

        self.assertEqual(canceled.status, Return.STATUS_CANCELED)
        self.assertEqual(Return.objects.get(pk=ret.pk).status, 'canceled')

    def test_cancel_records_history(self):
        ret = self._create_return()
        self.service.cancel(ret.pk)

        history = ReturnStatusHistory.objects.filter(return_order=ret, to_status='canceled')
        self.assertEqual(history.count(), 1)
        self.assertEqual(history.first().from_status, 'requested')

    def test_cannot_cancel_received_return(self):
        ret = self._create_return()
        Return.objects.filter(pk=ret.pk).update(status=Return.STATUS_RECEIVED)

        with self.assertRaises(NotAllowedError) as ctx:
            self.service.cancel(ret.pk)
        self.assertEqual(ctx.exception.message, "Can't cancel a return which has been returned")

    def test_cancel_twice_is_allowed(self):
        ret = self._create_return()
        self.service.cancel(ret.pk)
        again = self.service.cancel(ret.pk)
        self.assertEqual(again.status, Return.STATUS_CANCELED)

    def test_requires_action_return_can_be_canceled(self):
        ret = self._create_return()
        Return.objects.filter(pk=ret.pk).update(status=Return.STATUS_REQUIRES_ACTION)

        self.assertEqual(self.service.cancel(ret.pk).status, Return.STATUS_CANCELED)

    def test_cancel_unknown_return(self):
        with self.assertRaises(NotFoundError):
            self.service.cancel(9999)


class UpdateReturnTests(BaseTestCase):

    def test_metadata_is_merged(self):
        ret = self._create_return(metadata={'source': 'web'})
        self.service.update(ret.pk, {'metadata': {'ticket': 'T-1'}})

        ret.refresh_from_db()
        self.assertEqual(ret.metadata, {'source': 'web', 'ticket': 'T-1'})

    def test_plain_fields_are_set(self):
        ret = self._create_return()
        updated = self.service.update(ret.pk, {'no_notification': True, 'refund_amount': 100})

        self.assertTrue(updated.no_notification)
        self.assertEqual(Return.objects.get(pk=ret.pk).refund_amount, 100)

    def test_unknown_field_is_rejected(self):
        ret = self._create_return()
        with self.assertRaises(InvalidDataError):
            self.service.update(ret.pk, {'colour': 'red'})

    def test_canceled_return_cannot_be_updated(self):
        ret = self._create_return()
        self.service.cancel(ret.pk)

        with self.assertRaises(NotAllowedError) as ctx:
            self.service.update(ret.pk, {'metadata': {'a': 1}})
        self.assertEqual(ctx.exception.message, "Cannot update a canceled return")


# ============================================================
# READ TESTS
# ============================================================

class RetrieveAndListTests(BaseTestCase):

    def test_retrieve_unknown_return(self):
        with self.assertRaises(NotFoundError) as ctx:
            self.service.retrieve(9999)
        self.assertEqual(ctx.exception.message, "Return with id: 9999 was not found")

    def test_retrieve_invalid_id(self):
        with self.assertRaises(InvalidDataError):
            self.service.retrieve('abc')

    def test_retrieve_with_relations(self):
        ret = self._create_return(shipping_method={'option_id': self.return_option.pk})
        loaded = self.service.retrieve(ret.pk, {'relations': ['items', 'shipping_method']})

        self.assertEqual(len(loaded.items.all()), 1)
        self.assertEqual(loaded.shipping_method.price, 100)

    def test_retrieve_by_swap(self):
        ret = self.service.create({
            'swap_id': self.swap.pk,
            'items': [{'item_id': self.swap_item.pk, 'quantity': 1}],
        })
        self.assertEqual(self.service.retrieve_by_swap(self.swap.pk).pk, ret.pk)

    def test_retrieve_by_swap_without_return(self):
        with self.assertRaises(NotFoundError):
            self.service.retrieve_by_swap(self.swap.pk)

    def test_list_newest_first(self):
        first = self._create_return(quantity=1)
        second = self.service.create({
            'order_id': self.order.pk,
            'items': [{'item_id': self.cap.pk, 'quantity': 1}],
        })
        Return.objects.filter(pk=first.pk).update(
            created_at=timezone.now() - timedelta(days=1)
        )

        self.assertEqual([r.pk for r in self.service.list()], [second.pk, first.pk])

    def test_list_with_selector_and_paging(self):
        first = self._create_return(quantity=1)
        self.service.create({
            'order_id': self.order.pk,
            'items': [{'item_id': self.cap.pk, 'quantity': 1}],
        })
        self.service.cancel(first.pk)

        canceled = self.service.list({'status': 'canceled'})
        self.assertEqual([r.pk for r in canceled], [first.pk])

        page = self.service.list({}, {'skip': 0, 'take': 1})
        self.assertEqual(len(page), 1)

        by_ids = self.service.list({'id': [first.pk]})
        self.assertEqual(len(by_ids), 1)


# ============================================================
# FULFILL TESTS
# ============================================================

class FulfillReturnTests(BaseTestCase):

    def test_fulfill_stores_provider_payload(self):
        ret = self._create_return(shipping_method={'option_id': self.return_option.pk})
        fulfilled = self.service.fulfill(ret.pk)

        self.assertEqual(fulfilled.shipping_data['provider_id'], 'manual')
        self.assertEqual(fulfilled.shipping_data['shipping_option'], 'Return label')
        self.assertEqual(
            fulfilled.shipping_data['items'],
            [{'item_id': self.shirt.pk, 'title': 'T-Shirt', 'quantity': 2}],
        )
        self.assertIsNotNone(Return.objects.get(pk=ret.pk).shipping_data)

    def test_fulfill_without_shipping_method_is_a_no_op(self):
        ret = self._create_return()
        fulfilled = self.service.fulfill(ret.pk)

        self.assertIsNone(fulfilled.shipping_data)
        self.assertEqual(fulfilled.status, Return.STATUS_REQUESTED)

    def test_cannot_fulfill_twice(self):
        ret = self._create_return(shipping_method={'option_id': self.return_option.pk})
        self.service.fulfill(ret.pk)

        with self.assertRaises(NotAllowedError) as ctx:
            self.service.fulfill(ret.pk)
        self.assertEqual(ctx.exception.message, "Return has already been fulfilled")

    def test_cannot_fulfill_canceled_return(self):
        ret = self._create_return(shipping_method={'option_id': self.return_option.pk})
        self.service.cancel(ret.pk)

        with self.assertRaises(NotAllowedError):
            self.service.fulfill(ret.pk)

    def test_unknown_provider_is_not_found(self):
        option = ShippingOption.objects.create(name='Courier', provider_id='courier', amount=0)
        ret = self._create_return(shipping_method={'option_id': option.pk})

        with self.assertRaises(NotFoundError):
            self.service.fulfill(ret.pk)
        self.assertIsNone(Return.objects.get(pk=ret.pk).shipping_data)

    def test_provider_gets_return_data(self):
        provider = Mock()
        provider.create_return.return_value = {'label': 'L-1'}
        service = ReturnService(
            fulfillment_provider_service=FulfillmentProviderService(providers={'manual': provider})
        )
        ret = self._create_return(shipping_method={'option_id': self.return_option.pk})

        fulfilled = service.fulfill(ret.pk)

        self.assertEqual(fulfilled.shipping_data, {'label': 'L-1'})
        return_data = provider.create_return.call_args[0][0]
        self.assertIsInstance(return_data, FulfillmentReturn)
        self.assertEqual(return_data.return_id, ret.pk)
        self.assertEqual(return_data.order_id, self.order.pk)
        self.assertEqual(return_data.provider_id, 'manual')
        self.assertEqual(len(return_data.items), 1)
        self.assertEqual(return_data.items[0].item.pk, self.shirt.pk)
        self.assertEqual(return_data.items[0].quantity, 2)


# ============================================================
# RECEIVE TESTS
# ============================================================

class ReceiveReturnTests(BaseTestCase):

    def test_partial_receive_requires_action(self):
        """2 requested, 1 arrived -> requires_action."""
        ret = self._create_return(quantity=2)

        received = self.service.receive(ret.pk, [{'item_id': self.shirt.pk, 'quantity': 1}])

        self.assertEqual(received.status, Return.STATUS_REQUIRES_ACTION)
        self.assertIsNotNone(received.received_at)

        item = received.items.get()
        self.assertEqual(item.quantity, 1)
        self.assertEqual(item.received_quantity, 1)
        self.assertEqual(item.requested_quantity, 2)
        self.assertFalse(item.is_requested)

    def test_full_receive(self):
        ret = self._create_return(quantity=2)

        received = self.service.receive(ret.pk, [{'item_id': self.shirt.pk, 'quantity': 2}])

        self.assertEqual(received.status, Return.STATUS_RECEIVED)
        item = received.items.get()
        self.assertTrue(item.is_requested)
        self.assertEqual(item.received_quantity, 2)

    def test_receive_updates_returned_quantity_and_inventory(self):
        ret = self._create_return(quantity=2)
        self.service.receive(ret.pk, [{'item_id': self.shirt.pk, 'quantity': 2}])

        self.shirt.refresh_from_db()
        self.variant.refresh_from_db()
        self.assertEqual(self.shirt.returned_quantity, 2)
        self.assertEqual(self.variant.inventory_quantity, 12)

    def test_partial_receive_restocks_what_arrived(self):
        """returned_quantity follows the request, inventory what arrived."""
        ret = self._create_return(quantity=2)
        self.service.receive(ret.pk, [{'item_id': self.shirt.pk, 'quantity': 1}])

        self.shirt.refresh_from_db()
        self.variant.refresh_from_db()
        self.assertEqual(self.shirt.returned_quantity, 2)
        self.assertEqual(self.variant.inventory_quantity, 11)

    def test_unmanaged_inventory_is_left_alone(self):
        self.variant.manage_inventory = False
        self.variant.save()
        ret = self._create_return(quantity=2)

        self.service.receive(ret.pk, [{'item_id': self.shirt.pk, 'quantity': 2}])

        self.variant.refresh_from_db()
        self.assertEqual(self.variant.inventory_quantity, 10)

    def test_unrequested_item_requires_action(self):
        ret = self._create_return(quantity=2)

        received = self.service.receive(ret.pk, [
            {'item_id': self.shirt.pk, 'quantity': 2},
            {'item_id': self.cap.pk, 'quantity': 1},
        ])

        self.assertEqual(received.status, Return.STATUS_REQUIRES_ACTION)
        extra = received.items.get(item=self.cap)
        self.assertFalse(extra.is_requested)
        self.assertEqual(extra.received_quantity, 1)
        self.assertIsNone(extra.requested_quantity)

    def test_allow_mismatch_marks_received(self):
        ret = self._create_return(quantity=2)

        received = self.service.receive(
            ret.pk, [{'item_id': self.shirt.pk, 'quantity': 1}], allow_mismatch=True,
        )
        self.assertEqual(received.status, Return.STATUS_RECEIVED)

    def test_refund_amount_override_is_floored(self):
        ret = self._create_return(quantity=2)

        received = self.service.receive(
            ret.pk, [{'item_id': self.shirt.pk, 'quantity': 2}], refund_amount=1234.7,
        )
        self.assertEqual(received.refund_amount, 1234)

    def test_refund_amount_kept_without_override(self):
        ret = self._create_return(quantity=2)
        received = self.service.receive(ret.pk, [{'item_id': self.shirt.pk, 'quantity': 2}])
        self.assertEqual(received.refund_amount, 2500)

    def test_cannot_receive_twice(self):
        ret = self._create_return(quantity=2)
        self.service.receive(ret.pk, [{'item_id': self.shirt.pk, 'quantity': 2}])

        with self.assertRaises(NotAllowedError):
            self.service.receive(ret.pk, [{'item_id': self.shirt.pk, 'quantity': 1}])

    def test_cannot_receive_canceled_return(self):
        ret = self._create_return(quantity=2)
        self.service.cancel(ret.pk)

        with self.assertRaises(NotAllowedError):
            self.service.receive(ret.pk, [{'item_id': self.shirt.pk, 'quantity': 2}])

    def test_receive_records_history(self):
        ret = self._create_return(quantity=2)
        self.service.receive(ret.pk, [{'item_id': self.shirt.pk, 'quantity': 1}])

        last = ReturnStatusHistory.objects.filter(return_order=ret).last()
        self.assertEqual(last.from_status, 'requested')
        self.assertEqual(last.to_status, 'requires_action')

    def test_receiving_again_counts_only_new_units(self):
        """Same count twice: nothing new arrived, nothing is counted twice."""
        ret = self._create_return(quantity=2)
        self.service.receive(ret.pk, [{'item_id': self.shirt.pk, 'quantity': 1}])

        again = self.service.receive(ret.pk, [{'item_id': self.shirt.pk, 'quantity': 1}])

        self.assertEqual(again.status, Return.STATUS_REQUIRES_ACTION)
        item = again.items.get()
        self.assertEqual(item.requested_quantity, 2)
        self.assertEqual(item.received_quantity, 1)
        self.shirt.refresh_from_db()
        self.variant.refresh_from_db()
        self.assertEqual(self.shirt.returned_quantity, 2)
        self.assertEqual(self.variant.inventory_quantity, 11)

    def test_receiving_the_rest_settles_the_return(self):
        ret = self._create_return(quantity=2)
        self.service.receive(ret.pk, [{'item_id': self.shirt.pk, 'quantity': 1}])

        settled = self.service.receive(ret.pk, [{'item_id': self.shirt.pk, 'quantity': 2}])

        self.assertEqual(settled.status, Return.STATUS_RECEIVED)
        item = settled.items.get()
        self.assertTrue(item.is_requested)
        self.assertEqual(item.received_quantity, 2)
        self.shirt.refresh_from_db()
        self.variant.refresh_from_db()
        self.assertEqual(self.shirt.returned_quantity, 2)
        self.assertEqual(self.variant.inventory_quantity, 12)

    def test_receive_swap_return(self):
        """Swap returns are matched against the swap's order."""
        ret = self.service.create({
            'swap_id': self.swap.pk,
            'items': [{'item_id': self.swap_item.pk, 'quantity': 1}],
        })

        received = self.service.receive(ret.pk, [{'item_id': self.swap_item.pk, 'quantity': 1}])

        self.assertEqual(received.status, Return.STATUS_RECEIVED)
        self.swap_item.refresh_from_db()
        self.assertEqual(self.swap_item.returned_quantity, 1)

    def test_failed_receive_rolls_back(self):
        inventory = Mock()
        inventory.adjust_inventory.side_effect = NotFoundError("Variant with id: 1 was not found")
        service = ReturnService(inventory_service=inventory)
        ret = self._create_return(quantity=2)

        with self.assertRaises(NotFoundError):
            service.receive(ret.pk, [{'item_id': self.shirt.pk, 'quantity': 2}])

        self.assertEqual(Return.objects.get(pk=ret.pk).status, Return.STATUS_REQUESTED)
        self.shirt.refresh_from_db()
        self.assertEqual(self.shirt.returned_quantity, 0)


# ============================================================
# COLLABORATOR TESTS
# ============================================================

class CollaboratorTests(BaseTestCase):
    """ReturnService works with any implementation of its collaborators."""

    def test_refund_comes_from_totals_service(self):
        totals = Mock()
        totals.get_refund_total.return_value = 999
        service = ReturnService(totals_service=totals)

        ret = service.create({
            'order_id': self.order.pk,
            'items': [{'item_id': self.shirt.pk, 'quantity': 2}],
        })

        self.assertEqual(ret.refund_amount, 999)
        order, lines = totals.get_refund_total.call_args[0]
        self.assertEqual(order.pk, self.order.pk)
        self.assertEqual([(line.item_id, line.quantity) for line in lines], [(self.shirt.pk, 2)])

    def test_receive_adjusts_inventory_through_collaborator(self):
        inventory = Mock()
        service = ReturnService(inventory_service=inventory)
        ret = self._create_return(quantity=2)

        service.receive(ret.pk, [{'item_id': self.shirt.pk, 'quantity': 2}])

        inventory.adjust_inventory.assert_called_once_with(self.variant.pk, 2, using='default')

    def test_totals_rounds_half_up(self):
        order = Order(order_number='X', tax_rate=Decimal('10.00'))
        item = LineItem(title='Odd', unit_price=1005, quantity=1)
        self.assertEqual(TotalsService().get_refund_total(order, [ReturnLine(item=item, quantity=1)]), 1106)

    def test_unknown_fulfillment_provider(self):
        with self.assertRaises(NotFoundError):
            FulfillmentProviderService(providers={}).retrieve_provider('courier')

    def test_configured_providers_are_loaded(self):
        providers = FulfillmentProviderService().providers
        self.assertIn('manual', providers)


class UtilsTests(TestCase):

    def test_set_metadata_merges(self):
        ret = Return(metadata={'a': 1})
        self.assertEqual(set_metadata(ret, {'b': 2}), {'a': 1, 'b': 2})
        self.assertEqual(ret.metadata, {'a': 1})

    def test_set_metadata_rejects_non_string_keys(self):
        with self.assertRaises(InvalidDataError):
            set_metadata(Return(metadata={}), {1: 'x'})

    def test_build_filters(self):
        self.assertEqual(
            build_filters({'id': [1, 2], 'status': 'requested'}),
            {'id__in': [1, 2], 'status': 'requested'},
        )


# ============================================================
# NOTIFICATION TESTS
# ============================================================

class NotificationTests(BaseTestCase):

    def test_create_queues_notification_after_commit(self):
        with patch('returns.services.send_return_notification.delay') as delay:
            with self.captureOnCommitCallbacks(execute=True):
                ret = self._create_return()

        delay.assert_called_once_with(ret.pk, 'return.requested')

    def test_no_notification_skips_queue(self):
        with patch('returns.services.send_return_notification.delay') as delay:
            with self.captureOnCommitCallbacks(execute=True):
                self._create_return(no_notification=True)

        delay.assert_not_called()

    def test_failed_operation_queues_nothing(self):
        with patch('returns.services.send_return_notification.delay') as delay:
            with self.captureOnCommitCallbacks(execute=True) as callbacks:
                with self.assertRaises(NotAllowedError):
                    self._create_return(quantity=5)

        self.assertEqual(len(callbacks), 0)
        delay.assert_not_called()

    def test_receive_queues_requires_action_event(self):
        ret = self._create_return()
        with patch('returns.services.send_return_notification.delay') as delay:
            with self.captureOnCommitCallbacks(execute=True):
                self.service.receive(ret.pk, [{'item_id': self.shirt.pk, 'quantity': 1}])

        delay.assert_called_once_with(ret.pk, 'return.requires_action')

    def test_task_sends_email(self):
        ret = self._create_return()

        send_return_notification(ret.pk, 'return.requested')

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ['test@example.com'])
        self.assertEqual(mail.outbox[0].subject, 'We have registered your return')

    def test_task_uses_swap_order_email(self):
        ret = self.service.create({
            'swap_id': self.swap.pk,
            'items': [{'item_id': self.swap_item.pk, 'quantity': 1}],
        })

        send_return_notification(ret.pk, 'return.requested')

        self.assertEqual(mail.outbox[0].to, ['test@example.com'])

    def test_task_skips_muted_and_missing_returns(self):
        ret = self._create_return(no_notification=True)

        send_return_notification(ret.pk, 'return.requested')
        send_return_notification(9999, 'return.requested')

        self.assertEqual(len(mail.outbox), 0)


class NotificationDispatchTests(TransactionTestCase):
    """Notifications queued after a real commit."""

    def setUp(self):
        self.service = ReturnService()
        self.order = Order.objects.create(
            order_number='ORD-COMMIT-001', email='commit@example.com',
            fulfillment_status='fulfilled', payment_status='captured',
            total=3000, paid_total=3000,
        )
        self.shirt = LineItem.objects.create(
            order=self.order, title='T-Shirt', unit_price=1000, quantity=3,
        )

    def _create_return(self):
        return self.service.create({
            'order_id': self.order.pk,
            'items': [{'item_id': self.shirt.pk, 'quantity': 1}],
        })

    def test_notification_queued_on_commit(self):
        with patch('returns.services.send_return_notification.delay') as delay:
            ret = self._create_return()

        delay.assert_called_once_with(ret.pk, 'return.requested')

    def test_broker_outage_does_not_fail_committed_create(self):
        with patch('returns.services.send_return_notification.delay') as delay:
            delay.side_effect = OperationalError('Error 111 connecting to broker. Connection refused.')
            with self.assertLogs('returns', level='ERROR'):
                ret = self._create_return()

        self.assertEqual(ret.status, Return.STATUS_REQUESTED)
        self.assertEqual(Return.objects.filter(pk=ret.pk).count(), 1)

    def test_broker_outage_does_not_fail_committed_receive(self):
        with patch('returns.services.send_return_notification.delay') as delay:
            ret = self._create_return()
            delay.side_effect = OperationalError('Connection refused')
            received = self.service.receive(ret.pk, [{'item_id': self.shirt.pk, 'quantity': 1}])

        self.assertEqual(received.status, Return.STATUS_RECEIVED)
        self.assertEqual(Return.objects.get(pk=ret.pk).status, Return.STATUS_RECEIVED)


# ============================================================
# API TESTS
# ============================================================

class ReturnApiTests(BaseTestCase):
    """Test the admin API endpoints."""

    def _post_return(self, **extra):
        payload = {
            'order_id': self.order.pk,
            'items': [{'item_id': self.shirt.pk, 'quantity': 2}],
        }
        payload.update(extra)
        return self.client.post(f'{self.base_url}/', payload, format='json')

    def test_create_return_success(self):
        response = self._post_return(shipping_method={'option_id': self.return_option.pk})

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['status'], 'requested')
        self.assertEqual(response.data['refund_amount'], 2375)
        self.assertEqual(len(response.data['items']), 1)
        self.assertEqual(response.data['shipping_method']['price'], 100)

    def test_create_requires_order_or_swap(self):
        response = self.client.post(
            f'{self.base_url}/',
            {'items': [{'item_id': self.shirt.pk, 'quantity': 1}]},
            format='json',
        )
        self.assertEqual(response.status_code, 400)

    def test_business_errors_use_error_format(self):
        response = self._post_return(items=[{'item_id': self.shirt.pk, 'quantity': 9}])

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data['type'], 'not_allowed')
        self.assertEqual(response.data['message'], "Cannot return more items than have been purchased")

    def test_get_nonexistent_return(self):
        response = self.client.get(f'{self.base_url}/9999/')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data['type'], 'not_found')

    def test_get_return_detail(self):
        return_id = self._post_return().data['id']

        response = self.client.get(f'{self.base_url}/{return_id}/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['order_id'], self.order.pk)
        self.assertIsNone(response.data['shipping_method'])

    def test_update_return(self):
        return_id = self._post_return().data['id']

        response = self.client.post(
            f'{self.base_url}/{return_id}/', {'metadata': {'ticket': 'T-9'}}, format='json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['metadata'], {'ticket': 'T-9'})

    def test_list_returns(self):
        self._post_return()

        response = self.client.get(f'{self.base_url}/list/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['count'], 1)

        response = self.client.get(f'{self.base_url}/list/?status=canceled')
        self.assertEqual(response.data['count'], 0)

    def test_list_limit_is_capped(self):
        response = self.client.get(f'{self.base_url}/list/?limit=500')
        self.assertEqual(response.data['limit'], 100)

    def test_list_rejects_bad_paging(self):
        response = self.client.get(f'{self.base_url}/list/?offset=abc')
        self.assertEqual(response.status_code, 400)

    def test_cancel_endpoint(self):
        return_id = self._post_return().data['id']

        response = self.client.post(f'{self.base_url}/{return_id}/cancel/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], 'canceled')

    def test_fulfill_endpoint(self):
        return_id = self._post_return(shipping_method={'option_id': self.return_option.pk}).data['id']

        response = self.client.post(f'{self.base_url}/{return_id}/fulfill/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['shipping_data']['provider_id'], 'manual')

    def test_receive_endpoint(self):
        return_id = self._post_return().data['id']

        response = self.client.post(
            f'{self.base_url}/{return_id}/receive/',
            {'items': [{'item_id': self.shirt.pk, 'quantity': 1}], 'refund': 1000},
            format='json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], 'requires_action')
        self.assertEqual(response.data['refund_amount'], 1000)

    def test_status_timeline(self):
        return_id = self._post_return().data['id']
        self.client.post(f'{self.base_url}/{return_id}/cancel/')

        response = self.client.get(f'{self.base_url}/{return_id}/status/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['current_status'], 'canceled')
        self.assertEqual(
            [entry['to_status'] for entry in response.data['timeline']],
            ['requested', 'canceled'],
        )

    def test_swap_return_endpoint(self):
        self.client.post(
            f'{self.base_url}/',
            {'swap_id': self.swap.pk, 'items': [{'item_id': self.swap_item.pk, 'quantity': 1}]},
            format='json',
        )

        response = self.client.get(f'{self.base_url}/swaps/{self.swap.pk}/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['swap_id'], self.swap.pk)

    def test_eligible_order(self):
        response = self.client.post(
            f'{self.base_url}/check-eligibility/', {'order_id': self.order.pk}, format='json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data['eligible'])
        self.assertEqual(response.data['refundable_amount'], 10000)

    def test_unpaid_order_not_eligible(self):
        self.order.payment_status = 'not_paid'
        self.order.save()

        response = self.client.post(
            f'{self.base_url}/check-eligibility/', {'order_id': self.order.pk}, format='json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.data['eligible'])

    def test_eligibility_of_nonexistent_order(self):
        response = self.client.post(
            f'{self.base_url}/check-eligibility/', {'order_id': 9999}, format='json',
        )
        self.assertEqual(response.status_code, 404)


# ============================================================
# ADMIN TESTS
# ============================================================

class AdminTests(BaseTestCase):

    def test_models_registered(self):
        for model in (Order, LineItem, Return, ReturnReason, ShippingOption, ReturnStatusHistory):
            self.assertIn(model, admin.site._registry)

    def test_cancel_action_goes_through_service(self):
        open_return = self._create_return(quantity=1)
        received = self.service.create({
            'order_id': self.order.pk,
            'items': [{'item_id': self.cap.pk, 'quantity': 1}],
        })
        Return.objects.filter(pk=received.pk).update(status=Return.STATUS_RECEIVED)

        model_admin = ReturnAdmin(Return, admin.site)
        request = RequestFactory().post('/admin/returns/return/')
        with patch.object(model_admin, 'message_user') as message_user:
            model_admin.cancel_returns(request, Return.objects.all())

        self.assertEqual(Return.objects.get(pk=open_return.pk).status, 'canceled')
        self.assertEqual(Return.objects.get(pk=received.pk).status, 'received')
        self.assertEqual(message_user.call_count, 2)
