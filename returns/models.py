"""
Returns Module - Database Models

TABLES OWNED BY THIS MODULE:
1. Return              → A return request against an order, swap or claim
2. ReturnItem          → One line of a return (which line item, how many)
3. ReturnReason        → Why the customer sends an item back
4. ReturnStatusHistory → Every status change (audit trail)

TABLES OWNED BY SIBLING DOMAINS:
Orders, swaps, claims, line items, variants and shipping live in their own
services in a full commerce backend. We keep simplified versions here so the
return logic has something to validate against. The return service only
reaches them through the collaborators in collaborators.py.
"""

from django.db import models


# ============================================================
# ORDER-SIDE MODELS (simplified)
# ============================================================

class Order(models.Model):
    """
    The customer's original order.

    Amounts are integers in the smallest currency unit (cents / paise).
    """

    FULFILLMENT_STATUS_CHOICES = [
        ('not_fulfilled', 'Not Fulfilled'),
        ('partially_fulfilled', 'Partially Fulfilled'),
        ('fulfilled', 'Fulfilled'),
        ('partially_shipped', 'Partially Shipped'),
        ('shipped', 'Shipped'),
        ('partially_returned', 'Partially Returned'),
        ('returned', 'Returned'),
        ('canceled', 'Canceled'),
        ('requires_action', 'Requires Action'),
    ]

    PAYMENT_STATUS_CHOICES = [
        ('not_paid', 'Not Paid'),
        ('awaiting', 'Awaiting'),
        ('captured', 'Captured'),
        ('partially_refunded', 'Partially Refunded'),
        ('refunded', 'Refunded'),
        ('canceled', 'Canceled'),
        ('requires_action', 'Requires Action'),
    ]

    order_number = models.CharField(max_length=50, unique=True, db_index=True)
    email = models.EmailField(blank=True)
    fulfillment_status = models.CharField(
        max_length=30, choices=FULFILLMENT_STATUS_CHOICES, default='not_fulfilled'
    )
    payment_status = models.CharField(
        max_length=30, choices=PAYMENT_STATUS_CHOICES, default='not_paid'
    )

    # Tax rate in percent, e.g. 25.00 for 25%
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=0)

    total = models.IntegerField(default=0)
    paid_total = models.IntegerField(default=0)
    refunded_total = models.IntegerField(default=0)

    canceled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'orders'
        ordering = ['-created_at']

    def __str__(self):
        return f"Order {self.order_number}"

    @property
    def refundable_amount(self):
        """What can still be refunded: captured money minus prior refunds."""
        return self.paid_total - self.refunded_total


class Swap(models.Model):
    """An exchange on an order. Its additional_items are the new line items sent out."""

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='swaps')
    canceled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'swaps'

    def __str__(self):
        return f"Swap {self.pk} on {self.order_id}"


class ClaimOrder(models.Model):
    """A claim (damaged / missing goods) raised against an order."""

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='claims')
    canceled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'claim_orders'

    def __str__(self):
        return f"Claim {self.pk} on {self.order_id}"


class ProductVariant(models.Model):
    sku = models.CharField(max_length=100, unique=True)
    title = models.CharField(max_length=255)
    inventory_quantity = models.IntegerField(default=0)
    manage_inventory = models.BooleanField(default=True)

    class Meta:
        db_table = 'product_variants'

    def __str__(self):
        return f"{self.sku} ({self.inventory_quantity} in stock)"


class LineItem(models.Model):
    """
    A purchased line. Belongs to exactly one of: an order, a swap
    (as an additional item) or a claim.
    """

    order = models.ForeignKey(
        Order, on_delete=models.CASCADE, null=True, blank=True, related_name='items'
    )
    swap = models.ForeignKey(
        Swap, on_delete=models.CASCADE, null=True, blank=True, related_name='additional_items'
    )
    claim_order = models.ForeignKey(
        ClaimOrder, on_delete=models.CASCADE, null=True, blank=True, related_name='additional_items'
    )
    variant = models.ForeignKey(
        ProductVariant, on_delete=models.SET_NULL, null=True, blank=True, related_name='line_items'
    )

    title = models.CharField(max_length=255)
    unit_price = models.IntegerField()
    quantity = models.PositiveIntegerField()
    returned_quantity = models.PositiveIntegerField(null=True, blank=True, default=0)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = 'line_items'
        ordering = ['id']

    def __str__(self):
        return f"{self.title} x{self.quantity}"


class ShippingOption(models.Model):
    """A way to ship things. Return options are used for the customer's return label."""

    name = models.CharField(max_length=200)
    provider_id = models.CharField(max_length=50, default='manual')
    amount = models.IntegerField(default=0)
    is_return = models.BooleanField(default=False)
    data = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = 'shipping_options'

    def __str__(self):
        return f"{self.name} ({self.provider_id})"


# ============================================================
# RETURN REASON MODEL
# ============================================================

class ReturnReason(models.Model):
    value = models.CharField(max_length=50, unique=True)
    label = models.CharField(max_length=200)
    description = models.TextField(blank=True)

    class Meta:
        db_table = 'return_reasons'
        ordering = ['value']

    def __str__(self):
        return self.label


# ============================================================
# RETURN MODEL
# ============================================================
# The MAIN table - every return request lives here

class Return(models.Model):
    """
    Items a customer sends back on an order, an exchange (swap) or a claim.

    Lifecycle:
        requested → canceled
        requested → received
        requested → requires_action   (received items did not match)
    """

    STATUS_REQUESTED = 'requested'
    STATUS_RECEIVED = 'received'
    STATUS_REQUIRES_ACTION = 'requires_action'
    STATUS_CANCELED = 'canceled'

    STATUS_CHOICES = [
        (STATUS_REQUESTED, 'Requested'),
        (STATUS_RECEIVED, 'Received'),
        (STATUS_REQUIRES_ACTION, 'Requires Action'),
        (STATUS_CANCELED, 'Canceled'),
    ]

    # NULL when the return was created from a swap
    order = models.ForeignKey(
        Order, on_delete=models.CASCADE, null=True, blank=True, related_name='returns'
    )
    swap = models.OneToOneField(
        Swap, on_delete=models.CASCADE, null=True, blank=True, related_name='return_order'
    )
    claim_order = models.ForeignKey(
        ClaimOrder, on_delete=models.CASCADE, null=True, blank=True, related_name='returns'
    )

    status = models.CharField(max_length=30, choices=STATUS_CHOICES, default=STATUS_REQUESTED)

    # Integer, smallest currency unit, always floored
    refund_amount = models.IntegerField(default=0)

    # Payload from the fulfillment provider (return label, tracking, ...)
    shipping_data = models.JSONField(null=True, blank=True)
    received_at = models.DateTimeField(null=True, blank=True)

    metadata = models.JSONField(default=dict, blank=True)
    no_notification = models.BooleanField(null=True, blank=True)

    # Idempotency key to prevent duplicate submissions
    idempotency_key = models.CharField(max_length=100, unique=True, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'returns'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at'], name='return_status_created_idx'),
        ]

    def __str__(self):
        return f"Return {self.pk} ({self.status})"


# ============================================================
# RETURN ITEM MODEL
# ============================================================

class ReturnItem(models.Model):
    """
    One line of a return.

    quantity is the requested amount until the return is received; after
    receive() it holds the received amount and requested_quantity keeps the
    original request.
    """

    return_order = models.ForeignKey(
        Return, on_delete=models.CASCADE, related_name='items', db_column='return_id'
    )
    item = models.ForeignKey(LineItem, on_delete=models.CASCADE, related_name='return_items')

    quantity = models.PositiveIntegerField()
    is_requested = models.BooleanField(default=True)
    requested_quantity = models.PositiveIntegerField(null=True, blank=True)
    received_quantity = models.PositiveIntegerField(null=True, blank=True)

    reason = models.ForeignKey(
        ReturnReason, on_delete=models.SET_NULL, null=True, blank=True, related_name='return_items'
    )
    note = models.TextField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    no_notification = models.BooleanField(null=True, blank=True)

    class Meta:
        db_table = 'return_items'
        ordering = ['id']
        constraints = [
            models.UniqueConstraint(fields=['return_order', 'item'], name='unique_return_line_item'),
        ]

    def __str__(self):
        return f"Return {self.return_order_id}: item {self.item_id} x{self.quantity}"


class ShippingMethod(models.Model):
    """A shipping option applied to an order or (for return labels) to a return."""

    shipping_option = models.ForeignKey(
        ShippingOption, on_delete=models.PROTECT, related_name='shipping_methods'
    )
    order = models.ForeignKey(
        Order, on_delete=models.CASCADE, null=True, blank=True, related_name='shipping_methods'
    )
    return_order = models.OneToOneField(
        Return, on_delete=models.CASCADE, null=True, blank=True,
        related_name='shipping_method', db_column='return_id',
    )
    price = models.IntegerField(default=0)
    data = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = 'shipping_methods'

    def __str__(self):
        return f"{self.shipping_option.name} @ {self.price}"


# ============================================================
# RETURN STATUS HISTORY MODEL
# ============================================================
# Every status change is recorded here (audit trail)

class ReturnStatusHistory(models.Model):
    """
    Tracks every status change for a return.

    Example timeline:
        2024-01-15 10:00 → requested        (Return created with 2 items)
        2024-01-19 11:00 → requires_action  (Only 1 of 2 items arrived)
    """

    return_order = models.ForeignKey(
        Return, on_delete=models.CASCADE, related_name='status_history'
    )
    from_status = models.CharField(max_length=30, blank=True)
    to_status = models.CharField(max_length=30)
    changed_by = models.CharField(max_length=100, default='system')
    comment = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'return_status_history'
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['return_order', 'created_at'], name='status_history_return_idx'),
        ]

    def __str__(self):
        return f"Return {self.return_order_id}: {self.from_status} → {self.to_status}"
