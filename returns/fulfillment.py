"""
Returns Module - Fulfillment Providers

A fulfillment provider is the logistics integration that turns a return
into something the customer can ship: a label, a pickup booking, a tracking
number. Providers are registered in settings.RETURNS['FULFILLMENT_PROVIDERS']
under the provider_id used on shipping options.

A provider only needs one method:

    create_return(return_data: FulfillmentReturn) -> dict

The dict is stored as-is on Return.shipping_data.
"""

import logging

from django.utils import timezone

logger = logging.getLogger('returns')


class ManualFulfillmentProvider:
    """
    Provider for stores that handle return shipping by hand.

    No carrier is called; the payload just records what was asked for so the
    ops team can print a label themselves.
    """

    identifier = 'manual'

    def create_return(self, return_data):
        logger.info(f"Manual return fulfillment for return {return_data.return_id}")
        return {
            'provider_id': self.identifier,
            'return_id': return_data.return_id,
            'shipping_option': return_data.shipping_method.shipping_option.name,
            'price': return_data.shipping_method.price,
            'items': [
                {
                    'item_id': line.item.pk,
                    'title': line.item.title,
                    'quantity': line.quantity,
                }
                for line in return_data.items
            ],
            'created_at': timezone.now().isoformat(),
        }
