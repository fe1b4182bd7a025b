"""
Returns Module - Background Tasks

Customer emails are sent by a Celery worker so the API call that changed
the return does not wait on SMTP. The service queues these with
transaction.on_commit(), so a rolled-back operation never notifies.
"""

import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

from .models import Return

logger = logging.getLogger('returns')

EVENT_SUBJECTS = {
    'return.requested': 'We have registered your return',
    'return.received': 'We have received your return',
    'return.requires_action': 'Your return needs a closer look',
}


@shared_task(ignore_result=True)
def send_return_notification(return_id, event):
    """Email the customer of the return's order about `event`."""
    ret = (
        Return.objects.select_related('order', 'swap__order')
        .filter(pk=return_id)
        .first()
    )
    if ret is None:
        logger.warning(f"Notification skipped: return {return_id} no longer exists")
        return

    if ret.no_notification:
        return

    order = ret.order or (ret.swap.order if ret.swap else None)
    if order is None or not order.email:
        logger.info(f"Notification skipped: no email for return {return_id}")
        return

    subject = EVENT_SUBJECTS.get(event, 'Update on your return')
    body = (
        f"Return #{ret.pk} for order {order.order_number} is now '{ret.status}'.\n"
        f"Refund amount: {ret.refund_amount}"
    )
    send_mail(subject, body, settings.RETURNS['NOTIFY_FROM_EMAIL'], [order.email])
    logger.info(f"Notification sent: {event} for return {return_id} to {order.email}")
