"""
Returns Module - API Views

Thin admin API over ReturnService. Views validate the request shape,
call the service, and serialize the result. Service errors (not found /
not allowed / invalid data) are turned into responses by
returns.exceptions.return_exception_handler.
"""

import logging

from django.conf import settings
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from .collaborators import OrderService
from .exceptions import NotAllowedError
from .models import ReturnStatusHistory
from .serializers import (
    CheckEligibilitySerializer,
    CreateReturnSerializer,
    ReceiveReturnSerializer,
    ReturnListSerializer,
    ReturnSerializer,
    ReturnStatusHistorySerializer,
    UpdateReturnSerializer,
)
from .services import ReturnService

logger = logging.getLogger('returns')

DETAIL_RELATIONS = ['items', 'shipping_method']


def get_return_service():
    return ReturnService()


# ============================================================
# API ENDPOINTS
# ============================================================

@extend_schema(request=CreateReturnSerializer, responses={201: ReturnSerializer})
@api_view(['POST'])
def create_return(request):
    """
    POST /api/v1/returns/

    Create a return request for an order or a swap.
    """
    serializer = CreateReturnSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    service = get_return_service()
    ret = service.create(serializer.validated_data)
    ret = service.retrieve(ret.pk, {'relations': DETAIL_RELATIONS})

    return Response(ReturnSerializer(ret).data, status=status.HTTP_201_CREATED)


@extend_schema(responses=ReturnListSerializer(many=True))
@api_view(['GET'])
def list_returns(request):
    """
    GET /api/v1/returns/list/

    Query params:
    - status, order_id, swap_id: filters
    - offset: rows to skip (default 0)
    - limit: page size (default 50, max 100)
    """
    returns_config = settings.RETURNS
    try:
        offset = max(int(request.query_params.get('offset', 0)), 0)
        limit = min(
            int(request.query_params.get('limit', returns_config['DEFAULT_PAGE_SIZE'])),
            returns_config['MAX_PAGE_SIZE'],
        )
    except ValueError:
        return Response(
            {'error': 'offset and limit must be integers'},
            status=status.HTTP_400_BAD_REQUEST,
        )

    selector = {}
    for key in ('status', 'order_id', 'swap_id'):
        value = request.query_params.get(key)
        if value:
            selector[key] = value

    returns = get_return_service().list(selector, {
        'skip': offset,
        'take': limit,
        'order': {'created_at': 'DESC'},
    })

    return Response({
        'returns': ReturnListSerializer(returns, many=True).data,
        'count': len(returns),
        'offset': offset,
        'limit': limit,
    })


@extend_schema(request=UpdateReturnSerializer, responses=ReturnSerializer)
@api_view(['GET', 'POST'])
def return_detail(request, return_id):
    """
    GET  /api/v1/returns/{id}/  → full return
    POST /api/v1/returns/{id}/  → update metadata / refund_amount / no_notification
    """
    service = get_return_service()

    if request.method == 'POST':
        serializer = UpdateReturnSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        service.update(return_id, serializer.validated_data)

    ret = service.retrieve(return_id, {'relations': DETAIL_RELATIONS})
    return Response(ReturnSerializer(ret).data)


@api_view(['GET'])
def get_status_history(request, return_id):
    """
    GET /api/v1/returns/{id}/status/

    Status timeline for a return.
    """
    ret = get_return_service().retrieve(return_id)

    history = ReturnStatusHistory.objects.filter(return_order=ret).order_by('created_at', 'id')
    return Response({
        'return_id': ret.pk,
        'current_status': ret.status,
        'timeline': ReturnStatusHistorySerializer(history, many=True).data,
    })


@extend_schema(request=None, responses=ReturnSerializer)
@api_view(['POST'])
def cancel_return(request, return_id):
    """
    POST /api/v1/returns/{id}/cancel/

    Cancel a return. Not possible once it has been received.
    """
    service = get_return_service()
    service.cancel(return_id)

    ret = service.retrieve(return_id, {'relations': DETAIL_RELATIONS})
    return Response(ReturnSerializer(ret).data)


@extend_schema(request=None, responses=ReturnSerializer)
@api_view(['POST'])
def fulfill_return(request, return_id):
    """
    POST /api/v1/returns/{id}/fulfill/

    Create the return shipment with the fulfillment provider.
    """
    service = get_return_service()
    service.fulfill(return_id)

    ret = service.retrieve(return_id, {'relations': DETAIL_RELATIONS})
    return Response(ReturnSerializer(ret).data)


@extend_schema(request=ReceiveReturnSerializer, responses=ReturnSerializer)
@api_view(['POST'])
def receive_return(request, return_id):
    """
    POST /api/v1/returns/{id}/receive/

    Register the items that arrived at the warehouse:
    {"items": [{"item_id": 7, "quantity": 1}], "refund": 1000, "allow_mismatch": false}
    """
    serializer = ReceiveReturnSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    service = get_return_service()
    service.receive(
        return_id,
        data['items'],
        refund_amount=data.get('refund'),
        allow_mismatch=data['allow_mismatch'],
    )

    ret = service.retrieve(return_id, {'relations': DETAIL_RELATIONS})
    return Response(ReturnSerializer(ret).data)


@extend_schema(responses=ReturnSerializer)
@api_view(['GET'])
def get_swap_return(request, swap_id):
    """
    GET /api/v1/returns/swaps/{swap_id}/

    The return created for an exchange.
    """
    ret = get_return_service().retrieve_by_swap(swap_id, relations=DETAIL_RELATIONS)
    return Response(ReturnSerializer(ret).data)


@extend_schema(request=CheckEligibilitySerializer)
@api_view(['POST'])
def check_eligibility(request):
    """
    POST /api/v1/returns/check-eligibility/

    Check if an order can be returned BEFORE creating the request.

    Request: {"order_id": 123}
    Response: {"eligible": true, "order_id": 123, "refundable_amount": 4999}
    """
    serializer = CheckEligibilitySerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    order = OrderService().retrieve(serializer.validated_data['order_id'])
    try:
        get_return_service().validate_return_statuses(order)
    except NotAllowedError as err:
        return Response({'eligible': False, 'order_id': order.pk, 'reason': err.message})

    return Response({
        'eligible': True,
        'order_id': order.pk,
        'refundable_amount': order.refundable_amount,
    })
