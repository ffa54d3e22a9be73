import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404

from backend.core.utils import create_audit_log
from backend.items.models import Item
from .models import PriceHistory
from .serializers import PriceHistorySerializer, PriceHistoryCreateSerializer
from .services import save_price_history

logger = logging.getLogger('backend.pricing')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def price_history_list_create(request, item_pk):
    """Active price history of an item, newest first, or save a search result"""
    item = get_object_or_404(Item, pk=item_pk, user=request.user)

    if request.method == 'GET':
        try:
            limit = int(request.query_params.get('limit', 10))
        except ValueError:
            return Response({'error': 'limit must be an integer'}, status=status.HTTP_400_BAD_REQUEST)
        if not 1 <= limit <= 100:
            return Response({'error': 'limit must be between 1 and 100'}, status=status.HTTP_400_BAD_REQUEST)
        histories = (
            PriceHistory.objects.filter(item=item, is_active=True)
            .prefetch_related('details')
            .order_by('-search_date')[:limit]
        )
        return Response({
            'item_id': item.id,
            'histories': PriceHistorySerializer(histories, many=True).data,
        })

    serializer = PriceHistoryCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    history = save_price_history(
        item,
        serializer.validated_data['prices'],
        summary=serializer.validated_data['summary'],
        source=serializer.validated_data['source'],
    )
    return Response(PriceHistorySerializer(history).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated])
def price_history_detail(request, item_pk, pk):
    """Retrieve or deactivate one price history entry"""
    history = get_object_or_404(
        PriceHistory.objects.prefetch_related('details'),
        pk=pk, item_id=item_pk, item__user=request.user, is_active=True,
    )
    if request.method == 'GET':
        return Response(PriceHistorySerializer(history).data)

    history.is_active = False
    history.save(update_fields=['is_active'])
    create_audit_log(
        request=request, action='delete', model_name='PriceHistory', object_id=history.id,
        changes={'item_id': item_pk, 'soft_delete': True},
    )
    logger.info(f"User {request.user.username} deactivated price history {history.id}")
    return Response({'message': 'Price history deleted'})
