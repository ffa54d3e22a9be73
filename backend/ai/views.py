import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from backend.core.utils import create_audit_log
from backend.items.models import Item
from backend.pricing.serializers import PriceHistorySerializer
from backend.pricing.services import save_price_history
from .errors import AIError, AIErrorCode, categorize_ai_error
from .gemini import GeminiClient
from .models import AIUsageLog
from .rate_limit import check_rate_limit
from .serializers import RecognizeSerializer, PriceSearchSerializer
from .usage import USAGE_PERIODS, check_usage_quota, get_usage_stats, log_ai_usage, usage_summary

logger = logging.getLogger('backend.ai')


def error_response(error):
    return Response(error.as_response_data(), status=error.status_code)


def enforce_limits(user):
    """Raise AIError when the user is rate limited or out of quota"""
    allowed, retry_after, _ = check_rate_limit(user.id)
    if not allowed:
        raise AIError(AIErrorCode.RATE_LIMIT_EXCEEDED, details={'retry_after': retry_after})
    check_usage_quota(user)


def recognize_validation_error(errors):
    if 'image_base64' in errors and any('required' in str(message) or 'blank' in str(message) for message in errors['image_base64']):
        return AIError(AIErrorCode.MISSING_IMAGE_DATA, details=errors)
    if 'mime_type' in errors:
        return AIError(AIErrorCode.UNSUPPORTED_FORMAT, details=errors)
    return AIError(AIErrorCode.VALIDATION_ERROR, details=errors)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def ai_recognize(request):
    """Suggest a name, category, manufacturer and description from a photo"""
    serializer = RecognizeSerializer(data=request.data)
    if not serializer.is_valid():
        return error_response(recognize_validation_error(serializer.errors))

    try:
        enforce_limits(request.user)
        result = GeminiClient().recognize_item(
            serializer.validated_data['image_base64'],
            serializer.validated_data['mime_type'],
        )
    except Exception as e:
        error = categorize_ai_error(e)
        if error.code == AIErrorCode.INTERNAL_ERROR:
            logger.error(f"Unexpected error in image recognition for {request.user.username}: {str(e)}", exc_info=True)
        else:
            logger.warning(f"Image recognition failed for {request.user.username}: {error.code}")
        return error_response(error)

    log_ai_usage(request.user, AIUsageLog.TYPE_IMAGE_RECOGNITION)
    return Response({
        'result': result,
        'usage': usage_summary(request.user),
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def ai_search_prices(request):
    """Research market prices for an item, optionally saving them as price history"""
    serializer = PriceSearchSerializer(data=request.data)
    if not serializer.is_valid():
        return error_response(AIError(AIErrorCode.VALIDATION_ERROR, details=serializer.errors))
    data = serializer.validated_data

    item = None
    if data['item_id'] is not None:
        item = Item.objects.filter(pk=data['item_id'], user=request.user).first()
        if item is None:
            return Response({'error': 'Item not found', 'code': AIErrorCode.VALIDATION_ERROR}, status=status.HTTP_404_NOT_FOUND)

    try:
        enforce_limits(request.user)
        result = GeminiClient().search_prices(data['item_name'], data['manufacturer'] or None)
    except Exception as e:
        error = categorize_ai_error(e)
        if error.code == AIErrorCode.INTERNAL_ERROR:
            logger.error(f"Unexpected error in price search for {request.user.username}: {str(e)}", exc_info=True)
        else:
            logger.warning(f"Price search failed for {request.user.username}: {error.code}")
        return error_response(error)

    log_ai_usage(request.user, AIUsageLog.TYPE_PRICE_SEARCH, item=item)

    history = None
    if item is not None and data['save_history'] and result['prices']:
        history = save_price_history(item, result['prices'], summary=result['summary'], source='gemini_search')
        create_audit_log(
            request=request, action='price_search', model_name='Item', object_id=item.id, object_name=item.name,
            changes={'history_id': history.id, 'listing_count': history.listing_count},
        )

    return Response({
        'result': result,
        'history': PriceHistorySerializer(history).data if history else None,
        'usage': usage_summary(request.user),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def ai_usage(request):
    """AI usage statistics for ?period=today|month|all"""
    period = request.query_params.get('period', 'all')
    if period not in USAGE_PERIODS:
        return error_response(AIError(
            AIErrorCode.VALIDATION_ERROR, f"period must be one of: {', '.join(USAGE_PERIODS)}",
        ))
    return Response(get_usage_stats(request.user, period))
