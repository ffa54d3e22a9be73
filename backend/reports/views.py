import logging
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Count, OuterRef, Subquery, Sum
from django.utils import timezone
from datetime import timedelta
from decimal import Decimal

from backend.folders.folder_cache import load_folder_tree
from backend.items.models import Item, ItemImage
from backend.pricing.models import PriceHistory

logger = logging.getLogger('backend.reports')

UNCATEGORIZED_LABEL = 'Uncategorized'
TREND_THRESHOLD_PERCENT = 5
TREND_MONTHS = 6


def to_float(value):
    if value is None:
        return None
    return round(float(value), 2)


def item_summary(item):
    return {
        'id': item.id,
        'name': item.name,
        'category': item.category,
        'folder_id': item.folder_id,
        'created_at': item.created_at,
        'updated_at': item.updated_at,
    }


def latest_avg_price_subquery():
    return Subquery(
        PriceHistory.objects.filter(item=OuterRef('pk'), is_active=True, avg_price__isnull=False)
        .order_by('-search_date')
        .values('avg_price')[:1]
    )


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def dashboard_stats(request):
    """Counts of items and folders with the latest activity"""
    items = Item.objects.filter(user=request.user)

    categories = (
        items.values('category')
        .annotate(count=Count('id'))
        .order_by('-count', 'category')[:10]
    )
    tree = load_folder_tree(request.user.id)

    return Response({
        'item_stats': {
            'total': items.count(),
            'uncategorized': items.filter(folder__isnull=True).count(),
            'with_images': items.filter(images__isnull=False).distinct().count(),
            'categories': [
                {'category': row['category'] or UNCATEGORIZED_LABEL, 'count': row['count']}
                for row in categories
            ],
        },
        'folder_stats': {
            'total': len(tree),
            'by_depth': {str(depth): count for depth, count in tree.depth_distribution().items()},
        },
        'recent_items': [item_summary(item) for item in items.order_by('-created_at')[:5]],
        'recently_updated_items': [item_summary(item) for item in items.order_by('-updated_at')[:5]],
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def value_summary(request):
    """
    Purchase value against the latest researched market value.
    Profit/loss only compares items that have both a purchase price and
    price data.
    """
    items = list(
        Item.objects.filter(user=request.user)
        .annotate(current_value=latest_avg_price_subquery())
        .order_by('id')
    )

    total_purchase_value = sum((item.purchase_price or Decimal('0') for item in items), Decimal('0'))
    priced = [item for item in items if item.current_value is not None]
    total_current_value = sum(item.current_value for item in priced)

    comparable = [item for item in priced if item.purchase_price]
    compared_purchase = sum((item.purchase_price for item in comparable), Decimal('0'))
    compared_current = sum(item.current_value for item in comparable)
    profit_loss = Decimal(compared_current) - compared_purchase
    profit_loss_percent = (profit_loss / compared_purchase * 100) if compared_purchase else None

    categories = {}
    for item in items:
        entry = categories.setdefault(item.category or UNCATEGORIZED_LABEL, {
            'category': item.category or UNCATEGORIZED_LABEL,
            'item_count': 0,
            'purchase_value': Decimal('0'),
            'current_value': 0,
        })
        entry['item_count'] += 1
        entry['purchase_value'] += item.purchase_price or Decimal('0')
        entry['current_value'] += item.current_value or 0

    top_items = sorted(priced, key=lambda item: item.current_value, reverse=True)[:10]
    recent_updates = (
        PriceHistory.objects.filter(item__user=request.user, is_active=True)
        .select_related('item')
        .order_by('-search_date')[:5]
    )

    return Response({
        'total_purchase_value': to_float(total_purchase_value),
        'total_current_value': total_current_value,
        'profit_loss': to_float(profit_loss),
        'profit_loss_percent': to_float(profit_loss_percent),
        'items_with_price_data': len(priced),
        'total_items': len(items),
        'top_value_items': [
            {
                'id': item.id,
                'name': item.name,
                'category': item.category,
                'purchase_price': to_float(item.purchase_price),
                'current_value': item.current_value,
                'profit_loss': to_float(Decimal(item.current_value) - item.purchase_price) if item.purchase_price else None,
            }
            for item in top_items
        ],
        'category_values': sorted(
            (
                {**entry, 'purchase_value': to_float(entry['purchase_value'])}
                for entry in categories.values()
            ),
            key=lambda entry: entry['current_value'],
            reverse=True,
        ),
        'recent_price_updates': [
            {
                'history_id': history.id,
                'item_id': history.item_id,
                'item_name': history.item.name,
                'avg_price': history.avg_price,
                'search_date': history.search_date,
            }
            for history in recent_updates
        ],
    })


def classify_trend(first_avg, last_avg):
    """(trend, change percent) between the oldest and newest average price"""
    if not first_avg or last_avg is None:
        return 'stable', 0.0
    change = (last_avg - first_avg) / first_avg * 100
    if change > TREND_THRESHOLD_PERCENT:
        return 'up', round(change, 2)
    if change < -TREND_THRESHOLD_PERCENT:
        return 'down', round(change, 2)
    return 'stable', round(change, 2)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def price_trends(request):
    """Price history of the last six months grouped per item"""
    since = timezone.now() - timedelta(days=30 * TREND_MONTHS)
    histories = (
        PriceHistory.objects.filter(item__user=request.user, is_active=True, search_date__gte=since)
        .select_related('item')
        .order_by('search_date')
    )

    per_item = {}
    for history in histories:
        entry = per_item.setdefault(history.item_id, {
            'item_id': history.item_id,
            'item_name': history.item.name,
            'category': history.item.category or UNCATEGORIZED_LABEL,
            'points': [],
        })
        entry['points'].append({
            'date': history.search_date,
            'avg_price': history.avg_price,
            'min_price': history.min_price,
            'max_price': history.max_price,
        })

    trend_counts = {'up': 0, 'down': 0, 'stable': 0}
    category_distribution = {}
    item_trends = []
    for entry in per_item.values():
        averages = [point['avg_price'] for point in entry['points'] if point['avg_price'] is not None]
        trend, change = classify_trend(averages[0] if averages else None, averages[-1] if averages else None)
        entry['trend'] = trend
        entry['change_percent'] = change
        entry['latest_avg_price'] = averages[-1] if averages else None
        trend_counts[trend] += 1
        category_distribution[entry['category']] = category_distribution.get(entry['category'], 0) + 1
        item_trends.append(entry)

    item_trends.sort(key=lambda entry: abs(entry['change_percent']), reverse=True)
    return Response({
        'period': {'from': since, 'to': timezone.now(), 'months': TREND_MONTHS},
        'item_trends': item_trends,
        'trend_items': {
            trend: [entry['item_id'] for entry in item_trends if entry['trend'] == trend]
            for trend in trend_counts
        },
        'category_distribution': [
            {'category': category, 'count': count}
            for category, count in sorted(category_distribution.items(), key=lambda pair: -pair[1])
        ],
        'summary': {
            'items_tracked': len(item_trends),
            'total_searches': len(histories),
            **trend_counts,
        },
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def profile_stats(request):
    """Totals shown on the profile page"""
    user = request.user
    return Response({
        'username': user.username,
        'display_name': user.display_name,
        'total_items': Item.objects.filter(user=user).count(),
        'total_folders': user.folders.count(),
        'total_images': ItemImage.objects.filter(item__user=user).count(),
        'total_purchase_value': to_float(
            Item.objects.filter(user=user).aggregate(total=Sum('purchase_price'))['total'] or Decimal('0')
        ),
        'ai_usage_count': user.ai_usage_count,
        'ai_usage_limit': user.ai_usage_limit,
        'subscription_tier': user.subscription_tier,
        'registration_date': user.date_joined,
    })
