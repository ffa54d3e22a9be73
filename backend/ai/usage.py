"""AI usage accounting"""
import logging

from django.db.models import Count, F
from django.utils import timezone

from .errors import AIError, AIErrorCode
from .models import AIUsageLog

logger = logging.getLogger(__name__)

USAGE_PERIODS = ('today', 'month', 'all')


def period_start(period, now=None):
    now = timezone.localtime(now or timezone.now())
    if period == 'today':
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == 'month':
        return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return None


def monthly_usage(user):
    return AIUsageLog.objects.filter(user=user, created_at__gte=period_start('month')).count()


def check_usage_quota(user):
    """Raise AIError when the user used up this month's allowance"""
    used = monthly_usage(user)
    if used >= user.ai_usage_limit:
        raise AIError(
            AIErrorCode.AI_QUOTA_EXCEEDED,
            'Monthly AI usage limit reached',
            details={'used': used, 'limit': user.ai_usage_limit, 'subscription_tier': user.subscription_tier},
        )
    return used


def log_ai_usage(user, usage_type, item=None):
    """Record a successful call and bump the user's lifetime counter"""
    log = AIUsageLog.objects.create(user=user, usage_type=usage_type, item=item)
    type(user).objects.filter(pk=user.pk).update(ai_usage_count=F('ai_usage_count') + 1)
    user.refresh_from_db(fields=['ai_usage_count'])
    logger.info(f"AI usage: user {user.username} {usage_type} (total {user.ai_usage_count})")
    return log


def usage_summary(user):
    used = monthly_usage(user)
    return {
        'used_this_month': used,
        'limit': user.ai_usage_limit,
        'remaining': max(user.ai_usage_limit - used, 0),
        'total': user.ai_usage_count,
    }


def get_usage_stats(user, period='all'):
    logs = AIUsageLog.objects.filter(user=user)
    start = period_start(period)
    if start is not None:
        logs = logs.filter(created_at__gte=start)

    by_type = {choice: 0 for choice, _ in AIUsageLog.TYPE_CHOICES}
    for row in logs.values('usage_type').annotate(count=Count('id')):
        by_type[row['usage_type']] = row['count']

    recent = logs.select_related('item').order_by('-created_at')[:10]
    return {
        'period': period,
        'total': sum(by_type.values()),
        'by_type': by_type,
        'recent': [
            {
                'id': log.id,
                'usage_type': log.usage_type,
                'item_id': log.item_id,
                'item_name': log.item.name if log.item else None,
                'created_at': log.created_at,
            }
            for log in recent
        ],
        'quota': usage_summary(user),
        'subscription_tier': user.subscription_tier,
    }
