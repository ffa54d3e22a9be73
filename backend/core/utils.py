"""Audit logging and pagination helpers shared by the apps"""
import logging

from django.core.paginator import Paginator

from .models import AuditLog

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
MAX_PAGE = 10000


def get_client_ip(request):
    """Extract client IP address from request"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


def create_audit_log(request=None, action=None, model_name=None, object_id=None,
                     changes=None, user=None, object_name=None):
    """
    Create an audit log entry

    Args:
        request: Django request object (for user and IP) - optional if user is provided
        action: Action type (create, update, delete, folder_move, ...)
        model_name: Name of the model being acted upon
        object_id: ID of the object (as string)
        changes: Dictionary of changes made
        user: Optional user override (defaults to request.user if request provided)
        object_name: Human-readable name of the object
    """
    if not action or not model_name or object_id is None:
        logger.warning(f"Audit log creation skipped: missing required fields (action={action}, model_name={model_name}, object_id={object_id})")
        return None

    audit_user = user
    if audit_user is None and request is not None and hasattr(request, 'user'):
        audit_user = request.user

    try:
        return AuditLog.objects.create(
            user=audit_user if audit_user and audit_user.is_authenticated else None,
            action=action,
            model_name=model_name,
            object_id=str(object_id),
            object_name=object_name,
            changes=changes or {},
            ip_address=get_client_ip(request) if request else None,
        )
    except Exception as e:
        # The main operation must not fail because of audit logging
        logger.error(f"Failed to create audit log: {str(e)}", exc_info=True)
        return None


def parse_pagination(query_params, default_limit=DEFAULT_PAGE_SIZE):
    """
    Read page/limit query params.

    Returns (page, limit, error). error is a message when the values are out
    of range: page must be 1..10000 and limit 1..100.
    """
    try:
        page = int(query_params.get('page', 1))
        limit = int(query_params.get('limit', default_limit))
    except (TypeError, ValueError):
        return None, None, 'page and limit must be integers'
    if page < 1 or page > MAX_PAGE:
        return None, None, f'page must be between 1 and {MAX_PAGE}'
    if limit < 1 or limit > MAX_PAGE_SIZE:
        return None, None, f'limit must be between 1 and {MAX_PAGE_SIZE}'
    return page, limit, None


def paginate(queryset, page, limit, serialize):
    """Paginate a queryset into the response envelope used by list endpoints"""
    paginator = Paginator(queryset, limit)
    page_obj = paginator.get_page(page)
    return {
        'results': serialize(page_obj.object_list),
        'count': paginator.count,
        'next': page_obj.next_page_number() if page_obj.has_next() else None,
        'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
        'page': page_obj.number,
        'page_size': limit,
        'total_pages': paginator.num_pages,
    }
