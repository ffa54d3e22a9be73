import django_filters
from django.db.models import Q
from .models import Item

SORT_FIELDS = {
    'created_at': 'created_at',
    'updated_at': 'updated_at',
    'name': 'name',
    'purchase_date': 'purchase_date',
    'purchase_price': 'purchase_price',
}
DEFAULT_SORT = 'updated_at'
MAX_QUERY_LENGTH = 100


class ItemFilter(django_filters.FilterSet):
    """Search and filter a user's items"""

    # Free text across name, description, category and manufacturer
    q = django_filters.CharFilter(method='filter_search', label='Search', max_length=MAX_QUERY_LENGTH)
    category = django_filters.CharFilter(field_name='category', lookup_expr='iexact')
    manufacturer = django_filters.CharFilter(field_name='manufacturer', lookup_expr='icontains')
    condition = django_filters.CharFilter(field_name='condition', lookup_expr='iexact')
    folder = django_filters.NumberFilter(field_name='folder_id', lookup_expr='exact')
    uncategorized = django_filters.BooleanFilter(field_name='folder', lookup_expr='isnull')
    purchased_after = django_filters.DateFilter(field_name='purchase_date', lookup_expr='gte')
    purchased_before = django_filters.DateFilter(field_name='purchase_date', lookup_expr='lte')
    min_price = django_filters.NumberFilter(field_name='purchase_price', lookup_expr='gte')
    max_price = django_filters.NumberFilter(field_name='purchase_price', lookup_expr='lte')

    class Meta:
        model = Item
        fields = ['q', 'category', 'manufacturer', 'condition', 'folder', 'uncategorized',
                  'purchased_after', 'purchased_before', 'min_price', 'max_price']

    def filter_search(self, queryset, name, value):
        search = (value or '').strip()
        if not search:
            return queryset
        # Every word must match somewhere
        for word in search.split():
            queryset = queryset.filter(
                Q(name__icontains=word) |
                Q(description__icontains=word) |
                Q(category__icontains=word) |
                Q(manufacturer__icontains=word)
            )
        return queryset


def apply_sort(queryset, sort=None, order=None):
    """
    Order by ?sort= and ?order=. Returns (queryset, error message or None).
    """
    sort = sort or DEFAULT_SORT
    order = (order or 'desc').lower()
    if sort not in SORT_FIELDS:
        return queryset, f"sort must be one of: {', '.join(SORT_FIELDS)}"
    if order not in ('asc', 'desc'):
        return queryset, 'order must be asc or desc'
    field = SORT_FIELDS[sort]
    prefix = '-' if order == 'desc' else ''
    return queryset.order_by(f'{prefix}{field}', f'{prefix}id'), None
