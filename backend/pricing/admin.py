from django.contrib import admin
from .models import PriceHistory, PriceDetail


class PriceDetailInline(admin.TabularInline):
    model = PriceDetail
    extra = 0


@admin.register(PriceHistory)
class PriceHistoryAdmin(admin.ModelAdmin):
    list_display = ['item', 'source', 'min_price', 'avg_price', 'max_price', 'listing_count', 'is_active', 'search_date']
    list_filter = ['source', 'is_active', 'search_date']
    search_fields = ['item__name', 'summary']
    raw_id_fields = ['item']
    inlines = [PriceDetailInline]
