from django.contrib import admin
from .models import AIUsageLog


@admin.register(AIUsageLog)
class AIUsageLogAdmin(admin.ModelAdmin):
    list_display = ['user', 'usage_type', 'item', 'created_at']
    list_filter = ['usage_type', 'created_at']
    search_fields = ['user__username', 'item__name']
    raw_id_fields = ['user', 'item']
