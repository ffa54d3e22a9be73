from django.contrib import admin
from .models import Folder


@admin.register(Folder)
class FolderAdmin(admin.ModelAdmin):
    list_display = ['name', 'user', 'parent', 'created_at', 'updated_at']
    list_filter = ['created_at']
    search_fields = ['name', 'description', 'user__username']
    raw_id_fields = ['user', 'parent']
    readonly_fields = ['created_at', 'updated_at']
