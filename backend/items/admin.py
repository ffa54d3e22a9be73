from django.contrib import admin
from .models import Item, ItemImage


class ItemImageInline(admin.TabularInline):
    model = ItemImage
    extra = 0
    fields = ['image', 'filename', 'mime_type', 'size', 'order']
    readonly_fields = ['filename', 'mime_type', 'size']


@admin.register(Item)
class ItemAdmin(admin.ModelAdmin):
    list_display = ['name', 'user', 'folder', 'category', 'manufacturer', 'purchase_price', 'purchase_date', 'updated_at']
    list_filter = ['category', 'condition', 'created_at']
    search_fields = ['name', 'description', 'category', 'manufacturer', 'user__username']
    raw_id_fields = ['user', 'folder']
    inlines = [ItemImageInline]
    readonly_fields = ['created_at', 'updated_at']


@admin.register(ItemImage)
class ItemImageAdmin(admin.ModelAdmin):
    list_display = ['item', 'filename', 'mime_type', 'size', 'order', 'created_at']
    search_fields = ['item__name', 'filename']
    raw_id_fields = ['item']
