from django.conf import settings
from django.db import models


def item_image_upload_to(instance, filename):
    return f"items/{instance.item_id}/{filename}"


def item_thumbnail_upload_to(instance, filename):
    return f"items/{instance.item_id}/thumbnails/{filename}"


class Item(models.Model):
    """A belonging. folder=None means uncategorized."""
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='items')
    folder = models.ForeignKey('folders.Folder', on_delete=models.SET_NULL, null=True, blank=True, related_name='items')
    name = models.CharField(max_length=100, db_index=True)
    description = models.TextField(blank=True, null=True)
    category = models.CharField(max_length=50, blank=True, null=True)
    manufacturer = models.CharField(max_length=100, blank=True, null=True)
    purchase_date = models.DateField(blank=True, null=True)
    purchase_price = models.DecimalField(max_digits=12, decimal_places=2, blank=True, null=True)
    purchase_location = models.CharField(max_length=200, blank=True, null=True)
    condition = models.CharField(max_length=50, blank=True, null=True)
    notes = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'items'
        ordering = ['-updated_at']
        indexes = [
            models.Index(fields=['user', 'folder'], name='items_user_folder_idx'),
            models.Index(fields=['user', 'category'], name='items_user_category_idx'),
            models.Index(fields=['user', '-updated_at'], name='items_user_updated_idx'),
        ]


class ItemImage(models.Model):
    """Photo of an item with pre-rendered thumbnails"""
    item = models.ForeignKey(Item, on_delete=models.CASCADE, related_name='images')
    image = models.ImageField(upload_to=item_image_upload_to, max_length=255)
    thumbnail_small = models.ImageField(upload_to=item_thumbnail_upload_to, max_length=255, blank=True, null=True)
    thumbnail_medium = models.ImageField(upload_to=item_thumbnail_upload_to, max_length=255, blank=True, null=True)
    thumbnail_large = models.ImageField(upload_to=item_thumbnail_upload_to, max_length=255, blank=True, null=True)
    filename = models.CharField(max_length=255, help_text="Original file name as uploaded")
    mime_type = models.CharField(max_length=50)
    size = models.PositiveIntegerField(default=0)
    order = models.PositiveSmallIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.item.name} #{self.order}"

    class Meta:
        db_table = 'item_images'
        ordering = ['order', 'created_at']
