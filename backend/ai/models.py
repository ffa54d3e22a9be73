from django.conf import settings
from django.db import models


class AIUsageLog(models.Model):
    """One successful AI call"""
    TYPE_IMAGE_RECOGNITION = 'image_recognition'
    TYPE_PRICE_SEARCH = 'price_search'
    TYPE_CHOICES = [
        (TYPE_IMAGE_RECOGNITION, 'Image Recognition'),
        (TYPE_PRICE_SEARCH, 'Price Search'),
    ]

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='ai_usage_logs')
    usage_type = models.CharField(max_length=30, choices=TYPE_CHOICES)
    item = models.ForeignKey('items.Item', on_delete=models.SET_NULL, null=True, blank=True, related_name='ai_usage_logs')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.user_id} {self.usage_type} {self.created_at:%Y-%m-%d %H:%M}"

    class Meta:
        db_table = 'ai_usage_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', '-created_at'], name='ai_usage_user_created_idx'),
        ]
