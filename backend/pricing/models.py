from django.db import models


class PriceHistory(models.Model):
    """One market price search result for an item"""
    SOURCE_CHOICES = [
        ('gemini_search', 'Gemini Search'),
        ('manual', 'Manual'),
    ]

    item = models.ForeignKey('items.Item', on_delete=models.CASCADE, related_name='price_histories')
    source = models.CharField(max_length=30, choices=SOURCE_CHOICES, default='gemini_search')
    min_price = models.IntegerField(null=True, blank=True)
    avg_price = models.IntegerField(null=True, blank=True)
    max_price = models.IntegerField(null=True, blank=True)
    listing_count = models.IntegerField(default=0)
    summary = models.TextField(blank=True, null=True)
    search_date = models.DateTimeField(auto_now_add=True)
    is_active = models.BooleanField(default=True, db_index=True)

    def __str__(self):
        return f"{self.item.name} @ {self.search_date:%Y-%m-%d} (avg {self.avg_price})"

    class Meta:
        db_table = 'price_histories'
        ordering = ['-search_date']
        indexes = [
            models.Index(fields=['item', '-search_date'], name='price_hist_item_date_idx'),
        ]


class PriceDetail(models.Model):
    """One listing found by a price search"""
    history = models.ForeignKey(PriceHistory, on_delete=models.CASCADE, related_name='details')
    site = models.CharField(max_length=100)
    price = models.IntegerField()
    url = models.URLField(max_length=500, blank=True, null=True)
    condition = models.CharField(max_length=50, blank=True, null=True)
    title = models.CharField(max_length=255, blank=True, null=True)

    class Meta:
        db_table = 'price_details'
        ordering = ['price']
