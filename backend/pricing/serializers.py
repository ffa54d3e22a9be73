from rest_framework import serializers
from .models import PriceHistory, PriceDetail


class PriceDetailSerializer(serializers.ModelSerializer):
    class Meta:
        model = PriceDetail
        fields = ['id', 'site', 'price', 'url', 'condition', 'title']


class PriceHistorySerializer(serializers.ModelSerializer):
    item_id = serializers.IntegerField(read_only=True)
    details = PriceDetailSerializer(many=True, read_only=True)

    class Meta:
        model = PriceHistory
        fields = ['id', 'item_id', 'source', 'min_price', 'avg_price', 'max_price', 'listing_count',
                  'summary', 'search_date', 'details']


class PriceListingSerializer(serializers.Serializer):
    """A listing as returned by a price search"""
    price = serializers.CharField(max_length=50)
    site = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    url = serializers.CharField(max_length=500, required=False, allow_blank=True, allow_null=True, default=None)
    condition = serializers.CharField(max_length=50, required=False, allow_blank=True, allow_null=True, default=None)
    title = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True, default=None)


class PriceHistoryCreateSerializer(serializers.Serializer):
    prices = PriceListingSerializer(many=True)
    summary = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    source = serializers.ChoiceField(choices=PriceHistory.SOURCE_CHOICES, default='manual')
