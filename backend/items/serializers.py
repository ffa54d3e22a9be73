from decimal import Decimal

from django.utils import timezone
from rest_framework import serializers

from backend.folders.models import Folder
from .models import Item, ItemImage

MAX_PURCHASE_PRICE = Decimal('999999999')


def _file_url(field_file, request=None):
    if not field_file:
        return None
    url = field_file.url
    return request.build_absolute_uri(url) if request is not None else url


class NullableIdField(serializers.IntegerField):
    """Integer id where '' and None both mean "no folder" (root / uncategorized)"""

    def __init__(self, **kwargs):
        kwargs.setdefault('allow_null', True)
        kwargs.setdefault('required', False)
        kwargs.setdefault('default', None)
        super().__init__(**kwargs)

    def validate_empty_values(self, data):
        if data == '':
            return (True, None)
        return super().validate_empty_values(data)


class ItemImageSerializer(serializers.ModelSerializer):
    item_id = serializers.IntegerField(read_only=True)
    url = serializers.SerializerMethodField()
    thumbnails = serializers.SerializerMethodField()

    class Meta:
        model = ItemImage
        fields = ['id', 'item_id', 'url', 'thumbnails', 'filename', 'mime_type', 'size', 'order', 'created_at']

    def get_url(self, obj):
        return _file_url(obj.image, self.context.get('request'))

    def get_thumbnails(self, obj):
        request = self.context.get('request')
        return {
            'small': _file_url(obj.thumbnail_small, request),
            'medium': _file_url(obj.thumbnail_medium, request),
            'large': _file_url(obj.thumbnail_large, request),
        }


class ItemSerializer(serializers.ModelSerializer):
    folder_id = serializers.PrimaryKeyRelatedField(
        source='folder', queryset=Folder.objects.all(), allow_null=True, required=False
    )
    folder_name = serializers.CharField(source='folder.name', read_only=True, default=None)
    image_count = serializers.SerializerMethodField()

    class Meta:
        model = Item
        fields = ['id', 'name', 'description', 'category', 'manufacturer', 'purchase_date',
                  'purchase_price', 'purchase_location', 'condition', 'notes',
                  'folder_id', 'folder_name', 'image_count', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']
        extra_kwargs = {
            'description': {'max_length': 1000},
            'notes': {'max_length': 2000},
            'purchase_price': {'min_value': Decimal('0'), 'max_value': MAX_PURCHASE_PRICE},
        }

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        request = self.context.get('request')
        if request is not None and request.user.is_authenticated:
            self.fields['folder_id'].queryset = Folder.objects.filter(user=request.user)

    def get_image_count(self, obj):
        count = getattr(obj, 'image_count', None)
        if count is not None:
            return count
        return obj.images.count()

    def validate_name(self, value):
        name = value.strip()
        if not name:
            raise serializers.ValidationError('Item name is required')
        return name

    def validate_purchase_date(self, value):
        if value and value > timezone.localdate():
            raise serializers.ValidationError('Purchase date cannot be in the future')
        return value

    def validate(self, attrs):
        price = attrs.get('purchase_price', getattr(self.instance, 'purchase_price', None))
        purchase_date = attrs.get('purchase_date', getattr(self.instance, 'purchase_date', None))
        if price and price > 0 and not purchase_date:
            raise serializers.ValidationError({'purchase_date': 'Purchase date is required when a purchase price is set'})
        return attrs


class ItemListSerializer(serializers.ModelSerializer):
    """Compact item row for lists"""
    folder_id = serializers.IntegerField(read_only=True)
    folder_name = serializers.CharField(source='folder.name', read_only=True, default=None)
    image_count = serializers.SerializerMethodField()
    thumbnail = serializers.SerializerMethodField()

    class Meta:
        model = Item
        fields = ['id', 'name', 'category', 'manufacturer', 'condition', 'purchase_date', 'purchase_price',
                  'folder_id', 'folder_name', 'image_count', 'thumbnail', 'created_at', 'updated_at']

    def get_image_count(self, obj):
        count = getattr(obj, 'image_count', None)
        if count is not None:
            return count
        return obj.images.count()

    def get_thumbnail(self, obj):
        # images are prefetched by the list views
        images = list(obj.images.all())
        if not images:
            return None
        return _file_url(images[0].thumbnail_small or images[0].image, self.context.get('request'))


class ItemDetailSerializer(ItemSerializer):
    images = ItemImageSerializer(many=True, read_only=True)
    folder_path = serializers.SerializerMethodField()
    latest_price = serializers.SerializerMethodField()

    class Meta(ItemSerializer.Meta):
        fields = ItemSerializer.Meta.fields + ['images', 'folder_path', 'latest_price']

    def get_folder_path(self, obj):
        return obj.folder.get_path() if obj.folder_id else []

    def get_latest_price(self, obj):
        history = obj.price_histories.filter(is_active=True).order_by('-search_date').first()
        if history is None:
            return None
        return {
            'id': history.id,
            'avg_price': history.avg_price,
            'min_price': history.min_price,
            'max_price': history.max_price,
            'search_date': history.search_date,
        }


class ItemMoveSerializer(serializers.Serializer):
    item_id = serializers.IntegerField()
    target_folder_id = NullableIdField()


class ItemBulkMoveSerializer(serializers.Serializer):
    item_ids = serializers.ListField(child=serializers.IntegerField(), min_length=1, max_length=100)
    target_folder_id = NullableIdField()

    def validate_item_ids(self, value):
        return list(dict.fromkeys(value))


class ImageOrderEntrySerializer(serializers.Serializer):
    image_id = serializers.IntegerField()
    order = serializers.IntegerField(min_value=0, max_value=9)


class ImageOrderSerializer(serializers.Serializer):
    image_orders = ImageOrderEntrySerializer(many=True)

    def validate_image_orders(self, value):
        if not 1 <= len(value) <= 10:
            raise serializers.ValidationError('Between 1 and 10 images can be reordered at once')
        orders = [entry['order'] for entry in value]
        if len(set(orders)) != len(orders):
            raise serializers.ValidationError('Duplicate order values are not allowed')
        image_ids = [entry['image_id'] for entry in value]
        if len(set(image_ids)) != len(image_ids):
            raise serializers.ValidationError('Each image can only appear once')
        return value
