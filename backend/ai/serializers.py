import base64
import binascii
import re

from rest_framework import serializers

SUPPORTED_MIME_TYPES = ('image/jpeg', 'image/jpg', 'image/png', 'image/webp')
DATA_URL_PREFIX = re.compile(r'^data:(image/[a-z]+);base64,', re.IGNORECASE)
MAX_IMAGE_BYTES = 10 * 1024 * 1024


class RecognizeSerializer(serializers.Serializer):
    image_base64 = serializers.CharField(trim_whitespace=True)
    mime_type = serializers.CharField(required=False, default='image/jpeg')

    def validate(self, attrs):
        data = attrs['image_base64']
        mime_type = attrs['mime_type'].lower()
        prefix = DATA_URL_PREFIX.match(data)
        if prefix:
            mime_type = prefix.group(1).lower()
            data = data[prefix.end():]
        if mime_type not in SUPPORTED_MIME_TYPES:
            raise serializers.ValidationError({'mime_type': 'Unsupported image format. Use JPEG, PNG or WebP'})
        try:
            raw = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError):
            raise serializers.ValidationError({'image_base64': 'Image data is not valid base64'})
        if not raw:
            raise serializers.ValidationError({'image_base64': 'Image data is required'})
        if len(raw) > MAX_IMAGE_BYTES:
            raise serializers.ValidationError({'image_base64': 'Image is too large (maximum 10MB)'})
        attrs['image_base64'] = data
        attrs['mime_type'] = 'image/jpeg' if mime_type == 'image/jpg' else mime_type
        return attrs


class PriceSearchSerializer(serializers.Serializer):
    item_id = serializers.IntegerField(required=False, allow_null=True, default=None)
    item_name = serializers.CharField(max_length=200)
    manufacturer = serializers.CharField(max_length=100, required=False, allow_blank=True, allow_null=True, default=None)
    save_history = serializers.BooleanField(required=False, default=True)
