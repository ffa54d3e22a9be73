from django.db.models import Count
from rest_framework import serializers

from backend.items.serializers import ItemListSerializer, NullableIdField
from .models import Folder
from .validators import (
    FOLDER_DESCRIPTION_MAX_LENGTH, FOLDER_NAME_MAX_LENGTH,
    validate_folder_description, validate_folder_name,
)


class FolderSerializer(serializers.ModelSerializer):
    parent_id = NullableIdField()
    item_count = serializers.SerializerMethodField()
    child_count = serializers.SerializerMethodField()

    class Meta:
        model = Folder
        fields = ['id', 'name', 'description', 'parent_id', 'item_count', 'child_count', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']
        extra_kwargs = {
            'name': {'max_length': FOLDER_NAME_MAX_LENGTH, 'trim_whitespace': False},
            'description': {'max_length': FOLDER_DESCRIPTION_MAX_LENGTH, 'required': False},
        }

    def get_item_count(self, obj):
        count = getattr(obj, 'item_count', None)
        return count if count is not None else obj.items.count()

    def get_child_count(self, obj):
        count = getattr(obj, 'child_count', None)
        return count if count is not None else obj.children.count()

    def validate_name(self, value):
        return validate_folder_name(value)

    def validate_description(self, value):
        return validate_folder_description(value)


class FolderSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Folder
        fields = ['id', 'name', 'parent_id']


class FolderDetailSerializer(FolderSerializer):
    parent = FolderSummarySerializer(read_only=True)
    children = serializers.SerializerMethodField()
    items = serializers.SerializerMethodField()
    path = serializers.SerializerMethodField()
    depth = serializers.SerializerMethodField()

    class Meta(FolderSerializer.Meta):
        fields = FolderSerializer.Meta.fields + ['parent', 'children', 'items', 'path', 'depth']

    def get_children(self, obj):
        children = obj.children.annotate(
            item_count=Count('items', distinct=True),
            child_count=Count('children', distinct=True),
        ).order_by('name')
        return FolderSerializer(children, many=True).data

    def get_items(self, obj):
        items = obj.items.select_related('folder').prefetch_related('images').order_by('-updated_at')
        return ItemListSerializer(items, many=True, context=self.context).data

    def get_path(self, obj):
        return obj.get_path()

    def get_depth(self, obj):
        return obj.get_depth()


class FolderMoveSerializer(serializers.Serializer):
    folder_id = serializers.IntegerField()
    target_parent_id = NullableIdField()
