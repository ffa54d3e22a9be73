import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db import transaction
from django.db.models import Count
from django.shortcuts import get_object_or_404
from django.utils import timezone

from backend.core.utils import create_audit_log, parse_pagination, paginate
from backend.folders.folder_cache import invalidate_folder_tree_cache
from backend.folders.models import Folder
from .filters import ItemFilter, apply_sort
from .image_utils import (
    ImageUploadError, MAX_IMAGES_PER_ITEM, attach_thumbnails, delete_image_files,
    generate_stored_filename, get_upload_config, validate_image_upload,
)
from .models import Item, ItemImage
from .serializers import (
    ItemSerializer, ItemListSerializer, ItemDetailSerializer, ItemImageSerializer,
    ItemMoveSerializer, ItemBulkMoveSerializer, ImageOrderSerializer,
)

logger = logging.getLogger('backend.items')

UNCATEGORIZED_LABEL = 'Uncategorized'
SUGGESTION_TYPES = ('category', 'manufacturer')
SUGGESTION_LIMIT = 10


def user_items(user):
    """Items of a user with the joins every list serializer needs"""
    return (
        Item.objects.filter(user=user)
        .select_related('folder')
        .annotate(image_count=Count('images', distinct=True))
        .prefetch_related('images')
    )


def paginated_item_response(request, queryset, extra=None):
    queryset, error = apply_sort(queryset, request.query_params.get('sort'), request.query_params.get('order'))
    if error:
        return Response({'error': error}, status=status.HTTP_400_BAD_REQUEST)
    page, limit, error = parse_pagination(request.query_params)
    if error:
        return Response({'error': error}, status=status.HTTP_400_BAD_REQUEST)
    data = paginate(
        queryset, page, limit,
        lambda rows: ItemListSerializer(rows, many=True, context={'request': request}).data,
    )
    if extra:
        data.update(extra)
    return Response(data)


def resolve_target_folder(user, folder_id):
    """(folder, error response). folder_id None means uncategorized."""
    if folder_id is None:
        return None, None
    folder = Folder.objects.filter(pk=folder_id, user=user).first()
    if folder is None:
        return None, Response({'error': 'Target folder not found'}, status=status.HTTP_404_NOT_FOUND)
    return folder, None


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def item_list_create(request):
    """Search the user's items or create a new item"""
    if request.method == 'GET':
        item_filter = ItemFilter(request.query_params, queryset=user_items(request.user))
        if not item_filter.is_valid():
            return Response(item_filter.errors, status=status.HTTP_400_BAD_REQUEST)
        return paginated_item_response(request, item_filter.qs)

    serializer = ItemSerializer(data=request.data, context={'request': request})
    if not serializer.is_valid():
        logger.warning(f"User {request.user.username} item create rejected: {serializer.errors}")
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    item = serializer.save(user=request.user)
    create_audit_log(
        request=request, action='create', model_name='Item', object_id=item.id,
        object_name=item.name, changes={'folder_id': item.folder_id},
    )
    logger.info(f"User {request.user.username} created item '{item.name}' (ID: {item.id})")
    return Response(ItemDetailSerializer(item, context={'request': request}).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def item_detail(request, pk):
    """Retrieve, update or delete an item"""
    item = get_object_or_404(Item.objects.select_related('folder'), pk=pk, user=request.user)

    if request.method == 'GET':
        return Response(ItemDetailSerializer(item, context={'request': request}).data)

    if request.method in ('PUT', 'PATCH'):
        serializer = ItemSerializer(item, data=request.data, partial=request.method == 'PATCH', context={'request': request})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        changes = {
            field: str(value) if value is not None else None
            for field, value in serializer.validated_data.items()
            if getattr(item, field) != value
        }
        item = serializer.save()
        create_audit_log(
            request=request, action='update', model_name='Item', object_id=item.id,
            object_name=item.name, changes=changes,
        )
        return Response(ItemDetailSerializer(item, context={'request': request}).data)

    images = list(item.images.all())
    item_id, item_name = item.id, item.name
    item.delete()
    for image in images:
        delete_image_files(image)
    create_audit_log(
        request=request, action='delete', model_name='Item', object_id=item_id,
        object_name=item_name, changes={'deleted_images': len(images)},
    )
    logger.info(f"User {request.user.username} deleted item '{item_name}' (ID: {item_id})")
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def item_move(request):
    """Move one item into a folder, or to uncategorized with target_folder_id=null"""
    serializer = ItemMoveSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    item_id = serializer.validated_data['item_id']
    target_id = serializer.validated_data['target_folder_id']

    item = Item.objects.select_related('folder').filter(pk=item_id, user=request.user).first()
    if item is None:
        return Response({'error': 'Item not found'}, status=status.HTTP_404_NOT_FOUND)
    target, error_response = resolve_target_folder(request.user, target_id)
    if error_response:
        return error_response
    if item.folder_id == target_id:
        return Response({'error': 'Item is already in that location'}, status=status.HTTP_400_BAD_REQUEST)

    previous_folder_id = item.folder_id
    from_name = item.folder.name if item.folder else UNCATEGORIZED_LABEL
    to_name = target.name if target else UNCATEGORIZED_LABEL
    item.folder = target
    item.save(update_fields=['folder', 'updated_at'])

    create_audit_log(
        request=request, action='item_move', model_name='Item', object_id=item.id, object_name=item.name,
        changes={'previous_folder_id': previous_folder_id, 'new_folder_id': target_id},
    )
    logger.info(f"User {request.user.username} moved item {item.id} from {from_name} to {to_name}")
    return Response({
        'message': f'Moved "{item.name}" from {from_name} to {to_name}',
        'item': ItemSerializer(item, context={'request': request}).data,
        'previous_folder_id': previous_folder_id,
        'new_folder_id': target_id,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def item_bulk_move(request):
    """Move several items into one folder"""
    serializer = ItemBulkMoveSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    item_ids = serializer.validated_data['item_ids']
    target_id = serializer.validated_data['target_folder_id']

    items = Item.objects.filter(user=request.user, pk__in=item_ids)
    found_ids = set(items.values_list('id', flat=True))
    missing = [item_id for item_id in item_ids if item_id not in found_ids]
    if missing:
        return Response({'error': 'Some items were not found', 'missing_ids': missing}, status=status.HTTP_404_NOT_FOUND)
    target, error_response = resolve_target_folder(request.user, target_id)
    if error_response:
        return error_response

    to_move = items.exclude(folder__isnull=True) if target_id is None else items.exclude(folder_id=target_id)
    with transaction.atomic():
        moved_count = to_move.update(folder=target, updated_at=timezone.now())
    # queryset.update() bypasses post_save
    invalidate_folder_tree_cache(request.user.id)

    create_audit_log(
        request=request, action='item_move', model_name='Item', object_id=','.join(str(i) for i in item_ids)[:100],
        changes={'item_ids': item_ids, 'new_folder_id': target_id, 'moved_count': moved_count},
    )
    return Response({
        'message': f'Moved {moved_count} item(s) to {target.name if target else UNCATEGORIZED_LABEL}',
        'moved_count': moved_count,
        'skipped_count': len(item_ids) - moved_count,
        'new_folder_id': target_id,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def uncategorized_items(request):
    """Items without a folder, optionally with category statistics"""
    queryset = user_items(request.user).filter(folder__isnull=True)
    extra = None
    if request.query_params.get('include_stats', 'false').lower() == 'true':
        distribution = (
            Item.objects.filter(user=request.user, folder__isnull=True)
            .values('category')
            .annotate(count=Count('id'))
            .order_by('-count', 'category')[:10]
        )
        extra = {
            'statistics': {
                'total_uncategorized': queryset.count(),
                'category_distribution': [
                    {'category': row['category'] or UNCATEGORIZED_LABEL, 'count': row['count']}
                    for row in distribution
                ],
            }
        }
    return paginated_item_response(request, queryset, extra)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def item_suggestions(request):
    """Distinct category or manufacturer values for autocomplete"""
    suggestion_type = request.query_params.get('type', '')
    query = request.query_params.get('query', '').strip()
    if suggestion_type not in SUGGESTION_TYPES:
        return Response({'error': f"type must be one of: {', '.join(SUGGESTION_TYPES)}"}, status=status.HTTP_400_BAD_REQUEST)
    if len(query) > 50:
        return Response({'error': 'query must be 50 characters or fewer'}, status=status.HTTP_400_BAD_REQUEST)

    values = Item.objects.filter(user=request.user, **{f'{suggestion_type}__isnull': False}).exclude(**{suggestion_type: ''})
    if query:
        values = values.filter(**{f'{suggestion_type}__icontains': query})
    suggestions = list(
        values.order_by(suggestion_type).values_list(suggestion_type, flat=True).distinct()[:SUGGESTION_LIMIT]
    )
    return Response({'type': suggestion_type, 'query': query, 'suggestions': suggestions})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def item_images(request, pk):
    """Images of an item with storage statistics"""
    item = get_object_or_404(Item, pk=pk, user=request.user)
    images = list(item.images.order_by('order', 'created_at'))
    total_size = sum(image.size for image in images)
    return Response({
        'item_id': item.id,
        'images': ItemImageSerializer(images, many=True, context={'request': request}).data,
        'statistics': {
            'total_images': len(images),
            'total_size': total_size,
            'total_size_mb': round(total_size / (1024 * 1024), 2),
            'remaining_slots': max(MAX_IMAGES_PER_ITEM - len(images), 0),
        },
    })


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def image_upload(request):
    """GET returns the upload limits; POST stores one image for an item"""
    if request.method == 'GET':
        return Response(get_upload_config())

    item_id = request.data.get('item_id')
    if not item_id:
        return Response({'error': 'item_id is required', 'field': 'item_id'}, status=status.HTTP_400_BAD_REQUEST)
    try:
        item = Item.objects.filter(pk=int(item_id), user=request.user).first()
    except (TypeError, ValueError):
        return Response({'error': 'item_id must be an integer', 'field': 'item_id'}, status=status.HTTP_400_BAD_REQUEST)
    if item is None:
        return Response({'error': 'Item not found'}, status=status.HTTP_404_NOT_FOUND)

    current_count = item.images.count()
    if current_count >= MAX_IMAGES_PER_ITEM:
        return Response(
            {'error': f'An item can have at most {MAX_IMAGES_PER_ITEM} images'},
            status=status.HTTP_400_BAD_REQUEST,
        )

    order = request.data.get('order')
    if order in (None, ''):
        order = current_count
    else:
        try:
            order = int(order)
        except (TypeError, ValueError):
            order = -1
        if not 0 <= order < MAX_IMAGES_PER_ITEM:
            return Response({'error': f'order must be between 0 and {MAX_IMAGES_PER_ITEM - 1}', 'field': 'order'},
                            status=status.HTTP_400_BAD_REQUEST)

    uploaded_file = request.FILES.get('file')
    try:
        ext = validate_image_upload(uploaded_file)
    except ImageUploadError as e:
        return Response({'error': e.message, 'field': 'file'}, status=e.status_code)

    mime_type = uploaded_file.content_type.lower().replace('image/jpg', 'image/jpeg')
    image = ItemImage(
        item=item,
        filename=uploaded_file.name,
        mime_type=mime_type,
        size=uploaded_file.size,
        order=order,
    )
    stored_name = generate_stored_filename(ext)
    try:
        image.image.save(stored_name, uploaded_file, save=False)
        attach_thumbnails(image, uploaded_file, stored_name)
        image.save()
    except OSError as e:
        logger.error(f"Failed to store image for item {item.id}: {str(e)}", exc_info=True)
        delete_image_files(image)
        return Response({'error': 'Failed to store the image'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    create_audit_log(
        request=request, action='image_upload', model_name='ItemImage', object_id=image.id,
        object_name=item.name, changes={'item_id': item.id, 'order': order, 'size': image.size},
    )
    logger.info(f"User {request.user.username} uploaded image {image.id} for item {item.id}")
    return Response(ItemImageSerializer(image, context={'request': request}).data, status=status.HTTP_201_CREATED)


@api_view(['PUT'])
@permission_classes([IsAuthenticated])
def image_order(request):
    """Set the display order of an item's images"""
    serializer = ImageOrderSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    entries = serializer.validated_data['image_orders']
    image_ids = [entry['image_id'] for entry in entries]

    images = {image.id: image for image in ItemImage.objects.filter(pk__in=image_ids).select_related('item')}
    if len(images) != len(image_ids):
        return Response({'error': 'One or more images were not found'}, status=status.HTTP_404_NOT_FOUND)
    item_ids = {image.item_id for image in images.values()}
    if len(item_ids) > 1:
        return Response({'error': 'All images must belong to the same item'}, status=status.HTTP_400_BAD_REQUEST)
    item = next(iter(images.values())).item
    if item.user_id != request.user.id:
        logger.warning(f"User {request.user.username} attempted to reorder images of item {item.id}")
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    with transaction.atomic():
        for entry in entries:
            image = images[entry['image_id']]
            image.order = entry['order']
        ItemImage.objects.bulk_update(images.values(), ['order'])

    create_audit_log(
        request=request, action='image_reorder', model_name='Item', object_id=item.id, object_name=item.name,
        changes={str(entry['image_id']): entry['order'] for entry in entries},
    )
    ordered = item.images.order_by('order', 'created_at')
    return Response({
        'message': 'Image order updated',
        'images': ItemImageSerializer(ordered, many=True, context={'request': request}).data,
    })


@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated])
def image_detail(request, pk):
    """Retrieve or delete an image; remaining images are renumbered 0..n-1"""
    image = get_object_or_404(ItemImage.objects.select_related('item'), pk=pk, item__user=request.user)

    if request.method == 'GET':
        return Response(ItemImageSerializer(image, context={'request': request}).data)

    item = image.item
    with transaction.atomic():
        image.delete()
        remaining = list(item.images.order_by('order', 'created_at'))
        for index, other in enumerate(remaining):
            other.order = index
        ItemImage.objects.bulk_update(remaining, ['order'])
    delete_image_files(image)

    create_audit_log(
        request=request, action='image_delete', model_name='ItemImage', object_id=pk,
        object_name=item.name, changes={'item_id': item.id, 'remaining_images': len(remaining)},
    )
    return Response({
        'message': 'Image deleted',
        'remaining_images': len(remaining),
    })
