import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db import transaction
from django.db.models import Count
from django.shortcuts import get_object_or_404
from django.utils import timezone

from backend.core.utils import create_audit_log
from backend.items.views import paginated_item_response, user_items
from .folder_cache import fetch_folder_rows, load_folder_tree, lock_user_folders
from .models import Folder
from .serializers import FolderSerializer, FolderDetailSerializer, FolderMoveSerializer
from .signals import notify_folder_updated
from .tree import FolderMoveError, FolderTree, MAX_FOLDER_DEPTH

logger = logging.getLogger('backend.folders')

EDITABLE_FIELDS = ('name', 'description', 'parent_id')


def with_counts(queryset):
    return queryset.annotate(
        item_count=Count('items', distinct=True),
        child_count=Count('children', distinct=True),
    )


def sibling_name_taken(user, parent_id, name, exclude_id=None):
    siblings = Folder.objects.filter(user=user, parent_id=parent_id, name=name)
    if exclude_id is not None:
        siblings = siblings.exclude(pk=exclude_id)
    return siblings.exists()


def duplicate_name_response(name):
    return Response(
        {'error': f'A folder named "{name}" already exists in this location', 'field': 'name'},
        status=status.HTTP_409_CONFLICT,
    )


def parse_bool(value, default=False):
    if value is None:
        return default
    return str(value).lower() in ('1', 'true', 'yes')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def folder_list_create(request):
    """List folders under ?parent_id= (root when omitted) or create a folder"""
    if request.method == 'GET':
        parent_param = request.query_params.get('parent_id')
        if parent_param in (None, '', 'null'):
            parent_id = None
        else:
            try:
                parent_id = int(parent_param)
            except ValueError:
                return Response({'error': 'parent_id must be an integer'}, status=status.HTTP_400_BAD_REQUEST)

        folders = with_counts(Folder.objects.filter(user=request.user, parent_id=parent_id)).order_by('name')
        data = FolderSerializer(folders, many=True).data
        if not parse_bool(request.query_params.get('include_item_count'), default=True):
            for row in data:
                row.pop('item_count', None)
        if parse_bool(request.query_params.get('include_children')):
            children = with_counts(Folder.objects.filter(user=request.user, parent_id__in=[f.id for f in folders])).order_by('name')
            by_parent = {}
            for child in children:
                by_parent.setdefault(child.parent_id, []).append(FolderSerializer(child).data)
            for row in data:
                row['children'] = by_parent.get(row['id'], [])
        return Response(data)

    serializer = FolderSerializer(data=request.data)
    if not serializer.is_valid():
        logger.warning(f"User {request.user.username} folder create rejected: {serializer.errors}")
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    parent_id = serializer.validated_data.get('parent_id')
    name = serializer.validated_data['name']
    tree = load_folder_tree(request.user.id, use_cache=False)
    try:
        tree.check_new_child(parent_id)
    except FolderMoveError as e:
        return Response(e.as_response_data(), status=e.status_code)
    if sibling_name_taken(request.user, parent_id, name):
        return duplicate_name_response(name)

    folder = serializer.save(user=request.user)
    create_audit_log(
        request=request, action='create', model_name='Folder', object_id=folder.id,
        object_name=folder.name, changes={'parent_id': parent_id},
    )
    notify_folder_updated(request.user.id, folder.id, 'create')
    logger.info(f"User {request.user.username} created folder '{folder.name}' (ID: {folder.id})")

    data = FolderSerializer(with_counts(Folder.objects.filter(pk=folder.pk)).get()).data
    data['depth'] = tree.depth(parent_id) + 1 if parent_id else 1
    return Response(data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def folder_detail(request, pk):
    """Retrieve, update or delete a folder"""
    folder = get_object_or_404(Folder.objects.select_related('parent'), pk=pk, user=request.user)

    if request.method == 'GET':
        folder = with_counts(Folder.objects.select_related('parent').filter(pk=folder.pk)).get()
        return Response(FolderDetailSerializer(folder, context={'request': request}).data)

    if request.method in ('PUT', 'PATCH'):
        return update_folder(request, folder)

    return delete_folder(request, folder)


def update_folder(request, folder):
    if not any(field in request.data for field in EDITABLE_FIELDS):
        return Response(
            {'error': f"At least one of {', '.join(EDITABLE_FIELDS)} must be provided"},
            status=status.HTTP_400_BAD_REQUEST,
        )
    serializer = FolderSerializer(folder, data=request.data, partial=True)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    validated = serializer.validated_data
    previous_parent_id = folder.parent_id
    new_parent_id = validated.get('parent_id', previous_parent_id)
    new_name = validated.get('name', folder.name)
    parent_changed = new_parent_id != previous_parent_id

    with transaction.atomic():
        if parent_changed:
            lock_user_folders(request.user.id)
            tree = FolderTree.from_rows(fetch_folder_rows(request.user.id))
            try:
                tree.check_move(folder.id, new_parent_id)
            except FolderMoveError as e:
                return Response(e.as_response_data(), status=e.status_code)
        if (parent_changed or new_name != folder.name) and sibling_name_taken(request.user, new_parent_id, new_name, exclude_id=folder.id):
            return duplicate_name_response(new_name)
        changes = {
            field: {'old': getattr(folder, field), 'new': value}
            for field, value in validated.items()
            if getattr(folder, field) != value
        }
        folder = serializer.save()

    create_audit_log(
        request=request, action='folder_move' if parent_changed else 'update', model_name='Folder',
        object_id=folder.id, object_name=folder.name, changes=changes,
    )
    notify_folder_updated(request.user.id, folder.id, 'move' if parent_changed else 'update')
    folder = with_counts(Folder.objects.filter(pk=folder.pk)).get()
    return Response(FolderSerializer(folder).data)


def delete_folder(request, folder):
    child_names = list(folder.children.order_by('name').values_list('name', flat=True))
    if child_names:
        listed = ', '.join(child_names[:3])
        if len(child_names) > 3:
            listed += f' and {len(child_names) - 3} more'
        return Response(
            {
                'error': f'Cannot delete a folder that contains subfolders ({listed}). Move or delete them first.',
                'child_count': len(child_names),
            },
            status=status.HTTP_400_BAD_REQUEST,
        )

    folder_id, folder_name = folder.id, folder.name
    with transaction.atomic():
        moved_items_count = folder.items.update(folder=None, updated_at=timezone.now())
        folder.delete()

    create_audit_log(
        request=request, action='delete', model_name='Folder', object_id=folder_id,
        object_name=folder_name, changes={'moved_items_count': moved_items_count},
    )
    notify_folder_updated(request.user.id, folder_id, 'delete')
    logger.info(f"User {request.user.username} deleted folder '{folder_name}' (ID: {folder_id}), {moved_items_count} item(s) uncategorized")
    return Response({
        'message': f'Folder "{folder_name}" deleted',
        'moved_items_count': moved_items_count,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def folder_tree(request):
    """The user's whole hierarchy as a nested tree with statistics"""
    try:
        max_depth = int(request.query_params.get('max_depth', MAX_FOLDER_DEPTH))
    except ValueError:
        max_depth = 0
    if not 1 <= max_depth <= MAX_FOLDER_DEPTH:
        return Response({'error': f'max_depth must be between 1 and {MAX_FOLDER_DEPTH}'}, status=status.HTTP_400_BAD_REQUEST)
    include_item_count = parse_bool(request.query_params.get('include_item_count'), default=True)

    tree = load_folder_tree(request.user.id)
    distribution = tree.depth_distribution()
    return Response({
        'tree': tree.build_nested(max_depth=max_depth, include_counts=include_item_count),
        'statistics': {
            'total_folders': len(tree),
            'depth_distribution': {str(depth): count for depth, count in distribution.items()},
            'max_depth_allowed': MAX_FOLDER_DEPTH,
            'current_max_depth': max(distribution) if distribution else 0,
        },
        'metadata': {
            'max_depth': max_depth,
            'include_item_count': include_item_count,
            'generated_at': timezone.now().isoformat(),
        },
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def folder_move(request):
    """Change a folder's parent. target_parent_id=null moves it to the root level."""
    serializer = FolderMoveSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    folder_id = serializer.validated_data['folder_id']
    target_id = serializer.validated_data['target_parent_id']

    with transaction.atomic():
        # Concurrent moves must not build a cycle
        lock_user_folders(request.user.id)
        tree = FolderTree.from_rows(fetch_folder_rows(request.user.id))
        try:
            tree.check_move(folder_id, target_id)
        except FolderMoveError as e:
            logger.warning(f"User {request.user.username} move of folder {folder_id} to {target_id} rejected: {e.message}")
            return Response(e.as_response_data(), status=e.status_code)

        folder = Folder.objects.get(pk=folder_id)
        if sibling_name_taken(request.user, target_id, folder.name, exclude_id=folder.id):
            return duplicate_name_response(folder.name)

        previous_parent_id = folder.parent_id
        folder.parent_id = target_id
        folder.save(update_fields=['parent', 'updated_at'])

    new_depth = tree.depth(target_id) + 1 if target_id is not None else 1
    target_name = tree.get(target_id).name if target_id is not None else None
    create_audit_log(
        request=request, action='folder_move', model_name='Folder', object_id=folder.id, object_name=folder.name,
        changes={'previous_parent_id': previous_parent_id, 'new_parent_id': target_id},
    )
    notify_folder_updated(request.user.id, folder.id, 'move')
    logger.info(f"User {request.user.username} moved folder {folder.id} from {previous_parent_id} to {target_id}")

    folder = with_counts(Folder.objects.filter(pk=folder.pk)).get()
    return Response({
        'message': f'Moved "{folder.name}" to "{target_name}"' if target_name else f'Moved "{folder.name}" to the top level',
        'folder': FolderSerializer(folder).data,
        'path': folder.get_path(),
        'metadata': {
            'previous_parent_id': previous_parent_id,
            'new_parent_id': target_id,
            'new_depth': new_depth,
            'moved_at': timezone.now().isoformat(),
        },
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def folder_items(request, pk):
    """Paginated items of a folder; ?include_subfolders=true adds its whole subtree"""
    folder = get_object_or_404(Folder, pk=pk, user=request.user)
    folder_ids = [folder.id]
    if parse_bool(request.query_params.get('include_subfolders')):
        folder_ids.extend(load_folder_tree(request.user.id).descendant_ids(folder.id))
    queryset = user_items(request.user).filter(folder_id__in=folder_ids)
    return paginated_item_response(request, queryset, extra={'folder': {'id': folder.id, 'name': folder.name}})
