"""
Per-user folder tree cache.

The tree endpoint and the folder views read the hierarchy through
load_folder_tree(); the cached value is the flat row list, rebuilt into a
FolderTree on every read. Entries are dropped by the folder_updated signal
and by item changes (item counts are part of the rows).
"""
from django.conf import settings
from django.core.cache import cache
from django.db.models import Count
import logging

from .models import Folder
from .tree import FolderTree

logger = logging.getLogger(__name__)

FOLDER_TREE_KEY_PREFIX = 'folder_tree:'
FOLDER_TREE_CACHE_TTL = getattr(settings, 'FOLDER_TREE_CACHE_TTL', 300)  # 5 minutes


def get_folder_tree_cache_key(user_id) -> str:
    """Get cache key for a user's folder rows"""
    return f"{FOLDER_TREE_KEY_PREFIX}{user_id}"


def fetch_folder_rows(user_id):
    """Folder rows with item and child counts, straight from the database"""
    return list(
        Folder.objects.filter(user_id=user_id)
        .annotate(
            item_count=Count('items', distinct=True),
            child_count=Count('children', distinct=True),
        )
        .values('id', 'name', 'parent_id', 'item_count', 'child_count')
    )


def lock_user_folders(user_id):
    """Row-lock a user's folders for the current transaction"""
    list(Folder.objects.select_for_update().filter(user_id=user_id).values_list('id', flat=True))


def load_folder_tree(user_id, use_cache=True) -> FolderTree:
    """Snapshot of a user's folders"""
    cache_key = get_folder_tree_cache_key(user_id)
    if use_cache:
        rows = cache.get(cache_key)
        if rows is not None:
            logger.debug(f"Cache hit for folder tree: user {user_id}")
            return FolderTree.from_rows(rows)

    rows = fetch_folder_rows(user_id)
    cache.set(cache_key, rows, FOLDER_TREE_CACHE_TTL)
    logger.debug(f"Cached folder tree for user {user_id} ({len(rows)} folders)")
    return FolderTree.from_rows(rows)


def invalidate_folder_tree_cache(user_id):
    """Drop the cached rows for a user"""
    if user_id is None:
        return
    cache.delete(get_folder_tree_cache_key(user_id))
    logger.debug(f"Invalidated folder tree cache for user {user_id}")
