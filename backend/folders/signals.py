"""
folder_updated signal and cache invalidation.

folder_updated is sent after every folder create, update, move and delete
with the keyword arguments user_id, folder_id and action. Anything holding
a folder snapshot (the tree cache, FolderTreeStore instances) listens to it
and reloads.
"""
from django.db.models.signals import post_save, post_delete
from django.dispatch import Signal, receiver
import logging

from .folder_cache import invalidate_folder_tree_cache
from .models import Folder

logger = logging.getLogger(__name__)

folder_updated = Signal()


def notify_folder_updated(user_id, folder_id=None, action=None):
    """Broadcast that a user's folder hierarchy changed"""
    logger.debug(f"folder_updated: user={user_id} folder={folder_id} action={action}")
    folder_updated.send(sender=Folder, user_id=user_id, folder_id=folder_id, action=action)


@receiver(folder_updated)
def invalidate_tree_on_folder_updated(sender, user_id=None, **kwargs):
    invalidate_folder_tree_cache(user_id)


@receiver(post_save, sender=Folder)
@receiver(post_delete, sender=Folder)
def invalidate_tree_on_folder_change(sender, instance, **kwargs):
    invalidate_folder_tree_cache(instance.user_id)


@receiver(post_save, sender='items.Item')
@receiver(post_delete, sender='items.Item')
def invalidate_tree_on_item_change(sender, instance, **kwargs):
    # Item counts are part of the cached rows
    invalidate_folder_tree_cache(instance.user_id)
