from django.conf import settings
from django.db import models


class Folder(models.Model):
    """User folder. parent=None places the folder at the root level."""
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='folders')
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True, null=True)
    parent = models.ForeignKey('self', on_delete=models.CASCADE, null=True, blank=True, related_name='children')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'folders'
        ordering = ['name']
        indexes = [
            models.Index(fields=['user', 'parent'], name='folders_user_parent_idx'),
        ]

    def get_depth(self):
        """Depth counted from the root (root folders are 1)"""
        depth = 1
        seen = {self.pk}
        current = self.parent
        while current is not None and current.pk not in seen:
            seen.add(current.pk)
            depth += 1
            current = current.parent
        return depth

    def get_path(self):
        """[{'id', 'name'}] from the root down to this folder"""
        path = [{'id': self.pk, 'name': self.name}]
        seen = {self.pk}
        current = self.parent
        while current is not None and current.pk not in seen:
            seen.add(current.pk)
            path.insert(0, {'id': current.pk, 'name': current.name})
            current = current.parent
        return path
