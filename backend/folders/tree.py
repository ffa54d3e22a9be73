"""
In-memory folder hierarchy.

A FolderTree is a flat snapshot of one user's folders keyed by id. Each
node keeps a reference to its parent id only; children are looked up
through an index built from those references. The snapshot is never
patched in place: after a change the owner builds a new one.

The same tree answers two questions:
- is_valid_move(): the drag-and-drop check run on every drag-over. Pure,
  synchronous and side-effect free.
- check_move(): the authoritative server check, which raises
  FolderMoveError with an HTTP status for the API layer.
"""
from collections import defaultdict, deque

from django.conf import settings

MAX_FOLDER_DEPTH = getattr(settings, 'FOLDER_MAX_DEPTH', 3)


class FolderMoveError(Exception):
    """A rejected folder move or reparent"""

    def __init__(self, message, status_code=400, field=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.field = field

    def as_response_data(self):
        data = {'error': self.message}
        if self.field:
            data['field'] = self.field
        return data


class FolderNode:
    """One folder in a snapshot"""

    __slots__ = ('id', 'name', 'parent_id', 'item_count', 'child_count')

    def __init__(self, id, name, parent_id=None, item_count=0, child_count=0):
        self.id = id
        self.name = name
        self.parent_id = parent_id
        self.item_count = item_count
        self.child_count = child_count

    def __repr__(self):
        return f"FolderNode(id={self.id!r}, name={self.name!r}, parent_id={self.parent_id!r})"


class FolderTree:
    """Read-only snapshot of a user's folders"""

    def __init__(self, nodes=(), max_depth=MAX_FOLDER_DEPTH):
        self.max_depth = max_depth
        self._nodes = {}
        self._children = defaultdict(list)
        for node in nodes:
            self._nodes[node.id] = node
        for node in self._nodes.values():
            self._children[node.parent_id].append(node.id)

    @classmethod
    def from_rows(cls, rows, **kwargs):
        """Build from dicts with id, name, parent_id and optional counts"""
        return cls(
            (
                FolderNode(
                    row['id'],
                    row.get('name', ''),
                    row.get('parent_id'),
                    row.get('item_count', 0) or 0,
                    row.get('child_count', 0) or 0,
                )
                for row in rows
            ),
            **kwargs,
        )

    @classmethod
    def from_nested(cls, roots, **kwargs):
        """Flatten a nested tree payload (as returned by the tree endpoint)"""
        rows = []
        queue = deque((node, None) for node in roots)
        while queue:
            node, parent_id = queue.popleft()
            children = node.get('children') or []
            rows.append({
                'id': node['id'],
                'name': node.get('name', ''),
                'parent_id': node.get('parent_id', parent_id),
                'item_count': node.get('item_count', 0),
                'child_count': node.get('child_count', len(children)),
            })
            queue.extend((child, node['id']) for child in children)
        return cls.from_rows(rows, **kwargs)

    def __contains__(self, folder_id):
        return folder_id in self._nodes

    def __len__(self):
        return len(self._nodes)

    def __iter__(self):
        return iter(self._nodes.values())

    def get(self, folder_id):
        return self._nodes.get(folder_id)

    def parent_of(self, folder_id):
        node = self._nodes.get(folder_id)
        return node.parent_id if node else None

    def children_of(self, folder_id):
        return [self._nodes[child_id] for child_id in self._children.get(folder_id, ())]

    def roots(self):
        return self.children_of(None)

    def ancestor_ids(self, folder_id, limit=None):
        """
        Ids from folder_id upward to its root, folder_id first.

        Stops at a missing parent, at a repeated id (a corrupt snapshot must
        not loop forever) or after `limit` ids.
        """
        chain = []
        seen = set()
        current = folder_id
        while current is not None and current in self._nodes and current not in seen:
            if limit is not None and len(chain) >= limit:
                break
            chain.append(current)
            seen.add(current)
            current = self._nodes[current].parent_id
        return chain

    def depth(self, folder_id, cap=None):
        """Depth of a folder, roots being 1. Unknown ids count as depth 1."""
        return max(len(self.ancestor_ids(folder_id, limit=cap)), 1)

    def path(self, folder_id):
        """Nodes from the root down to folder_id"""
        return [self._nodes[node_id] for node_id in reversed(self.ancestor_ids(folder_id))]

    def descendant_ids(self, folder_id):
        """Ids of every folder below folder_id"""
        found = set()
        queue = deque(self._children.get(folder_id, ()))
        while queue:
            current = queue.popleft()
            if current in found or current == folder_id:
                continue
            found.add(current)
            queue.extend(self._children.get(current, ()))
        return found

    def subtree_height(self, folder_id):
        """Number of levels in the subtree rooted at folder_id (1 for a leaf)"""
        height = 0
        level = [folder_id]
        seen = set()
        while level:
            height += 1
            seen.update(level)
            level = [
                child_id
                for node_id in level
                for child_id in self._children.get(node_id, ())
                if child_id not in seen
            ]
        return height

    def is_descendant(self, ancestor_id, folder_id):
        """True when ancestor_id is folder_id or one of its ancestors"""
        return ancestor_id in self.ancestor_ids(folder_id)

    def is_valid_move(self, dragging_id, target_parent_id):
        """
        Whether dragging_id may be dropped onto target_parent_id.

        None as target means the root level. Rules apply in order: a folder
        cannot be dropped on itself; the root level always accepts; a target
        inside the dragged folder's subtree is refused; a target already at
        the maximum depth is refused.
        """
        if dragging_id == target_parent_id:
            return False
        if target_parent_id is None:
            return True
        if self.is_descendant(dragging_id, target_parent_id):
            return False
        if self.depth(target_parent_id, cap=self.max_depth) >= self.max_depth:
            return False
        return True

    def check_move(self, folder_id, target_parent_id, allow_same_parent=False):
        """
        Raise FolderMoveError unless folder_id can be reparented under
        target_parent_id. Unlike is_valid_move this also keeps every folder
        of the moved subtree within the depth limit.
        """
        node = self._nodes.get(folder_id)
        if node is None:
            raise FolderMoveError('Folder not found', status_code=404, field='folder_id')
        if folder_id == target_parent_id:
            raise FolderMoveError('A folder cannot be moved into itself', field='target_parent_id')
        if node.parent_id == target_parent_id and not allow_same_parent:
            raise FolderMoveError('Folder is already in that location', field='target_parent_id')
        if target_parent_id is None:
            return
        if target_parent_id not in self._nodes:
            raise FolderMoveError('Target folder not found', status_code=404, field='target_parent_id')
        if self.is_descendant(folder_id, target_parent_id):
            raise FolderMoveError('Cannot move a folder into one of its own subfolders', field='target_parent_id')
        new_depth = self.depth(target_parent_id) + 1
        if new_depth > self.max_depth:
            raise FolderMoveError(
                f'Folder hierarchy cannot exceed {self.max_depth} levels',
                field='target_parent_id',
            )
        if new_depth + self.subtree_height(folder_id) - 1 > self.max_depth:
            raise FolderMoveError(
                f'Moving this folder would push its subfolders beyond {self.max_depth} levels',
                field='target_parent_id',
            )

    def check_new_child(self, parent_id):
        """Raise FolderMoveError unless a new folder can be created under parent_id"""
        if parent_id is None:
            return
        if parent_id not in self._nodes:
            raise FolderMoveError('Parent folder not found', status_code=404, field='parent_id')
        if self.depth(parent_id) >= self.max_depth:
            raise FolderMoveError(
                f'Folder hierarchy cannot exceed {self.max_depth} levels',
                field='parent_id',
            )

    def depth_distribution(self):
        distribution = defaultdict(int)
        for node_id in self._nodes:
            distribution[self.depth(node_id)] += 1
        return dict(sorted(distribution.items()))

    def build_nested(self, max_depth=None, include_counts=True):
        """Nested list of dicts, roots first, children sorted by name"""
        max_depth = max_depth or self.max_depth

        def build(node, depth):
            children = sorted(self.children_of(node.id), key=lambda child: child.name.lower())
            data = {
                'id': node.id,
                'name': node.name,
                'parent_id': node.parent_id,
                'depth': depth,
                'has_children': bool(children),
                'children': [build(child, depth + 1) for child in children] if depth < max_depth else [],
            }
            if include_counts:
                data['item_count'] = node.item_count
                data['child_count'] = node.child_count
            return data

        return [build(root, 1) for root in sorted(self.roots(), key=lambda root: root.name.lower())]
