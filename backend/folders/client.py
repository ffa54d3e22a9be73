"""
Folder tree handling for callers of the REST API (scripts, sync tools, a
desktop front end).

- FolderAPIClient talks to /api/v1/ with a JWT bearer token.
- FolderTreeStore keeps the current FolderTree snapshot and reloads it
  whenever folder_updated fires.
- MoveExecutor runs the move validator and, on a valid drop, sends the
  move request and reloads the store.
- FolderDrag is the per-node drag state machine.

Usage:
    client = FolderAPIClient('http://127.0.0.1:8000/api/v1')
    client.authenticate('alice', 'secret')
    store = FolderTreeStore(client.load_tree)
    executor = MoveExecutor(client, store)
    drag = FolderDrag(executor, folder_id=7)
    drag.start()
    if drag.over(3):
        drag.drop(3)
"""
import logging
import uuid
from typing import Callable, Optional

import requests

from .signals import folder_updated
from .tree import FolderTree

logger = logging.getLogger('backend.folders.client')

GENERIC_ERROR_MESSAGE = 'An error occurred.'
DEFAULT_TIMEOUT = 10


class FolderMoveFailed(Exception):
    """The server refused a move; message is the server's own"""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class FolderAPIClient:
    """Minimal client for the folder endpoints"""

    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: int = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout
        self.access_token = None

    def authenticate(self, username: str, password: str) -> bool:
        """Log in and keep the access token on the session"""
        response = self.session.post(
            f"{self.base_url}/auth/login/",
            json={'username': username, 'password': password},
            timeout=self.timeout,
        )
        if response.status_code != 200:
            logger.warning(f"Authentication failed for {username}: {response.status_code}")
            return False
        self.access_token = response.json().get('access')
        self.session.headers.update({
            'Authorization': f'Bearer {self.access_token}',
            'Content-Type': 'application/json',
        })
        return True

    def fetch_tree(self) -> dict:
        """GET folders/tree/ with item counts"""
        response = self.session.get(
            f"{self.base_url}/folders/tree/",
            params={'include_item_count': 'true'},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    def load_tree(self) -> FolderTree:
        return FolderTree.from_nested(self.fetch_tree().get('tree', []))

    def move_folder(self, folder_id, new_parent_id) -> dict:
        """
        POST folders/move/.

        Raises FolderMoveFailed with the server's message when the server
        rejects the move; network errors propagate as requests exceptions.
        """
        response = self.session.post(
            f"{self.base_url}/folders/move/",
            json={'folder_id': folder_id, 'target_parent_id': new_parent_id},
            timeout=self.timeout,
        )
        if response.ok:
            return response.json()
        raise FolderMoveFailed(self._error_message(response), status_code=response.status_code)

    @staticmethod
    def _error_message(response):
        try:
            body = response.json()
        except ValueError:
            return GENERIC_ERROR_MESSAGE
        if isinstance(body, dict):
            if body.get('error'):
                return body['error']
            if body.get('detail'):
                return body['detail']
        return GENERIC_ERROR_MESSAGE


class FolderTreeStore:
    """
    Holds the current snapshot. While a drag is in progress the snapshot is
    not replaced; an update that arrives meanwhile is applied when the drag
    ends.
    """

    def __init__(self, loader: Callable[[], FolderTree], listen: bool = True):
        self._loader = loader
        self._tree = FolderTree()
        self._drags = 0
        self._stale = True
        self._dispatch_uid = None
        if listen:
            self._dispatch_uid = f"folder-tree-store-{uuid.uuid4().hex}"
            folder_updated.connect(self._on_folder_updated, weak=False, dispatch_uid=self._dispatch_uid)

    @property
    def tree(self) -> FolderTree:
        if self._stale and not self._drags:
            self.reload()
        return self._tree

    @property
    def stale(self) -> bool:
        return self._stale

    def reload(self) -> FolderTree:
        """
        Replace the snapshot with a fresh one from the loader. When the
        loader fails the old snapshot is kept and the store stays stale.
        """
        self._stale = True
        self._tree = self._loader()
        self._stale = False
        logger.debug(f"Folder tree reloaded ({len(self._tree)} folders)")
        return self._tree

    def try_reload(self) -> bool:
        try:
            self.reload()
        except requests.RequestException as e:
            logger.warning(f"Could not reload folder tree: {str(e)}")
            return False
        return True

    def invalidate(self):
        self._stale = True
        if not self._drags:
            self.try_reload()

    def begin_drag(self):
        if self._stale and not self._drags:
            self.try_reload()
        self._drags += 1

    def end_drag(self):
        self._drags = max(self._drags - 1, 0)
        if self._stale and not self._drags:
            self.try_reload()

    def close(self):
        if self._dispatch_uid:
            folder_updated.disconnect(dispatch_uid=self._dispatch_uid)
            self._dispatch_uid = None

    def _on_folder_updated(self, sender, **kwargs):
        self.invalidate()


def log_alert(message):
    logger.warning(f"Folder move failed: {message}")


class MoveExecutor:
    """Validate a drop and carry out the move"""

    def __init__(self, client: FolderAPIClient, store: FolderTreeStore, notify: Callable[[str], None] = log_alert):
        self.client = client
        self.store = store
        self.notify = notify

    def _current_tree(self) -> Optional[FolderTree]:
        try:
            return self.store.tree
        except requests.RequestException as e:
            logger.warning(f"Folder tree unavailable: {str(e)}")
            return None

    def can_drop(self, dragging_id, target_parent_id) -> bool:
        tree = self._current_tree()
        if tree is None:
            return False
        return tree.is_valid_move(dragging_id, target_parent_id)

    def move(self, dragging_id, target_parent_id) -> bool:
        """
        True when the folder ends up under target_parent_id. Invalid drops
        return False without any request.
        """
        tree = self._current_tree()
        if tree is None:
            self.notify(GENERIC_ERROR_MESSAGE)
            return False
        if not tree.is_valid_move(dragging_id, target_parent_id):
            logger.debug(f"Drop of folder {dragging_id} on {target_parent_id} rejected by validator")
            return False
        if dragging_id in tree and tree.parent_of(dragging_id) == target_parent_id:
            # Already there
            return True

        try:
            self.client.move_folder(dragging_id, target_parent_id)
        except FolderMoveFailed as e:
            self.notify(e.message)
            self._resync()
            return False
        except requests.RequestException as e:
            logger.error(f"Network error moving folder {dragging_id}: {str(e)}", exc_info=True)
            self.notify(GENERIC_ERROR_MESSAGE)
            self._resync()
            return False

        if not self.store.try_reload():
            # Moved on the server; the store stays stale until the next reload
            self.notify(GENERIC_ERROR_MESSAGE)
        return True

    def _resync(self):
        # Keeps the last known good snapshot when the reload fails too
        self.store.try_reload()


IDLE = 'idle'
DRAGGING = 'dragging'
DROPPED_VALID = 'dropped-valid'
DROPPED_INVALID = 'dropped-invalid'
PENDING = 'pending'


class FolderDrag:
    """
    Drag state of one folder node:
    idle -> dragging -> dropped-valid -> pending -> idle
                     -> dropped-invalid -> idle
                     -> idle (cancel)
    """

    def __init__(self, executor: MoveExecutor, folder_id):
        self.executor = executor
        self.folder_id = folder_id
        self.state = IDLE
        self.history = [IDLE]

    def _set(self, state):
        self.state = state
        self.history.append(state)

    def start(self):
        if self.state != IDLE:
            raise RuntimeError(f"Cannot start a drag from state {self.state}")
        self.executor.store.begin_drag()
        self._set(DRAGGING)

    def over(self, target_parent_id) -> bool:
        """Whether the current target accepts the drop"""
        if self.state != DRAGGING:
            return False
        return self.executor.can_drop(self.folder_id, target_parent_id)

    def cancel(self):
        if self.state == DRAGGING:
            self._finish()

    def drop(self, target_parent_id) -> bool:
        if self.state != DRAGGING:
            raise RuntimeError(f"Cannot drop from state {self.state}")
        if not self.executor.can_drop(self.folder_id, target_parent_id):
            self._set(DROPPED_INVALID)
            self._finish()
            return False

        self._set(DROPPED_VALID)
        # The snapshot is replaced by the executor, not held back
        self.executor.store.end_drag()
        self._set(PENDING)
        try:
            return self.executor.move(self.folder_id, target_parent_id)
        finally:
            self._set(IDLE)

    def _finish(self):
        self.executor.store.end_drag()
        self._set(IDLE)
