"""
Comprehensive test suite for Folders module
Tests: Move validation, Tree snapshot, Folder CRUD, Tree endpoint, Moves, Cache invalidation,
Folder items, Hierarchy check command, API client and drag state machine
"""
from io import StringIO
from unittest import mock

import requests
from django.core.cache import cache
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase
from rest_framework import status

from backend.core.models import AuditLog
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.folders.client import (
    DRAGGING, DROPPED_INVALID, DROPPED_VALID, GENERIC_ERROR_MESSAGE, IDLE, PENDING,
    FolderAPIClient, FolderDrag, FolderMoveFailed, FolderTreeStore, MoveExecutor,
)
from backend.folders.folder_cache import get_folder_tree_cache_key, load_folder_tree
from backend.folders.models import Folder
from backend.folders.signals import notify_folder_updated
from backend.folders.tree import FolderMoveError, FolderTree


def chain_tree(max_depth=3):
    """A(1) -> B(2) -> C(3), plus a root leaf X(10) and a root D(20) with child E(21)"""
    return FolderTree.from_rows([
        {'id': 1, 'name': 'A', 'parent_id': None},
        {'id': 2, 'name': 'B', 'parent_id': 1},
        {'id': 3, 'name': 'C', 'parent_id': 2},
        {'id': 10, 'name': 'X', 'parent_id': None},
        {'id': 20, 'name': 'D', 'parent_id': None},
        {'id': 21, 'name': 'E', 'parent_id': 20},
    ], max_depth=max_depth)


class MoveValidationTests(SimpleTestCase):
    """Test the drag-and-drop move validator"""

    def setUp(self):
        self.tree = chain_tree()

    def test_drop_on_itself(self):
        self.assertFalse(self.tree.is_valid_move(2, 2))

    def test_root_level_always_accepts(self):
        for folder_id in (1, 2, 3, 10):
            self.assertTrue(self.tree.is_valid_move(folder_id, None))

    def test_drop_into_own_subtree(self):
        self.assertFalse(self.tree.is_valid_move(1, 2))
        self.assertFalse(self.tree.is_valid_move(1, 3))
        self.assertFalse(self.tree.is_valid_move(2, 3))

    def test_target_at_max_depth(self):
        """C sits at depth 3, so nothing can be dropped into it"""
        self.assertFalse(self.tree.is_valid_move(10, 3))

    def test_target_below_max_depth(self):
        self.assertTrue(self.tree.is_valid_move(10, 2))
        self.assertTrue(self.tree.is_valid_move(10, 1))
        self.assertTrue(self.tree.is_valid_move(3, 1))

    def test_moving_subtree_to_sibling_branch(self):
        self.assertTrue(self.tree.is_valid_move(2, 20))

    def test_unknown_target_counts_as_root_depth(self):
        self.assertTrue(self.tree.is_valid_move(10, 999))

    def test_smaller_depth_limit(self):
        tree = chain_tree(max_depth=2)
        self.assertFalse(tree.is_valid_move(10, 2))
        self.assertTrue(tree.is_valid_move(10, 1))

    def test_repeated_validation_gives_same_answer(self):
        pairs = [(1, 3), (2, 2), (10, 3), (10, 2), (3, None), (3, 1)]
        first = [self.tree.is_valid_move(*pair) for pair in pairs]
        self.assertEqual(first, [False, False, False, True, True, True])
        for _ in range(3):
            self.assertEqual([self.tree.is_valid_move(*pair) for pair in pairs], first)
        self.assertEqual(len(self.tree), 6)
        self.assertEqual(
            {node.id: self.tree.parent_of(node.id) for node in self.tree},
            {1: None, 2: 1, 3: 2, 10: None, 20: None, 21: 20},
        )

    def test_corrupt_cycle_does_not_loop(self):
        tree = FolderTree.from_rows([
            {'id': 1, 'name': 'A', 'parent_id': 2},
            {'id': 2, 'name': 'B', 'parent_id': 1},
            {'id': 3, 'name': 'C', 'parent_id': None},
        ])
        self.assertEqual(tree.ancestor_ids(1), [1, 2])
        self.assertEqual(tree.depth(1), 2)
        self.assertFalse(tree.is_valid_move(1, 2))


class FolderTreeTests(SimpleTestCase):
    """Test snapshot queries and the authoritative move check"""

    def setUp(self):
        self.tree = chain_tree()

    def test_depth_and_path(self):
        self.assertEqual(self.tree.depth(1), 1)
        self.assertEqual(self.tree.depth(3), 3)
        self.assertEqual([node.name for node in self.tree.path(3)], ['A', 'B', 'C'])

    def test_descendants_and_height(self):
        self.assertEqual(self.tree.descendant_ids(1), {2, 3})
        self.assertEqual(self.tree.subtree_height(1), 3)
        self.assertEqual(self.tree.subtree_height(10), 1)

    def test_roots_and_children(self):
        self.assertEqual(sorted(node.id for node in self.tree.roots()), [1, 10, 20])
        self.assertEqual([node.id for node in self.tree.children_of(20)], [21])

    def test_check_move_errors(self):
        cases = [
            (999, None, 404),
            (2, 2, 400),
            (2, 1, 400),
            (10, 999, 404),
            (1, 3, 400),
            (10, 3, 400),
        ]
        for folder_id, target_id, expected in cases:
            with self.assertRaises(FolderMoveError) as ctx:
                self.tree.check_move(folder_id, target_id)
            self.assertEqual(ctx.exception.status_code, expected, (folder_id, target_id))

    def test_check_move_keeps_subtree_within_limit(self):
        """D has a child, so it cannot go under B (depth 2)"""
        with self.assertRaises(FolderMoveError):
            self.tree.check_move(20, 2)
        self.tree.check_move(20, 1)

    def test_check_move_same_parent_allowed(self):
        self.tree.check_move(2, 1, allow_same_parent=True)

    def test_check_new_child(self):
        self.tree.check_new_child(None)
        self.tree.check_new_child(2)
        with self.assertRaises(FolderMoveError):
            self.tree.check_new_child(3)
        with self.assertRaises(FolderMoveError) as ctx:
            self.tree.check_new_child(999)
        self.assertEqual(ctx.exception.status_code, 404)

    def test_build_nested_round_trip(self):
        nested = self.tree.build_nested()
        self.assertEqual([node['name'] for node in nested], ['A', 'D', 'X'])
        self.assertEqual(nested[0]['children'][0]['children'][0]['depth'], 3)
        rebuilt = FolderTree.from_nested(nested)
        self.assertEqual(len(rebuilt), len(self.tree))
        self.assertEqual(rebuilt.parent_of(3), 2)

    def test_build_nested_respects_max_depth(self):
        nested = self.tree.build_nested(max_depth=1)
        self.assertEqual(nested[0]['children'], [])
        self.assertTrue(nested[0]['has_children'])

    def test_depth_distribution(self):
        self.assertEqual(self.tree.depth_distribution(), {1: 3, 2: 2, 3: 1})


class FolderCRUDTests(TestCase):
    """Test folder list, create, update and delete endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_root_folder(self):
        """Test creating a root folder"""
        response = self.client.post('/api/v1/folders/', {'name': '  Books  '}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['name'], 'Books')
        self.assertIsNone(response.data['parent_id'])
        self.assertEqual(response.data['depth'], 1)
        self.assertTrue(AuditLog.objects.filter(action='create', model_name='Folder').exists())

    def test_create_child_folder(self):
        """Test creating a folder under a parent"""
        parent = TestDataFactory.create_folder(self.user, name='Home')
        response = self.client.post('/api/v1/folders/', {'name': 'Kitchen', 'parent_id': parent.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['parent_id'], parent.id)
        self.assertEqual(response.data['depth'], 2)

    def test_create_beyond_max_depth(self):
        """Test creating a fourth level is refused"""
        _, _, deepest = TestDataFactory.create_folder_chain(self.user, 'A', 'B', 'C')
        response = self.client.post('/api/v1/folders/', {'name': 'D', 'parent_id': deepest.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('3 levels', response.data['error'])

    def test_create_under_other_users_folder(self):
        """Test a parent owned by another user is not found"""
        foreign = TestDataFactory.create_folder(TestDataFactory.create_user())
        response = self.client.post('/api/v1/folders/', {'name': 'Mine', 'parent_id': foreign.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_create_duplicate_sibling_name(self):
        """Test sibling names must be unique"""
        TestDataFactory.create_folder(self.user, name='Books')
        response = self.client.post('/api/v1/folders/', {'name': 'Books'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_create_invalid_names(self):
        """Test folder name validation"""
        for name in ('', '   ', 'a/b', 'CON', 'x' * 101):
            response = self.client.post('/api/v1/folders/', {'name': name}, format='json')
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, name)

    def test_list_root_folders(self):
        """Test listing root folders with item counts"""
        books = TestDataFactory.create_folder(self.user, name='Books')
        TestDataFactory.create_folder(self.user, name='Novels', parent=books)
        TestDataFactory.create_item(self.user, folder=books)
        TestDataFactory.create_folder(TestDataFactory.create_user(), name='Other')

        response = self.client.get('/api/v1/folders/?include_children=true')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['item_count'], 1)
        self.assertEqual(response.data[0]['child_count'], 1)
        self.assertEqual(response.data[0]['children'][0]['name'], 'Novels')

    def test_list_children_of_parent(self):
        """Test listing folders under a parent"""
        books = TestDataFactory.create_folder(self.user, name='Books')
        TestDataFactory.create_folder(self.user, name='Novels', parent=books)
        response = self.client.get(f'/api/v1/folders/?parent_id={books.id}')
        self.assertEqual([row['name'] for row in response.data], ['Novels'])

    def test_detail(self):
        """Test folder detail includes path and depth"""
        _, _, leaf = TestDataFactory.create_folder_chain(self.user, 'A', 'B', 'C')
        response = self.client.get(f'/api/v1/folders/{leaf.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([entry['name'] for entry in response.data['path']], ['A', 'B', 'C'])
        self.assertEqual(response.data['depth'], 3)

    def test_detail_of_other_user(self):
        """Test another user's folder is not found"""
        foreign = TestDataFactory.create_folder(TestDataFactory.create_user())
        response = self.client.get(f'/api/v1/folders/{foreign.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_rename(self):
        """Test renaming a folder"""
        folder = TestDataFactory.create_folder(self.user, name='Old')
        response = self.client.patch(f'/api/v1/folders/{folder.id}/', {'name': 'New'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        folder.refresh_from_db()
        self.assertEqual(folder.name, 'New')

    def test_update_without_fields(self):
        """Test an update must carry at least one field"""
        folder = TestDataFactory.create_folder(self.user)
        response = self.client.put(f'/api/v1/folders/{folder.id}/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_parent_into_descendant(self):
        """Test reparenting through update is validated"""
        top, child, _ = TestDataFactory.create_folder_chain(self.user, 'A', 'B', 'C')
        response = self.client.patch(f'/api/v1/folders/{top.id}/', {'parent_id': child.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        top.refresh_from_db()
        self.assertIsNone(top.parent_id)

    def test_update_parent_to_root(self):
        """Test moving to the root level through update"""
        _, child, _ = TestDataFactory.create_folder_chain(self.user, 'A', 'B', 'C')
        response = self.client.patch(f'/api/v1/folders/{child.id}/', {'parent_id': None}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        child.refresh_from_db()
        self.assertIsNone(child.parent_id)

    def test_delete_folder_with_subfolders(self):
        """Test deleting a folder with subfolders is refused"""
        parent = TestDataFactory.create_folder(self.user, name='Parent')
        TestDataFactory.create_folder(self.user, name='Child', parent=parent)
        response = self.client.delete(f'/api/v1/folders/{parent.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Child', response.data['error'])
        self.assertTrue(Folder.objects.filter(pk=parent.pk).exists())

    def test_delete_folder_uncategorizes_items(self):
        """Test items of a deleted folder become uncategorized"""
        folder = TestDataFactory.create_folder(self.user)
        item = TestDataFactory.create_item(self.user, folder=folder)
        response = self.client.delete(f'/api/v1/folders/{folder.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['moved_items_count'], 1)
        item.refresh_from_db()
        self.assertIsNone(item.folder_id)
        self.assertFalse(Folder.objects.filter(pk=folder.pk).exists())


class FolderTreeEndpointTests(TestCase):
    """Test the tree endpoint and its cache"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.a, self.b, self.c = TestDataFactory.create_folder_chain(self.user, 'A', 'B', 'C')

    def test_tree(self):
        """Test the nested tree with statistics"""
        response = self.client.get('/api/v1/folders/tree/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        root = response.data['tree'][0]
        self.assertEqual(root['name'], 'A')
        self.assertEqual(root['children'][0]['children'][0]['id'], self.c.id)
        self.assertEqual(response.data['statistics']['total_folders'], 3)
        self.assertEqual(response.data['statistics']['current_max_depth'], 3)

    def test_tree_max_depth(self):
        """Test limiting the tree depth"""
        response = self.client.get('/api/v1/folders/tree/?max_depth=1')
        self.assertEqual(response.data['tree'][0]['children'], [])
        response = self.client.get('/api/v1/folders/tree/?max_depth=4')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_tree_cache_is_invalidated(self):
        """Test changes drop the cached tree"""
        load_folder_tree(self.user.id)
        self.assertIsNotNone(cache.get(get_folder_tree_cache_key(self.user.id)))
        TestDataFactory.create_folder(self.user, name='Z')
        self.assertIsNone(cache.get(get_folder_tree_cache_key(self.user.id)))

        load_folder_tree(self.user.id)
        notify_folder_updated(self.user.id, self.a.id, 'update')
        self.assertIsNone(cache.get(get_folder_tree_cache_key(self.user.id)))

    def test_tree_item_counts_follow_item_changes(self):
        """Test item changes refresh the counts in the tree"""
        self.client.get('/api/v1/folders/tree/')
        TestDataFactory.create_item(self.user, folder=self.a)
        response = self.client.get('/api/v1/folders/tree/')
        self.assertEqual(response.data['tree'][0]['item_count'], 1)


class FolderMoveTests(TestCase):
    """Test the folder move endpoint"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.a, self.b, self.c = TestDataFactory.create_folder_chain(self.user, 'A', 'B', 'C')
        self.x = TestDataFactory.create_folder(self.user, name='X')

    def move(self, folder_id, target_id):
        return self.client.post('/api/v1/folders/move/', {
            'folder_id': folder_id, 'target_parent_id': target_id,
        }, format='json')

    def test_move_into_folder(self):
        """Test a valid move"""
        response = self.move(self.x.id, self.b.id)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['metadata']['new_depth'], 3)
        self.assertEqual([entry['name'] for entry in response.data['path']], ['A', 'B', 'X'])
        self.x.refresh_from_db()
        self.assertEqual(self.x.parent_id, self.b.id)
        self.assertTrue(AuditLog.objects.filter(action='folder_move', object_id=str(self.x.id)).exists())

    def test_move_to_root(self):
        """Test moving to the root level"""
        response = self.move(self.c.id, None)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.c.refresh_from_db()
        self.assertIsNone(self.c.parent_id)

    def test_move_into_itself(self):
        response = self.move(self.a.id, self.a.id)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_move_into_descendant(self):
        response = self.move(self.a.id, self.c.id)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.a.refresh_from_db()
        self.assertIsNone(self.a.parent_id)

    def test_move_beyond_max_depth(self):
        response = self.move(self.x.id, self.c.id)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_move_subtree_beyond_max_depth(self):
        """Test a subtree that would end up too deep"""
        TestDataFactory.create_folder(self.user, name='Y', parent=self.x)
        response = self.move(self.x.id, self.b.id)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_move_to_current_location(self):
        response = self.move(self.b.id, self.a.id)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_move_missing_target(self):
        response = self.move(self.x.id, 999999)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_move_other_users_folder(self):
        foreign = TestDataFactory.create_folder(TestDataFactory.create_user())
        response = self.move(foreign.id, None)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_move_duplicate_name(self):
        """Test a move onto a sibling with the same name"""
        TestDataFactory.create_folder(self.user, name='X', parent=self.a)
        response = self.move(self.x.id, self.a.id)
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)


class FolderItemsTests(TestCase):
    """Test listing the items of a folder"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.parent = TestDataFactory.create_folder(self.user, name='Parent')
        self.child = TestDataFactory.create_folder(self.user, name='Child', parent=self.parent)
        TestDataFactory.create_item(self.user, folder=self.parent, name='Lamp')
        TestDataFactory.create_item(self.user, folder=self.child, name='Mug')

    def test_folder_items(self):
        response = self.client.get(f'/api/v1/folders/{self.parent.id}/items/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['folder']['name'], 'Parent')

    def test_folder_items_with_subfolders(self):
        response = self.client.get(f'/api/v1/folders/{self.parent.id}/items/?include_subfolders=true')
        self.assertEqual(response.data['count'], 2)


class CheckFolderTreeCommandTests(TestCase):
    """Test the hierarchy check command"""

    def test_valid_hierarchy(self):
        user = TestDataFactory.create_user()
        TestDataFactory.create_folder_chain(user, 'A', 'B')
        out = StringIO()
        call_command('check_folder_tree', stdout=out)
        self.assertIn('All folder hierarchies are valid', out.getvalue())

    def test_cycle_is_reported(self):
        user = TestDataFactory.create_user()
        a, b = TestDataFactory.create_folder_chain(user, 'A', 'B')
        Folder.objects.filter(pk=a.pk).update(parent=b)
        out = StringIO()
        call_command('check_folder_tree', stdout=out)
        self.assertIn('cycle', out.getvalue())

    def test_folder_below_cycle_is_reported_separately(self):
        user = TestDataFactory.create_user()
        a, b, c = TestDataFactory.create_folder_chain(user, 'A', 'B', 'C')
        Folder.objects.filter(pk=a.pk).update(parent=b)
        out = StringIO()
        call_command('check_folder_tree', stdout=out)
        output = out.getvalue()
        self.assertIn(f"Folder {a.id} 'A' is part of a cycle", output)
        self.assertIn(f"Folder {b.id} 'B' is part of a cycle", output)
        self.assertIn(f"Folder {c.id} 'C' is below a cycle", output)
        self.assertNotIn(f"Folder {c.id} 'C' is part of a cycle", output)


class FakeFolderClient:
    """In-memory stand-in for FolderAPIClient"""

    def __init__(self, rows):
        self.rows = rows
        self.moves = []
        self.loads = 0
        self.error = None
        self.load_error = None

    def load_tree(self):
        self.loads += 1
        if self.load_error is not None:
            raise self.load_error
        return FolderTree.from_rows(self.rows)

    def move_folder(self, folder_id, new_parent_id):
        self.moves.append((folder_id, new_parent_id))
        if self.error is not None:
            raise self.error
        for row in self.rows:
            if row['id'] == folder_id:
                row['parent_id'] = new_parent_id
        return {}


def chain_rows():
    return [
        {'id': 1, 'name': 'A', 'parent_id': None},
        {'id': 2, 'name': 'B', 'parent_id': 1},
        {'id': 3, 'name': 'C', 'parent_id': 2},
        {'id': 10, 'name': 'X', 'parent_id': None},
    ]


class FolderAPIClientTests(SimpleTestCase):
    """Test the REST client against a mocked session"""

    def setUp(self):
        self.session = mock.Mock()
        self.session.headers = {}
        self.client = FolderAPIClient('http://testserver/api/v1/', session=self.session)

    def response(self, status_code, body=None, ok=None):
        response = mock.Mock(status_code=status_code, ok=ok if ok is not None else status_code < 400)
        if isinstance(body, Exception):
            response.json.side_effect = body
        else:
            response.json.return_value = body
        return response

    def test_authenticate(self):
        self.session.post.return_value = self.response(200, {'access': 'token-1', 'refresh': 'r'})
        self.assertTrue(self.client.authenticate('alice', 'pw'))
        self.assertEqual(self.session.headers['Authorization'], 'Bearer token-1')

    def test_authenticate_failure(self):
        self.session.post.return_value = self.response(401, {'detail': 'No active account'})
        self.assertFalse(self.client.authenticate('alice', 'wrong'))

    def test_load_tree(self):
        self.session.get.return_value = self.response(200, {'tree': [
            {'id': 1, 'name': 'A', 'parent_id': None, 'children': [
                {'id': 2, 'name': 'B', 'parent_id': 1, 'children': []},
            ]},
        ]})
        tree = self.client.load_tree()
        self.assertEqual(tree.parent_of(2), 1)
        self.assertEqual(self.session.get.call_args[0][0], 'http://testserver/api/v1/folders/tree/')

    def test_move_folder_sends_target(self):
        self.session.post.return_value = self.response(200, {'message': 'ok'})
        self.client.move_folder(7, None)
        self.assertEqual(self.session.post.call_args[1]['json'], {'folder_id': 7, 'target_parent_id': None})

    def test_move_folder_server_error_message(self):
        self.session.post.return_value = self.response(400, {'error': 'Folder hierarchy cannot exceed 3 levels'})
        with self.assertRaises(FolderMoveFailed) as ctx:
            self.client.move_folder(7, 3)
        self.assertEqual(ctx.exception.message, 'Folder hierarchy cannot exceed 3 levels')
        self.assertEqual(ctx.exception.status_code, 400)

    def test_move_folder_without_json_body(self):
        self.session.post.return_value = self.response(500, ValueError('no json'))
        with self.assertRaises(FolderMoveFailed) as ctx:
            self.client.move_folder(7, 3)
        self.assertEqual(ctx.exception.message, GENERIC_ERROR_MESSAGE)


class MoveExecutorTests(SimpleTestCase):
    """Test validation, request and resync of a drop"""

    def setUp(self):
        self.api = FakeFolderClient(chain_rows())
        self.store = FolderTreeStore(self.api.load_tree, listen=False)
        self.alerts = []
        self.executor = MoveExecutor(self.api, self.store, notify=self.alerts.append)

    def test_invalid_drop_sends_nothing(self):
        self.assertFalse(self.executor.move(1, 3))
        self.assertFalse(self.executor.move(10, 3))
        self.assertEqual(self.api.moves, [])

    def test_drop_on_current_parent_sends_nothing(self):
        self.assertTrue(self.executor.move(2, 1))
        self.assertEqual(self.api.moves, [])

    def test_valid_drop(self):
        self.assertTrue(self.executor.move(10, 2))
        self.assertEqual(self.api.moves, [(10, 2)])
        self.assertEqual(self.store.tree.parent_of(10), 2)

    def test_server_rejection_alerts_and_resyncs(self):
        self.api.error = FolderMoveFailed('Target folder not found', status_code=404)
        loads = self.api.loads
        self.assertFalse(self.executor.move(10, 1))
        self.assertEqual(self.alerts, ['Target folder not found'])
        self.assertGreater(self.api.loads, loads)

    def test_network_error_uses_generic_message(self):
        self.api.error = requests.ConnectionError('down')
        self.assertFalse(self.executor.move(10, 1))
        self.assertEqual(self.alerts, [GENERIC_ERROR_MESSAGE])

    def test_reload_failure_after_move_alerts(self):
        """The move went through but the tree could not be fetched again"""
        tree = self.store.tree
        self.api.load_error = requests.ConnectionError('down')
        self.assertTrue(self.executor.move(10, 2))
        self.assertEqual(self.api.moves, [(10, 2)])
        self.assertEqual(self.alerts, [GENERIC_ERROR_MESSAGE])
        self.assertTrue(self.store.stale)

        self.api.load_error = None
        self.assertIsNot(self.store.tree, tree)
        self.assertEqual(self.store.tree.parent_of(10), 2)

    def test_unreachable_server_rejects_drop(self):
        self.api.load_error = requests.ConnectionError('down')
        self.assertFalse(self.executor.can_drop(10, 1))
        self.assertFalse(self.executor.move(10, 1))
        self.assertEqual(self.api.moves, [])
        self.assertEqual(self.alerts, [GENERIC_ERROR_MESSAGE])

    def test_drag_survives_reload_failure(self):
        self.store.tree
        self.api.load_error = requests.ConnectionError('down')
        drag = FolderDrag(self.executor, 10)
        drag.start()
        self.assertTrue(drag.drop(2))
        self.assertEqual(drag.state, IDLE)
        self.assertEqual(self.alerts, [GENERIC_ERROR_MESSAGE])


class FolderTreeStoreTests(SimpleTestCase):
    """Test snapshot replacement on folder_updated"""

    def setUp(self):
        self.api = FakeFolderClient(chain_rows())
        self.store = FolderTreeStore(self.api.load_tree)

    def tearDown(self):
        self.store.close()

    def test_reloads_on_folder_updated(self):
        self.store.tree
        loads = self.api.loads
        self.api.rows.append({'id': 11, 'name': 'Y', 'parent_id': None})
        notify_folder_updated(1, 11, 'create')
        self.assertEqual(self.api.loads, loads + 1)
        self.assertIn(11, self.store.tree)

    def test_update_deferred_while_dragging(self):
        tree = self.store.tree
        self.store.begin_drag()
        notify_folder_updated(1, 10, 'move')
        self.assertTrue(self.store.stale)
        self.assertIs(self.store.tree, tree)
        self.store.end_drag()
        self.assertFalse(self.store.stale)
        self.assertIsNot(self.store.tree, tree)

    def test_close_stops_listening(self):
        self.store.tree
        self.store.close()
        loads = self.api.loads
        notify_folder_updated(1, 10, 'move')
        self.assertEqual(self.api.loads, loads)


class FolderDragTests(SimpleTestCase):
    """Test the drag state machine"""

    def setUp(self):
        self.api = FakeFolderClient(chain_rows())
        self.store = FolderTreeStore(self.api.load_tree, listen=False)
        self.executor = MoveExecutor(self.api, self.store, notify=lambda message: None)

    def test_valid_drop(self):
        drag = FolderDrag(self.executor, 10)
        drag.start()
        self.assertTrue(drag.over(1))
        self.assertTrue(drag.drop(1))
        self.assertEqual(drag.history, [IDLE, DRAGGING, DROPPED_VALID, PENDING, IDLE])
        self.assertEqual(self.api.moves, [(10, 1)])

    def test_invalid_drop(self):
        drag = FolderDrag(self.executor, 1)
        drag.start()
        self.assertFalse(drag.over(3))
        self.assertFalse(drag.drop(3))
        self.assertEqual(drag.history, [IDLE, DRAGGING, DROPPED_INVALID, IDLE])
        self.assertEqual(self.api.moves, [])

    def test_cancel(self):
        drag = FolderDrag(self.executor, 10)
        drag.start()
        drag.cancel()
        self.assertEqual(drag.state, IDLE)
        self.assertFalse(drag.over(1))

    def test_drop_without_drag(self):
        drag = FolderDrag(self.executor, 10)
        with self.assertRaises(RuntimeError):
            drag.drop(1)
