"""
Comprehensive test suite for Items module
Tests: Item CRUD, Search and filters, Sorting, Moves, Bulk moves, Uncategorized items,
Suggestions, Image upload, Image order, Image delete
"""
import shutil
import tempfile
from datetime import date, timedelta

from django.core.cache import cache
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings
from rest_framework import status

from backend.core.models import AuditLog
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.folders.folder_cache import get_folder_tree_cache_key, load_folder_tree
from backend.items.image_utils import ImageUploadError, generate_stored_filename, validate_image_upload
from backend.items.models import Item, ItemImage

TEST_MEDIA_ROOT = tempfile.mkdtemp(prefix='belongings-test-media-')


class ItemCRUDTests(TestCase):
    """Test item create, retrieve, update and delete"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.folder = TestDataFactory.create_folder(self.user, name='Kitchen')

    def test_create_item(self):
        """Test creating an item in a folder"""
        response = self.client.post('/api/v1/items/', {
            'name': ' Kettle ',
            'category': 'Appliances',
            'purchase_price': '4980.00',
            'purchase_date': '2024-03-01',
            'folder_id': self.folder.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['name'], 'Kettle')
        self.assertEqual(response.data['folder_id'], self.folder.id)
        self.assertEqual(response.data['folder_path'], [{'id': self.folder.id, 'name': 'Kitchen'}])
        self.assertTrue(AuditLog.objects.filter(action='create', model_name='Item').exists())

    def test_create_uncategorized_item(self):
        """Test creating an item without a folder"""
        response = self.client.post('/api/v1/items/', {'name': 'Umbrella'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNone(response.data['folder_id'])

    def test_create_requires_name(self):
        response = self.client.post('/api/v1/items/', {'name': '   '}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_price_requires_purchase_date(self):
        """Test a purchase price needs a purchase date"""
        response = self.client.post('/api/v1/items/', {'name': 'Lamp', 'purchase_price': '1200'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('purchase_date', response.data)

    def test_purchase_date_in_future(self):
        tomorrow = (date.today() + timedelta(days=2)).isoformat()
        response = self.client.post('/api/v1/items/', {'name': 'Lamp', 'purchase_date': tomorrow}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_negative_price(self):
        response = self.client.post('/api/v1/items/', {
            'name': 'Lamp', 'purchase_price': '-1', 'purchase_date': '2024-01-01',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_in_other_users_folder(self):
        """Test a folder owned by another user is rejected"""
        foreign = TestDataFactory.create_folder(TestDataFactory.create_user())
        response = self.client.post('/api/v1/items/', {'name': 'Lamp', 'folder_id': foreign.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('folder_id', response.data)

    def test_retrieve_with_latest_price(self):
        """Test item detail includes the latest active price"""
        item = TestDataFactory.create_item(self.user, folder=self.folder)
        TestDataFactory.create_price_history(item, prices=[1000, 3000])
        response = self.client.get(f'/api/v1/items/{item.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['latest_price']['avg_price'], 2000)

    def test_retrieve_other_users_item(self):
        item = TestDataFactory.create_item(TestDataFactory.create_user())
        response = self.client.get(f'/api/v1/items/{item.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_partial_update(self):
        item = TestDataFactory.create_item(self.user, name='Old')
        response = self.client.patch(f'/api/v1/items/{item.id}/', {'name': 'New', 'condition': 'good'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        item.refresh_from_db()
        self.assertEqual(item.name, 'New')
        self.assertEqual(item.condition, 'good')

    def test_delete(self):
        item = TestDataFactory.create_item(self.user)
        response = self.client.delete(f'/api/v1/items/{item.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Item.objects.filter(pk=item.pk).exists())


class ItemSearchTests(TestCase):
    """Test item list filters, sorting and pagination"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.folder = TestDataFactory.create_folder(self.user, name='Office')
        TestDataFactory.create_item(self.user, folder=self.folder, name='Desk Lamp', category='Lighting',
                                    manufacturer='IKEA', purchase_price=3000, purchase_date=date(2023, 5, 1))
        TestDataFactory.create_item(self.user, name='Floor Lamp', category='Lighting',
                                    purchase_price=9000, purchase_date=date(2024, 1, 10))
        TestDataFactory.create_item(self.user, folder=self.folder, name='Notebook', category='Stationery')
        TestDataFactory.create_item(TestDataFactory.create_user(), name='Foreign Lamp')

    def test_list_only_own_items(self):
        response = self.client.get('/api/v1/items/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 3)
        self.assertIn('total_pages', response.data)

    def test_search_every_word(self):
        response = self.client.get('/api/v1/items/', {'q': 'lamp desk'})
        self.assertEqual([row['name'] for row in response.data['results']], ['Desk Lamp'])

    def test_search_matches_manufacturer(self):
        response = self.client.get('/api/v1/items/?q=ikea')
        self.assertEqual(response.data['count'], 1)

    def test_filter_category_and_folder(self):
        response = self.client.get('/api/v1/items/?category=lighting')
        self.assertEqual(response.data['count'], 2)
        response = self.client.get(f'/api/v1/items/?folder={self.folder.id}')
        self.assertEqual(response.data['count'], 2)
        response = self.client.get('/api/v1/items/?uncategorized=true')
        self.assertEqual(response.data['count'], 1)

    def test_filter_price_and_date_range(self):
        response = self.client.get('/api/v1/items/?min_price=5000')
        self.assertEqual([row['name'] for row in response.data['results']], ['Floor Lamp'])
        response = self.client.get('/api/v1/items/?purchased_before=2023-12-31')
        self.assertEqual([row['name'] for row in response.data['results']], ['Desk Lamp'])

    def test_sort(self):
        response = self.client.get('/api/v1/items/?sort=name&order=asc')
        self.assertEqual([row['name'] for row in response.data['results']], ['Desk Lamp', 'Floor Lamp', 'Notebook'])

    def test_invalid_sort(self):
        response = self.client.get('/api/v1/items/?sort=color')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_pagination(self):
        response = self.client.get('/api/v1/items/?limit=2&page=2&sort=name&order=asc')
        self.assertEqual(response.data['count'], 3)
        self.assertEqual(response.data['previous'], 1)
        self.assertIsNone(response.data['next'])
        self.assertEqual(len(response.data['results']), 1)
        response = self.client.get('/api/v1/items/?limit=0')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_uncategorized_with_stats(self):
        response = self.client.get('/api/v1/items/uncategorized/?include_stats=true')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['statistics']['total_uncategorized'], 1)
        self.assertEqual(response.data['statistics']['category_distribution'][0]['category'], 'Lighting')

    def test_suggestions(self):
        response = self.client.get('/api/v1/items/suggestions/?type=category&query=li')
        self.assertEqual(response.data['suggestions'], ['Lighting'])
        response = self.client.get('/api/v1/items/suggestions/?type=manufacturer')
        self.assertEqual(response.data['suggestions'], ['IKEA'])

    def test_suggestions_invalid_type(self):
        response = self.client.get('/api/v1/items/suggestions/?type=color')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ItemMoveTests(TestCase):
    """Test moving items between folders"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.kitchen = TestDataFactory.create_folder(self.user, name='Kitchen')
        self.garage = TestDataFactory.create_folder(self.user, name='Garage')
        self.item = TestDataFactory.create_item(self.user, folder=self.kitchen, name='Kettle')

    def test_move_item(self):
        response = self.client.post('/api/v1/items/move/', {
            'item_id': self.item.id, 'target_folder_id': self.garage.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Moved "Kettle" from Kitchen to Garage')
        self.item.refresh_from_db()
        self.assertEqual(self.item.folder_id, self.garage.id)

    def test_move_to_uncategorized(self):
        response = self.client.post('/api/v1/items/move/', {
            'item_id': self.item.id, 'target_folder_id': None,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('Uncategorized', response.data['message'])
        self.item.refresh_from_db()
        self.assertIsNone(self.item.folder_id)

    def test_move_to_same_folder(self):
        response = self.client.post('/api/v1/items/move/', {
            'item_id': self.item.id, 'target_folder_id': self.kitchen.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_move_to_other_users_folder(self):
        foreign = TestDataFactory.create_folder(TestDataFactory.create_user())
        response = self.client.post('/api/v1/items/move/', {
            'item_id': self.item.id, 'target_folder_id': foreign.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_bulk_move(self):
        """Test bulk move skips items already in the target"""
        other = TestDataFactory.create_item(self.user, name='Drill')
        already = TestDataFactory.create_item(self.user, folder=self.garage, name='Saw')
        load_folder_tree(self.user.id)
        response = self.client.post('/api/v1/items/bulk-move/', {
            'item_ids': [self.item.id, other.id, already.id], 'target_folder_id': self.garage.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['moved_count'], 2)
        self.assertEqual(response.data['skipped_count'], 1)
        self.assertEqual(Item.objects.filter(folder=self.garage).count(), 3)
        self.assertIsNone(cache.get(get_folder_tree_cache_key(self.user.id)))

    def test_bulk_move_missing_items(self):
        foreign = TestDataFactory.create_item(TestDataFactory.create_user())
        response = self.client.post('/api/v1/items/bulk-move/', {
            'item_ids': [self.item.id, foreign.id], 'target_folder_id': None,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['missing_ids'], [foreign.id])

    def test_bulk_move_empty_list(self):
        response = self.client.post('/api/v1/items/bulk-move/', {'item_ids': []}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ImageValidationTests(TestCase):
    """Test upload validation helpers"""

    def test_valid_png(self):
        upload = TestDataFactory.uploaded_image(name='photo.png', fmt='PNG', content_type='image/png')
        self.assertEqual(validate_image_upload(upload), '.png')

    def test_wrong_mime_type(self):
        upload = SimpleUploadedFile('notes.txt', b'hello', content_type='text/plain')
        with self.assertRaises(ImageUploadError):
            validate_image_upload(upload)

    def test_not_an_image(self):
        upload = SimpleUploadedFile('photo.jpg', b'not really a jpeg', content_type='image/jpeg')
        with self.assertRaises(ImageUploadError):
            validate_image_upload(upload)

    def test_too_large(self):
        upload = TestDataFactory.uploaded_image()
        upload.size = 11 * 1024 * 1024
        with self.assertRaises(ImageUploadError) as ctx:
            validate_image_upload(upload)
        self.assertEqual(ctx.exception.status_code, 413)

    def test_stored_filename(self):
        name = generate_stored_filename('.jpg')
        self.assertTrue(name.endswith('.jpg'))
        self.assertRegex(name, r'^\d+-[0-9a-f]{16}\.jpg$')


@override_settings(MEDIA_ROOT=TEST_MEDIA_ROOT)
class ItemImageTests(TestCase):
    """Test image upload, listing, ordering and deletion"""

    @classmethod
    def tearDownClass(cls):
        super().tearDownClass()
        shutil.rmtree(TEST_MEDIA_ROOT, ignore_errors=True)

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.item = TestDataFactory.create_item(self.user, name='Camera')

    def upload(self, item_id=None, **extra):
        data = {'item_id': item_id or self.item.id, 'file': TestDataFactory.uploaded_image(size=(800, 600))}
        data.update(extra)
        return self.client.post('/api/v1/upload/', data, format='multipart')

    def test_upload_config(self):
        response = self.client.get('/api/v1/upload/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['max_images_per_item'], 10)

    def test_upload_creates_thumbnails(self):
        response = self.upload()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['order'], 0)
        self.assertEqual(response.data['mime_type'], 'image/jpeg')
        image = ItemImage.objects.get(pk=response.data['id'])
        self.assertTrue(image.thumbnail_small)
        self.assertTrue(image.thumbnail_large)
        self.assertTrue(image.image.name.startswith(f'items/{self.item.id}/'))

    def test_upload_appends_order(self):
        self.upload()
        response = self.upload()
        self.assertEqual(response.data['order'], 1)

    def test_upload_without_file(self):
        response = self.client.post('/api/v1/upload/', {'item_id': self.item.id}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_upload_to_other_users_item(self):
        foreign = TestDataFactory.create_item(TestDataFactory.create_user())
        response = self.upload(item_id=foreign.id)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_upload_limit(self):
        for order in range(10):
            TestDataFactory.create_item_image(self.item, order=order)
        response = self.upload()
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_item_images_statistics(self):
        TestDataFactory.create_item_image(self.item, order=0)
        response = self.client.get(f'/api/v1/items/{self.item.id}/images/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['statistics']['total_images'], 1)
        self.assertEqual(response.data['statistics']['remaining_slots'], 9)

    def test_reorder(self):
        first = TestDataFactory.create_item_image(self.item, order=0)
        second = TestDataFactory.create_item_image(self.item, order=1)
        response = self.client.put('/api/v1/images/order/', {'image_orders': [
            {'image_id': first.id, 'order': 1},
            {'image_id': second.id, 'order': 0},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['id'] for row in response.data['images']], [second.id, first.id])

    def test_reorder_duplicate_orders(self):
        first = TestDataFactory.create_item_image(self.item, order=0)
        second = TestDataFactory.create_item_image(self.item, order=1)
        response = self.client.put('/api/v1/images/order/', {'image_orders': [
            {'image_id': first.id, 'order': 0},
            {'image_id': second.id, 'order': 0},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_reorder_other_users_images(self):
        foreign_item = TestDataFactory.create_item(TestDataFactory.create_user())
        image = TestDataFactory.create_item_image(foreign_item)
        response = self.client.put('/api/v1/images/order/', {'image_orders': [
            {'image_id': image.id, 'order': 0},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_reorder_missing_image(self):
        response = self.client.put('/api/v1/images/order/', {'image_orders': [
            {'image_id': 999999, 'order': 0},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_delete_renumbers_remaining(self):
        images = [TestDataFactory.create_item_image(self.item, order=order) for order in range(3)]
        response = self.client.delete(f'/api/v1/images/{images[0].id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['remaining_images'], 2)
        self.assertEqual(
            list(self.item.images.order_by('order').values_list('id', 'order')),
            [(images[1].id, 0), (images[2].id, 1)],
        )
