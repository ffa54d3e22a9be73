"""
Comprehensive test suite for Reports module
Tests: Dashboard stats, Value summary, Price trends, Profile stats
"""
import shutil
import tempfile
from datetime import date, timedelta

from django.core.cache import cache
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.pricing.models import PriceHistory
from backend.reports.views import classify_trend

TEST_MEDIA_ROOT = tempfile.mkdtemp(prefix='belongings-report-media-')


@override_settings(MEDIA_ROOT=TEST_MEDIA_ROOT)
class ReportsTests(TestCase):
    """Test report endpoints"""

    @classmethod
    def tearDownClass(cls):
        super().tearDownClass()
        shutil.rmtree(TEST_MEDIA_ROOT, ignore_errors=True)

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user(display_name='Alice')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

        self.home, self.kitchen = TestDataFactory.create_folder_chain(self.user, 'Home', 'Kitchen')
        self.camera = TestDataFactory.create_item(self.user, folder=self.home, name='Camera', category='Electronics',
                                                  purchase_price=50000, purchase_date=date(2022, 4, 1))
        self.kettle = TestDataFactory.create_item(self.user, folder=self.kitchen, name='Kettle', category='Appliances',
                                                  purchase_price=5000, purchase_date=date(2023, 6, 1))
        self.book = TestDataFactory.create_item(self.user, name='Novel')
        TestDataFactory.create_item(TestDataFactory.create_user(), name='Foreign', purchase_price=999,
                                    purchase_date=date(2023, 1, 1))

    def age_history(self, history, days):
        PriceHistory.objects.filter(pk=history.pk).update(search_date=timezone.now() - timedelta(days=days))

    def test_dashboard_stats(self):
        """Test dashboard counts"""
        response = self.client.get('/api/v1/reports/dashboard-stats/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['item_stats']['total'], 3)
        self.assertEqual(response.data['item_stats']['uncategorized'], 1)
        self.assertEqual(response.data['folder_stats']['total'], 2)
        self.assertEqual(response.data['folder_stats']['by_depth'], {'1': 1, '2': 1})
        self.assertEqual(len(response.data['recent_items']), 3)
        categories = {row['category'] for row in response.data['item_stats']['categories']}
        self.assertEqual(categories, {'Electronics', 'Appliances', 'Uncategorized'})

    def test_value_summary(self):
        """Test purchase value against researched market value"""
        TestDataFactory.create_price_history(self.camera, prices=[40000])
        TestDataFactory.create_price_history(self.kettle, prices=[6000])
        response = self.client.get('/api/v1/reports/value-summary/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_purchase_value'], 55000.0)
        self.assertEqual(response.data['total_current_value'], 46000)
        self.assertEqual(response.data['profit_loss'], -9000.0)
        self.assertEqual(response.data['items_with_price_data'], 2)
        self.assertEqual(response.data['top_value_items'][0]['name'], 'Camera')
        self.assertEqual(response.data['top_value_items'][0]['profit_loss'], -10000.0)
        self.assertEqual(len(response.data['recent_price_updates']), 2)

    def test_value_summary_uses_latest_active_history(self):
        old = TestDataFactory.create_price_history(self.camera, prices=[10000])
        self.age_history(old, 30)
        TestDataFactory.create_price_history(self.camera, prices=[45000])
        TestDataFactory.create_price_history(self.camera, prices=[99000], is_active=False)
        response = self.client.get('/api/v1/reports/value-summary/')
        self.assertEqual(response.data['total_current_value'], 45000)

    def test_value_summary_without_price_data(self):
        response = self.client.get('/api/v1/reports/value-summary/')
        self.assertEqual(response.data['total_current_value'], 0)
        self.assertIsNone(response.data['profit_loss_percent'])
        self.assertEqual(response.data['top_value_items'], [])

    def test_price_trends(self):
        """Test trends classify items by price movement"""
        first = TestDataFactory.create_price_history(self.camera, prices=[40000])
        self.age_history(first, 60)
        TestDataFactory.create_price_history(self.camera, prices=[48000])
        first = TestDataFactory.create_price_history(self.kettle, prices=[6000])
        self.age_history(first, 60)
        TestDataFactory.create_price_history(self.kettle, prices=[6100])
        ancient = TestDataFactory.create_price_history(self.book, prices=[500])
        self.age_history(ancient, 400)

        response = self.client.get('/api/v1/reports/price-trends/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['summary']['items_tracked'], 2)
        self.assertEqual(response.data['summary']['up'], 1)
        self.assertEqual(response.data['summary']['stable'], 1)
        self.assertEqual(response.data['trend_items']['up'], [self.camera.id])
        self.assertEqual(response.data['item_trends'][0]['change_percent'], 20.0)

    def test_classify_trend(self):
        self.assertEqual(classify_trend(1000, 1100), ('up', 10.0))
        self.assertEqual(classify_trend(1000, 900), ('down', -10.0))
        self.assertEqual(classify_trend(1000, 1040), ('stable', 4.0))
        self.assertEqual(classify_trend(None, 1000), ('stable', 0.0))

    def test_profile_stats(self):
        """Test profile totals"""
        TestDataFactory.create_item_image(self.camera)
        response = self.client.get('/api/v1/reports/profile-stats/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['display_name'], 'Alice')
        self.assertEqual(response.data['total_items'], 3)
        self.assertEqual(response.data['total_folders'], 2)
        self.assertEqual(response.data['total_images'], 1)
        self.assertEqual(response.data['total_purchase_value'], 55000.0)

    def test_reports_require_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/reports/dashboard-stats/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
