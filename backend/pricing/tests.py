"""
Comprehensive test suite for Pricing module
Tests: Price parsing, Price statistics, Price history list/create/detail/delete
"""
from django.test import TestCase
from rest_framework import status
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.pricing.models import PriceHistory
from backend.pricing.services import parse_price, save_price_history, summarize_prices


class PriceParsingTests(TestCase):
    """Test price string parsing and statistics"""

    def test_parse_price(self):
        self.assertEqual(parse_price('¥2,980'), 2980)
        self.assertEqual(parse_price('3000円'), 3000)
        self.assertEqual(parse_price('￥1,000〜￥2,000'), 1000)
        self.assertEqual(parse_price(4500), 4500)
        self.assertIsNone(parse_price('price on request'))
        self.assertIsNone(parse_price(None))

    def test_summarize_prices(self):
        self.assertEqual(summarize_prices([1000, 2000, 2500]), (1000, 1833, 2500))
        self.assertEqual(summarize_prices([]), (None, None, None))

    def test_save_price_history_skips_unparsable(self):
        """Test listings without a readable price are left out"""
        item = TestDataFactory.create_item(TestDataFactory.create_user())
        history = save_price_history(item, [
            {'price': '¥1,000', 'site': 'Mercari'},
            {'price': 'sold out', 'site': 'Rakuma'},
            {'price': '3,000円', 'site': 'Yahoo! Auctions', 'url': 'https://example.com/1'},
        ], summary='Mostly used listings')
        self.assertEqual(history.listing_count, 2)
        self.assertEqual((history.min_price, history.avg_price, history.max_price), (1000, 2000, 3000))
        self.assertEqual(history.details.count(), 2)
        self.assertEqual(history.source, 'gemini_search')


class PriceHistoryAPITests(TestCase):
    """Test price history endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.item = TestDataFactory.create_item(self.user, name='Camera')

    def url(self, pk=None, item=None):
        base = f'/api/v1/items/{(item or self.item).id}/price-history/'
        return f'{base}{pk}/' if pk else base

    def test_list_active_newest_first(self):
        """Test only active histories are listed"""
        old = TestDataFactory.create_price_history(self.item, prices=[1000])
        new = TestDataFactory.create_price_history(self.item, prices=[2000])
        TestDataFactory.create_price_history(self.item, prices=[3000], is_active=False)
        PriceHistory.objects.filter(pk=old.pk).update(search_date=new.search_date.replace(year=new.search_date.year - 1))

        response = self.client.get(self.url())
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['id'] for row in response.data['histories']], [new.id, old.id])
        self.assertEqual(len(response.data['histories'][0]['details']), 1)

    def test_list_limit(self):
        for price in (1000, 2000, 3000):
            TestDataFactory.create_price_history(self.item, prices=[price])
        response = self.client.get(self.url() + '?limit=2')
        self.assertEqual(len(response.data['histories']), 2)
        response = self.client.get(self.url() + '?limit=0')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create(self):
        """Test saving a search result manually"""
        response = self.client.post(self.url(), {
            'prices': [
                {'price': '¥12,800', 'site': 'Mercari'},
                {'price': 15000, 'site': 'Amazon', 'condition': 'new'},
            ],
            'summary': 'Used units sell around 13,000 yen',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['avg_price'], 13900)
        self.assertEqual(response.data['source'], 'manual')
        self.assertEqual(len(response.data['details']), 2)

    def test_create_requires_prices(self):
        response = self.client.post(self.url(), {'summary': 'nothing'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_other_users_item(self):
        foreign = TestDataFactory.create_item(TestDataFactory.create_user())
        response = self.client.get(self.url(item=foreign))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_detail_and_soft_delete(self):
        history = TestDataFactory.create_price_history(self.item)
        response = self.client.get(self.url(history.id))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['avg_price'], 2000)

        response = self.client.delete(self.url(history.id))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        history.refresh_from_db()
        self.assertFalse(history.is_active)

        response = self.client.get(self.url(history.id))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
