"""
Comprehensive test suite for AI module
Tests: Gemini response parsing, Gemini client errors, Error categorization, Rate limiting,
Usage quota, Recognize, Price search, Usage statistics
"""
import base64
from unittest import mock

import requests
from django.core.cache import cache
from django.test import SimpleTestCase, TestCase
from rest_framework import status

from backend.ai.errors import AIError, AIErrorCode, categorize_ai_error
from backend.ai.gemini import GeminiClient, extract_json, parse_price_search, parse_recognition
from backend.ai.models import AIUsageLog
from backend.ai.rate_limit import check_rate_limit, reset_rate_limit
from backend.ai.usage import check_usage_quota, log_ai_usage
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.pricing.models import PriceHistory


class GeminiParsingTests(SimpleTestCase):
    """Test parsing of model replies"""

    def test_extract_json_from_code_block(self):
        text = 'Here you go:\n```json\n{"suggestions": ["Kettle"]}\n```'
        self.assertEqual(extract_json(text), {'suggestions': ['Kettle']})

    def test_extract_json_without_block(self):
        self.assertEqual(extract_json('result {"a": 1} end'), {'a': 1})
        self.assertIsNone(extract_json('no json here'))

    def test_parse_recognition(self):
        result = parse_recognition('```json\n{"suggestions": ["A", "B", "C", "D"], "category": "Electronics",'
                                   ' "manufacturer": "Sony", "description": "A camera"}\n```')
        self.assertEqual(result['suggestions'], ['A', 'B', 'C'])
        self.assertEqual(result['manufacturer'], 'Sony')

    def test_parse_recognition_free_text(self):
        result = parse_recognition('1. Electric kettle\n2. Tea kettle\n- Water boiler\nMore text')
        self.assertEqual(result['suggestions'], ['Electric kettle', 'Tea kettle', 'Water boiler'])
        self.assertEqual(result['description'], 'More text')

    def test_parse_price_search(self):
        result = parse_price_search('{"prices": [{"price": "¥12,800", "site": "Mercari"}, {"site": "none"}],'
                                    ' "summary": "Around 13k"}')
        self.assertEqual(len(result['prices']), 1)
        self.assertEqual(result['prices'][0]['site'], 'Mercari')
        self.assertEqual(result['summary'], 'Around 13k')

    def test_parse_price_search_fallback(self):
        result = parse_price_search('Listings from ¥2,980 up to 4,500円.')
        self.assertEqual([listing['price'] for listing in result['prices']], ['¥2,980', '4,500円'])


class GeminiClientTests(SimpleTestCase):
    """Test HTTP handling of the Gemini client"""

    def setUp(self):
        self.session = mock.Mock()
        self.client = GeminiClient(api_key='test-key', base_url='https://gemini.test/v1beta', session=self.session)

    def reply(self, status_code=200, body=None):
        response = mock.Mock(status_code=status_code, ok=status_code < 400, text='')
        response.json.return_value = body
        self.session.post.return_value = response

    def test_not_configured(self):
        with self.assertRaises(AIError) as ctx:
            GeminiClient(api_key='', session=self.session).generate('model', [{'text': 'hi'}])
        self.assertEqual(ctx.exception.code, AIErrorCode.AI_SERVICE_UNAVAILABLE)
        self.session.post.assert_not_called()

    def test_generate_text(self):
        self.reply(body={'candidates': [{'content': {'parts': [{'text': 'Hello'}, {'text': ' world'}]}}]})
        self.assertEqual(self.client.generate('m', [{'text': 'hi'}]), 'Hello world')
        url = self.session.post.call_args[0][0]
        self.assertEqual(url, 'https://gemini.test/v1beta/models/m:generateContent')

    def test_status_mapping(self):
        for status_code, code in (
            (429, AIErrorCode.AI_QUOTA_EXCEEDED),
            (403, AIErrorCode.AI_SERVICE_UNAVAILABLE),
            (503, AIErrorCode.AI_SERVICE_UNAVAILABLE),
            (400, AIErrorCode.AI_RECOGNITION_FAILED),
        ):
            self.reply(status_code=status_code, body={})
            with self.assertRaises(AIError) as ctx:
                self.client.generate('m', [{'text': 'hi'}])
            self.assertEqual(ctx.exception.code, code, status_code)

    def test_empty_response(self):
        self.reply(body={'candidates': []})
        with self.assertRaises(AIError) as ctx:
            self.client.generate('m', [{'text': 'hi'}])
        self.assertEqual(ctx.exception.code, AIErrorCode.AI_EMPTY_RESPONSE)

    def test_search_prices_uses_search_tool(self):
        self.reply(body={'candidates': [{'content': {'parts': [{'text': '{"prices": [], "summary": "none"}'}]}}]})
        result = self.client.search_prices('Kettle', 'Tiger')
        self.assertEqual(result['prices'], [])
        payload = self.session.post.call_args[1]['json']
        self.assertEqual(payload['tools'], [{'google_search': {}}])
        self.assertIn('Tiger Kettle', payload['contents'][0]['parts'][0]['text'])


class ErrorCategorizationTests(SimpleTestCase):
    """Test mapping exceptions to AI error codes"""

    def test_categorize(self):
        self.assertEqual(categorize_ai_error(requests.Timeout()).code, AIErrorCode.TIMEOUT_ERROR)
        self.assertEqual(categorize_ai_error(requests.ConnectionError()).code, AIErrorCode.NETWORK_ERROR)
        self.assertEqual(categorize_ai_error(Exception('RESOURCE_EXHAUSTED')).code, AIErrorCode.AI_QUOTA_EXCEEDED)
        self.assertEqual(categorize_ai_error(Exception('model overloaded')).code, AIErrorCode.AI_SERVICE_UNAVAILABLE)
        self.assertEqual(categorize_ai_error(Exception('boom')).code, AIErrorCode.INTERNAL_ERROR)

    def test_response_format(self):
        error = AIError(AIErrorCode.RATE_LIMIT_EXCEEDED, details={'retry_after': 5})
        self.assertEqual(error.status_code, 429)
        self.assertEqual(error.as_response_data()['code'], 'RATE_LIMIT_EXCEEDED')
        self.assertEqual(error.as_response_data()['details'], {'retry_after': 5})


class RateLimitTests(SimpleTestCase):
    """Test the sliding window"""

    def setUp(self):
        cache.clear()

    def test_window(self):
        self.assertEqual(check_rate_limit(1, limit=2, window=60, now=1000), (True, 0, 1))
        self.assertEqual(check_rate_limit(1, limit=2, window=60, now=1010), (True, 0, 0))
        allowed, retry_after, remaining = check_rate_limit(1, limit=2, window=60, now=1020)
        self.assertFalse(allowed)
        self.assertEqual(retry_after, 40)
        self.assertEqual(remaining, 0)
        # First request has left the window
        self.assertTrue(check_rate_limit(1, limit=2, window=60, now=1061)[0])

    def test_per_user(self):
        check_rate_limit(1, limit=1, window=60, now=1000)
        self.assertTrue(check_rate_limit(2, limit=1, window=60, now=1000)[0])

    def test_reset(self):
        check_rate_limit(1, limit=1, window=60, now=1000)
        reset_rate_limit(1)
        self.assertTrue(check_rate_limit(1, limit=1, window=60, now=1001)[0])


class UsageQuotaTests(TestCase):
    """Test monthly quota accounting"""

    def test_quota(self):
        user = TestDataFactory.create_user(ai_usage_limit=2)
        self.assertEqual(check_usage_quota(user), 0)
        log_ai_usage(user, AIUsageLog.TYPE_IMAGE_RECOGNITION)
        log_ai_usage(user, AIUsageLog.TYPE_PRICE_SEARCH)
        self.assertEqual(user.ai_usage_count, 2)
        with self.assertRaises(AIError) as ctx:
            check_usage_quota(user)
        self.assertEqual(ctx.exception.code, AIErrorCode.AI_QUOTA_EXCEEDED)


def image_payload():
    return base64.b64encode(TestDataFactory.image_bytes()).decode()


class RecognizeAPITests(TestCase):
    """Test the image recognition endpoint"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    @mock.patch('backend.ai.views.GeminiClient')
    def test_recognize(self, gemini):
        gemini.return_value.recognize_item.return_value = {
            'suggestions': ['Electric kettle'], 'category': 'Appliances', 'manufacturer': 'Tiger', 'description': '',
        }
        response = self.client.post('/api/v1/ai/recognize/', {
            'image_base64': f'data:image/png;base64,{image_payload()}',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['result']['suggestions'], ['Electric kettle'])
        self.assertEqual(response.data['usage']['used_this_month'], 1)
        self.assertEqual(gemini.return_value.recognize_item.call_args[0][1], 'image/png')
        self.assertEqual(AIUsageLog.objects.filter(user=self.user).count(), 1)

    def test_missing_image(self):
        response = self.client.post('/api/v1/ai/recognize/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], AIErrorCode.MISSING_IMAGE_DATA)

    def test_unsupported_format(self):
        response = self.client.post('/api/v1/ai/recognize/', {
            'image_base64': image_payload(), 'mime_type': 'image/gif',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], AIErrorCode.UNSUPPORTED_FORMAT)

    def test_invalid_base64(self):
        response = self.client.post('/api/v1/ai/recognize/', {'image_base64': '%%%not-base64%%%'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], AIErrorCode.VALIDATION_ERROR)

    @mock.patch('backend.ai.views.GeminiClient')
    def test_service_failure_is_not_counted(self, gemini):
        gemini.return_value.recognize_item.side_effect = AIError(AIErrorCode.AI_SERVICE_UNAVAILABLE)
        response = self.client.post('/api/v1/ai/recognize/', {'image_base64': image_payload()}, format='json')
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(AIUsageLog.objects.count(), 0)

    @mock.patch('backend.ai.views.GeminiClient')
    def test_network_failure(self, gemini):
        gemini.return_value.recognize_item.side_effect = requests.ConnectionError('unreachable')
        response = self.client.post('/api/v1/ai/recognize/', {'image_base64': image_payload()}, format='json')
        self.assertEqual(response.data['code'], AIErrorCode.NETWORK_ERROR)

    @mock.patch('backend.ai.rate_limit.AI_RATE_LIMIT_PER_MINUTE', 1)
    @mock.patch('backend.ai.views.GeminiClient')
    def test_rate_limited(self, gemini):
        gemini.return_value.recognize_item.return_value = {
            'suggestions': ['Kettle'], 'category': '', 'manufacturer': '', 'description': '',
        }
        self.client.post('/api/v1/ai/recognize/', {'image_base64': image_payload()}, format='json')
        response = self.client.post('/api/v1/ai/recognize/', {'image_base64': image_payload()}, format='json')
        self.assertEqual(response.status_code, status.HTTP_429_TOO_MANY_REQUESTS)
        self.assertEqual(response.data['code'], AIErrorCode.RATE_LIMIT_EXCEEDED)
        self.assertIn('retry_after', response.data['details'])

    @mock.patch('backend.ai.views.GeminiClient')
    def test_quota_exceeded(self, gemini):
        self.user.ai_usage_limit = 1
        self.user.save(update_fields=['ai_usage_limit'])
        AIUsageLog.objects.create(user=self.user, usage_type=AIUsageLog.TYPE_IMAGE_RECOGNITION)
        response = self.client.post('/api/v1/ai/recognize/', {'image_base64': image_payload()}, format='json')
        self.assertEqual(response.status_code, status.HTTP_429_TOO_MANY_REQUESTS)
        self.assertEqual(response.data['code'], AIErrorCode.AI_QUOTA_EXCEEDED)
        gemini.return_value.recognize_item.assert_not_called()


class PriceSearchAPITests(TestCase):
    """Test the price search endpoint"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.item = TestDataFactory.create_item(self.user, name='Camera')

    @mock.patch('backend.ai.views.GeminiClient')
    def test_search_saves_history(self, gemini):
        gemini.return_value.search_prices.return_value = {
            'prices': [
                {'price': '¥20,000', 'site': 'Mercari', 'url': None, 'condition': 'used', 'title': None},
                {'price': '¥30,000', 'site': 'Amazon', 'url': None, 'condition': 'new', 'title': None},
            ],
            'summary': 'Between 20k and 30k',
        }
        response = self.client.post('/api/v1/ai/search-prices/', {
            'item_id': self.item.id, 'item_name': 'Camera', 'manufacturer': 'Canon',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['history']['avg_price'], 25000)
        self.assertEqual(PriceHistory.objects.filter(item=self.item).count(), 1)
        gemini.return_value.search_prices.assert_called_once_with('Camera', 'Canon')
        log = AIUsageLog.objects.get(user=self.user)
        self.assertEqual(log.item_id, self.item.id)

    @mock.patch('backend.ai.views.GeminiClient')
    def test_search_without_saving(self, gemini):
        gemini.return_value.search_prices.return_value = {
            'prices': [{'price': '¥20,000', 'site': 'Mercari', 'url': None, 'condition': None, 'title': None}],
            'summary': '',
        }
        response = self.client.post('/api/v1/ai/search-prices/', {
            'item_id': self.item.id, 'item_name': 'Camera', 'save_history': False,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNone(response.data['history'])
        self.assertFalse(PriceHistory.objects.exists())

    def test_search_other_users_item(self):
        foreign = TestDataFactory.create_item(TestDataFactory.create_user())
        response = self.client.post('/api/v1/ai/search-prices/', {
            'item_id': foreign.id, 'item_name': 'Camera',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_search_requires_name(self):
        response = self.client.post('/api/v1/ai/search-prices/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], AIErrorCode.VALIDATION_ERROR)


class UsageAPITests(TestCase):
    """Test the usage statistics endpoint"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_usage(self):
        log_ai_usage(self.user, AIUsageLog.TYPE_IMAGE_RECOGNITION)
        log_ai_usage(self.user, AIUsageLog.TYPE_PRICE_SEARCH)
        response = self.client.get('/api/v1/ai/usage/?period=month')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], 2)
        self.assertEqual(response.data['by_type']['image_recognition'], 1)
        self.assertEqual(response.data['quota']['remaining'], 18)

    def test_invalid_period(self):
        response = self.client.get('/api/v1/ai/usage/?period=year')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
