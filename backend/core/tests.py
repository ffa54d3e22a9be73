"""
Comprehensive test suite for Core module
Tests: Registration, Login, Token refresh, Current user, Settings, Audit logs, Pagination helpers
"""
from datetime import timedelta
from io import StringIO

from django.core.management import call_command
from django.test import TestCase, RequestFactory
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient
from backend.ai.models import AIUsageLog
from backend.ai.usage import usage_summary
from backend.core.models import AuditLog
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.core.utils import create_audit_log, get_client_ip, parse_pagination, paginate
from backend.folders.models import Folder
from backend.items.models import Item


class AuthenticationTests(TestCase):
    """Test registration and JWT endpoints"""

    def setUp(self):
        self.client = APIClient()

    def test_register(self):
        """Test registering a new user returns tokens"""
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'alice',
            'email': 'alice@test.com',
            'password': 'Sup3r-secret-pw',
            'password_confirm': 'Sup3r-secret-pw',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['username'], 'alice')
        self.assertEqual(response.data['user']['subscription_tier'], 'free')

    def test_register_password_mismatch(self):
        """Test registration rejects mismatched passwords"""
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'bob',
            'password': 'Sup3r-secret-pw',
            'password_confirm': 'different-pw-123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('password', response.data)

    def test_login_and_refresh(self):
        """Test login returns a token pair that can be refreshed"""
        user = TestDataFactory.create_user(username='carol', password='testpass123')
        response = self.client.post('/api/v1/auth/login/', {
            'username': 'carol', 'password': 'testpass123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['user']['id'], user.id)

        response = self.client.post('/api/v1/auth/refresh/', {'refresh': response.data['refresh']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)

    def test_login_wrong_password(self):
        """Test login with a wrong password"""
        TestDataFactory.create_user(username='dave', password='testpass123')
        response = self.client.post('/api/v1/auth/login/', {
            'username': 'dave', 'password': 'wrong',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_refresh_with_garbage_token(self):
        """Test refresh rejects an invalid token"""
        response = self.client.post('/api/v1/auth/refresh/', {'refresh': 'not-a-token'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_unauthenticated_access(self):
        """Test protected endpoints require a token"""
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class UserTests(TestCase):
    """Test current user and settings endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user(ai_usage_count=5)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_user_me(self):
        """Test current user includes this month's remaining AI quota"""
        for _ in range(5):
            AIUsageLog.objects.create(user=self.user, usage_type=AIUsageLog.TYPE_PRICE_SEARCH)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['username'], self.user.username)
        self.assertEqual(response.data['ai_usage_this_month'], 5)
        self.assertEqual(response.data['ai_quota_remaining'], 15)

    def test_user_me_ignores_previous_months(self):
        """Test last month's AI calls do not count against the quota"""
        for _ in range(20):
            AIUsageLog.objects.create(user=self.user, usage_type=AIUsageLog.TYPE_IMAGE_RECOGNITION)
        AIUsageLog.objects.filter(user=self.user).update(created_at=timezone.now() - timedelta(days=40))
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.data['ai_usage_this_month'], 0)
        self.assertEqual(response.data['ai_quota_remaining'], usage_summary(self.user)['remaining'])
        self.assertEqual(response.data['ai_quota_remaining'], 20)

    def test_get_settings(self):
        """Test reading settings"""
        response = self.client.get('/api/v1/auth/settings/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('display_name', response.data)

    def test_update_display_name(self):
        """Test updating the display name trims whitespace"""
        response = self.client.put('/api/v1/auth/settings/', {'display_name': '  Alice  '}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.display_name, 'Alice')

    def test_update_settings_requires_display_name(self):
        """Test settings update without display_name"""
        response = self.client.put('/api/v1/auth/settings/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_display_name_too_long(self):
        """Test display name length limit"""
        response = self.client.patch('/api/v1/auth/settings/', {'display_name': 'x' * 51}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class AuditLogTests(TestCase):
    """Test audit log helpers and endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.other = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_audit_log(self):
        """Test creating an audit log for a user"""
        log = create_audit_log(action='create', model_name='Folder', object_id=1, user=self.user, object_name='Books')
        self.assertIsNotNone(log)
        self.assertEqual(log.object_id, '1')
        self.assertEqual(log.changes, {})

    def test_create_audit_log_missing_fields(self):
        """Test audit log creation is skipped without an action"""
        self.assertIsNone(create_audit_log(model_name='Folder', object_id=1, user=self.user))
        self.assertEqual(AuditLog.objects.count(), 0)

    def test_client_ip_prefers_forwarded_header(self):
        """Test client IP extraction"""
        request = RequestFactory().get('/', HTTP_X_FORWARDED_FOR='10.0.0.1, 10.0.0.2', REMOTE_ADDR='127.0.0.1')
        self.assertEqual(get_client_ip(request), '10.0.0.1')
        self.assertIsNone(get_client_ip(None))

    def test_list_only_own_logs(self):
        """Test users only see their own audit logs"""
        create_audit_log(action='create', model_name='Folder', object_id=1, user=self.user)
        create_audit_log(action='delete', model_name='Item', object_id=2, user=self.other)
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['action'], 'create')

    def test_filter_by_action(self):
        """Test filtering audit logs by action"""
        create_audit_log(action='create', model_name='Folder', object_id=1, user=self.user)
        create_audit_log(action='folder_move', model_name='Folder', object_id=1, user=self.user)
        response = self.client.get('/api/v1/audit-logs/?action=folder_move')
        self.assertEqual(response.data['count'], 1)

    def test_detail_of_other_user_forbidden(self):
        """Test audit log detail of another user"""
        log = create_audit_log(action='create', model_name='Folder', object_id=1, user=self.other)
        response = self.client.get(f'/api/v1/audit-logs/{log.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_filter_by_date(self):
        """Test date range filtering"""
        log = create_audit_log(action='create', model_name='Folder', object_id=1, user=self.user)
        AuditLog.objects.filter(pk=log.pk).update(created_at=timezone.now() - timedelta(days=10))
        create_audit_log(action='update', model_name='Folder', object_id=1, user=self.user)
        since = (timezone.localdate() - timedelta(days=1)).isoformat()
        response = self.client.get('/api/v1/audit-logs/', {'date_from': since})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['action'], 'update')

    def test_malformed_date_filter(self):
        """Test malformed dates are rejected instead of failing"""
        for params in ({'date_from': 'garbage'}, {'date_to': '2024-13-45'}):
            response = self.client.get('/api/v1/audit-logs/', params)
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
            self.assertIn('error', response.data)

    def test_invalid_pagination(self):
        """Test out-of-range pagination parameters"""
        response = self.client.get('/api/v1/audit-logs/?limit=500')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class PaginationTests(TestCase):
    """Test pagination helpers"""

    def test_defaults(self):
        self.assertEqual(parse_pagination({}), (1, 20, None))

    def test_limits(self):
        self.assertIsNotNone(parse_pagination({'page': '0'})[2])
        self.assertIsNotNone(parse_pagination({'page': '10001'})[2])
        self.assertIsNotNone(parse_pagination({'limit': '101'})[2])
        self.assertIsNotNone(parse_pagination({'limit': 'abc'})[2])
        self.assertEqual(parse_pagination({'page': '10000', 'limit': '100'}), (10000, 100, None))

    def test_envelope(self):
        user = TestDataFactory.create_user()
        for index in range(5):
            create_audit_log(action='create', model_name='Folder', object_id=index, user=user)
        data = paginate(AuditLog.objects.order_by('id'), 2, 2, lambda rows: [row.object_id for row in rows])
        self.assertEqual(data['results'], ['2', '3'])
        self.assertEqual(data['count'], 5)
        self.assertEqual(data['next'], 3)
        self.assertEqual(data['previous'], 1)
        self.assertEqual(data['page'], 2)
        self.assertEqual(data['page_size'], 2)
        self.assertEqual(data['total_pages'], 3)


class SeedDemoCommandTests(TestCase):
    """Test the demo data command"""

    def test_seed_demo_is_idempotent(self):
        call_command('seed_demo', stdout=StringIO())
        call_command('seed_demo', stdout=StringIO())
        self.assertEqual(Folder.objects.filter(user__username='demo').count(), 6)
        self.assertEqual(Item.objects.filter(user__username='demo').count(), 6)
        cupboard = Folder.objects.get(user__username='demo', name='Cupboard')
        self.assertEqual(cupboard.get_depth(), 3)

        call_command('seed_demo', '--reset', stdout=StringIO())
        self.assertEqual(Item.objects.filter(user__username='demo').count(), 6)
