import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError, AuthenticationFailed
from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from django.utils.dateparse import parse_date
from backend.ai.usage import usage_summary
from .models import AuditLog
from .serializers import (
    UserSerializer, UserCreateSerializer, UserSettingsSerializer, AuditLogSerializer
)
from .utils import parse_pagination, paginate

logger = logging.getLogger('backend.core')

User = get_user_model()


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)
        if not self.user.is_active:
            raise AuthenticationFailed('User account is disabled.')
        data['user'] = UserSerializer(self.user).data
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        token['display_name'] = user.display_name or ''
        return token


class CustomTokenObtainPairView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Token refresh that reports deleted users as an invalid token"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except User.DoesNotExist:
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    serializer_class = CustomTokenRefreshSerializer


@api_view(['POST'])
@permission_classes([AllowAny])
def register(request):
    """User registration endpoint"""
    serializer = UserCreateSerializer(data=request.data)
    if serializer.is_valid():
        user = serializer.save()
        token = CustomTokenObtainPairSerializer.get_token(user)
        logger.info(f"Registered new user {user.username}")
        return Response({
            'user': UserSerializer(user).data,
            'access': str(token.access_token),
            'refresh': str(token),
        }, status=status.HTTP_201_CREATED)
    logger.warning(f"Registration rejected: {serializer.errors}")
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Get current user with this month's AI quota"""
    user = request.user
    user_data = UserSerializer(user).data
    quota = usage_summary(user)
    user_data['ai_usage_this_month'] = quota['used_this_month']
    user_data['ai_quota_remaining'] = quota['remaining']
    return Response(user_data)


@api_view(['GET', 'PUT', 'PATCH'])
@permission_classes([IsAuthenticated])
def user_settings(request):
    """Read or update the current user's display name"""
    user = request.user
    if request.method == 'GET':
        return Response(UserSettingsSerializer(user).data)

    if 'display_name' not in request.data:
        return Response({'error': 'display_name is required'}, status=status.HTTP_400_BAD_REQUEST)

    serializer = UserSettingsSerializer(user, data=request.data, partial=True)
    if serializer.is_valid():
        serializer.save()
        logger.info(f"User {user.username} updated settings")
        return Response({
            'message': 'Settings updated',
            'user': serializer.data,
        })
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


# AuditLog views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_list(request):
    """List the current user's audit logs with filtering"""
    queryset = AuditLog.objects.select_related('user')

    if not request.user.is_staff:
        queryset = queryset.filter(user=request.user)

    action_filter = request.query_params.get('action', None)
    if action_filter:
        queryset = queryset.filter(action=action_filter)

    model_filter = request.query_params.get('model', None)
    if model_filter:
        queryset = queryset.filter(model_name=model_filter)

    for param, lookup in (('date_from', 'created_at__date__gte'), ('date_to', 'created_at__date__lte')):
        value = request.query_params.get(param)
        if not value:
            continue
        try:
            parsed = parse_date(value)
        except ValueError:
            parsed = None
        if parsed is None:
            return Response({'error': f'{param} must be a date in YYYY-MM-DD format', 'field': param},
                            status=status.HTTP_400_BAD_REQUEST)
        queryset = queryset.filter(**{lookup: parsed})

    page, limit, error = parse_pagination(request.query_params, default_limit=50)
    if error:
        return Response({'error': error}, status=status.HTTP_400_BAD_REQUEST)

    queryset = queryset.order_by('-created_at')
    return Response(paginate(queryset, page, limit, lambda rows: AuditLogSerializer(rows, many=True).data))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_detail(request, pk):
    """Retrieve an audit log"""
    audit_log = get_object_or_404(AuditLog, pk=pk)

    if not request.user.is_staff and audit_log.user != request.user:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    serializer = AuditLogSerializer(audit_log)
    return Response(serializer.data)
