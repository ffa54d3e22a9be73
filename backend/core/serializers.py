from rest_framework import serializers
from django.contrib.auth.password_validation import validate_password
from .models import User, AuditLog


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'phone', 'display_name',
                  'subscription_tier', 'ai_usage_count', 'ai_usage_limit',
                  'is_active', 'created_at', 'updated_at']
        read_only_fields = ['subscription_tier', 'ai_usage_count', 'ai_usage_limit', 'created_at', 'updated_at']


class UserCreateSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, validators=[validate_password])
    password_confirm = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ['username', 'email', 'password', 'password_confirm', 'first_name', 'last_name', 'phone', 'display_name']

    def validate(self, attrs):
        if attrs['password'] != attrs['password_confirm']:
            raise serializers.ValidationError({"password": "Passwords don't match"})
        return attrs

    def create(self, validated_data):
        validated_data.pop('password_confirm')
        password = validated_data.pop('password')
        user = User(**validated_data, is_active=True)
        user.set_password(password)
        user.save()
        return user


class UserSettingsSerializer(serializers.ModelSerializer):
    """Only the display name is user-editable"""
    display_name = serializers.CharField(max_length=50, allow_blank=True, allow_null=True, required=False)

    class Meta:
        model = User
        fields = ['display_name', 'email']
        read_only_fields = ['email']

    def validate_display_name(self, value):
        if value is None:
            return None
        value = value.strip()
        return value or None


class AuditLogSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source='user.username', read_only=True, default=None)

    class Meta:
        model = AuditLog
        fields = ['id', 'username', 'action', 'model_name', 'object_id', 'object_name',
                  'changes', 'ip_address', 'created_at']
