"""Folder name and description rules"""
import re

from rest_framework import serializers

FOLDER_NAME_MAX_LENGTH = 100
FOLDER_DESCRIPTION_MAX_LENGTH = 500

INVALID_NAME_CHARS = re.compile(r'[/\\:*?"<>|]')
RESERVED_NAMES = re.compile(r'^(CON|PRN|AUX|NUL|COM[1-9]|LPT[1-9])$', re.IGNORECASE)


def validate_folder_name(value):
    """Return the trimmed name or raise serializers.ValidationError"""
    name = (value or '').strip()
    if not name:
        raise serializers.ValidationError('Folder name is required')
    if len(name) > FOLDER_NAME_MAX_LENGTH:
        raise serializers.ValidationError(f'Folder name must be {FOLDER_NAME_MAX_LENGTH} characters or fewer')
    if INVALID_NAME_CHARS.search(name):
        raise serializers.ValidationError('Folder name contains invalid characters (/ \\ : * ? " < > |)')
    if RESERVED_NAMES.match(name):
        raise serializers.ValidationError('This name is reserved by the system')
    return name


def validate_folder_description(value):
    if value is None:
        return None
    description = value.strip()
    if len(description) > FOLDER_DESCRIPTION_MAX_LENGTH:
        raise serializers.ValidationError(f'Description must be {FOLDER_DESCRIPTION_MAX_LENGTH} characters or fewer')
    return description or None
