"""
Error codes returned by the AI endpoints.

Every failure leaves the views as {'error': message, 'code': code} plus an
optional 'details' dict, with the HTTP status that belongs to the code.
"""
import logging

import requests

logger = logging.getLogger(__name__)


class AIErrorCode:
    UNAUTHORIZED = 'UNAUTHORIZED'
    RATE_LIMIT_EXCEEDED = 'RATE_LIMIT_EXCEEDED'
    VALIDATION_ERROR = 'VALIDATION_ERROR'
    MISSING_IMAGE_DATA = 'MISSING_IMAGE_DATA'
    UNSUPPORTED_FORMAT = 'UNSUPPORTED_FORMAT'
    AI_EMPTY_RESPONSE = 'AI_EMPTY_RESPONSE'
    AI_RECOGNITION_FAILED = 'AI_RECOGNITION_FAILED'
    AI_SERVICE_UNAVAILABLE = 'AI_SERVICE_UNAVAILABLE'
    AI_QUOTA_EXCEEDED = 'AI_QUOTA_EXCEEDED'
    NETWORK_ERROR = 'NETWORK_ERROR'
    TIMEOUT_ERROR = 'TIMEOUT_ERROR'
    INTERNAL_ERROR = 'INTERNAL_ERROR'


ERROR_STATUS = {
    AIErrorCode.UNAUTHORIZED: 401,
    AIErrorCode.RATE_LIMIT_EXCEEDED: 429,
    AIErrorCode.VALIDATION_ERROR: 400,
    AIErrorCode.MISSING_IMAGE_DATA: 400,
    AIErrorCode.UNSUPPORTED_FORMAT: 400,
    AIErrorCode.AI_EMPTY_RESPONSE: 502,
    AIErrorCode.AI_RECOGNITION_FAILED: 502,
    AIErrorCode.AI_SERVICE_UNAVAILABLE: 503,
    AIErrorCode.AI_QUOTA_EXCEEDED: 429,
    AIErrorCode.NETWORK_ERROR: 502,
    AIErrorCode.TIMEOUT_ERROR: 504,
    AIErrorCode.INTERNAL_ERROR: 500,
}

ERROR_MESSAGES = {
    AIErrorCode.UNAUTHORIZED: 'Authentication is required',
    AIErrorCode.RATE_LIMIT_EXCEEDED: 'Too many AI requests. Please wait a moment and try again',
    AIErrorCode.VALIDATION_ERROR: 'The request is invalid',
    AIErrorCode.MISSING_IMAGE_DATA: 'Image data is required',
    AIErrorCode.UNSUPPORTED_FORMAT: 'Unsupported image format. Use JPEG, PNG or WebP',
    AIErrorCode.AI_EMPTY_RESPONSE: 'The AI service returned an empty response',
    AIErrorCode.AI_RECOGNITION_FAILED: 'The AI service could not process the request',
    AIErrorCode.AI_SERVICE_UNAVAILABLE: 'The AI service is temporarily unavailable',
    AIErrorCode.AI_QUOTA_EXCEEDED: 'AI usage quota exceeded',
    AIErrorCode.NETWORK_ERROR: 'Could not reach the AI service',
    AIErrorCode.TIMEOUT_ERROR: 'The AI service timed out',
    AIErrorCode.INTERNAL_ERROR: 'An unexpected error occurred',
}


class AIError(Exception):
    def __init__(self, code, message=None, details=None):
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, ERROR_MESSAGES[AIErrorCode.INTERNAL_ERROR])
        self.details = details
        super().__init__(self.message)

    @property
    def status_code(self):
        return ERROR_STATUS.get(self.code, 500)

    def as_response_data(self):
        return format_error_response(self)


def categorize_ai_error(exc):
    """Map any exception raised while calling the AI service to an AIError"""
    if isinstance(exc, AIError):
        return exc
    if isinstance(exc, requests.Timeout):
        return AIError(AIErrorCode.TIMEOUT_ERROR)
    if isinstance(exc, requests.ConnectionError):
        return AIError(AIErrorCode.NETWORK_ERROR)

    message = str(exc).lower()
    if 'quota' in message or 'resource_exhausted' in message or '429' in message:
        return AIError(AIErrorCode.AI_QUOTA_EXCEEDED)
    if 'timeout' in message or 'timed out' in message:
        return AIError(AIErrorCode.TIMEOUT_ERROR)
    if 'network' in message or 'connection' in message or 'fetch' in message:
        return AIError(AIErrorCode.NETWORK_ERROR)
    if 'unavailable' in message or 'overloaded' in message or '503' in message or 'api key' in message:
        return AIError(AIErrorCode.AI_SERVICE_UNAVAILABLE)
    return AIError(AIErrorCode.INTERNAL_ERROR)


def format_error_response(error):
    data = {'error': error.message, 'code': error.code}
    if error.details:
        data['details'] = error.details
    return data
