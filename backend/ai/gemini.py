"""
Gemini generateContent client for item recognition and price research.
Calls the REST API with requests; responses are parsed into plain dicts.
"""
import json
import logging
import os
import re
from typing import Optional, Dict, Any, List

import requests
from django.conf import settings

from .errors import AIError, AIErrorCode

logger = logging.getLogger(__name__)

GEMINI_API_KEY = getattr(settings, 'GEMINI_API_KEY', os.getenv('GEMINI_API_KEY', ''))
GEMINI_API_URL = getattr(settings, 'GEMINI_API_URL', 'https://generativelanguage.googleapis.com/v1beta')
GEMINI_RECOGNITION_MODEL = getattr(settings, 'GEMINI_RECOGNITION_MODEL', 'gemini-2.5-flash-lite')
GEMINI_PRICE_SEARCH_MODEL = getattr(settings, 'GEMINI_PRICE_SEARCH_MODEL', 'gemini-2.5-flash')
GEMINI_TIMEOUT = getattr(settings, 'GEMINI_TIMEOUT', 60)

MAX_SUGGESTIONS = 3

RECOGNITION_PROMPT = """Identify the object in this photo for a personal belongings inventory.
Reply with JSON only, in a ```json block, using this shape:
{
  "suggestions": ["most likely product name", "alternative", "alternative"],
  "category": "short category such as Electronics, Books, Clothing",
  "manufacturer": "brand or manufacturer if visible, otherwise empty",
  "description": "one or two sentences describing the item"
}"""

PRICE_SEARCH_PROMPT = """Search current second-hand market prices in Japan (Mercari, Yahoo! Auctions,
Rakuma, Amazon and similar) for: {query}
Reply with JSON only, in a ```json block, using this shape:
{{
  "prices": [
    {{"price": "¥12,800", "site": "Mercari", "url": "https://...", "condition": "used", "title": "listing title"}}
  ],
  "summary": "two or three sentences about the typical price range"
}}
List at most 10 listings."""

JSON_BLOCK = re.compile(r'```(?:json)?\s*(\{.*?\})\s*```', re.DOTALL)
YEN_AMOUNT = re.compile(r'[¥￥]\s?[\d,]+|[\d,]+\s?円')
LIST_PREFIX = re.compile(r'^\s*(?:[-*•]|\d+[.)])\s*')


def extract_json(text: str) -> Optional[Dict[str, Any]]:
    """Parse the first ```json block, or the outermost {...} of the text"""
    if not text:
        return None
    candidates = [match.group(1) for match in JSON_BLOCK.finditer(text)]
    start, end = text.find('{'), text.rfind('}')
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data
    return None


def parse_recognition(text: str) -> Dict[str, Any]:
    """Recognition reply -> {'suggestions', 'category', 'manufacturer', 'description'}"""
    data = extract_json(text)
    if data is not None:
        suggestions = [str(s).strip() for s in data.get('suggestions') or [] if str(s).strip()]
        return {
            'suggestions': suggestions[:MAX_SUGGESTIONS],
            'category': str(data.get('category') or '').strip()[:50],
            'manufacturer': str(data.get('manufacturer') or '').strip()[:100],
            'description': str(data.get('description') or '').strip()[:1000],
        }

    # Free text: one suggestion per line
    lines = [LIST_PREFIX.sub('', line).strip() for line in text.splitlines()]
    lines = [line for line in lines if line and not line.startswith('```')]
    return {
        'suggestions': lines[:MAX_SUGGESTIONS],
        'category': '',
        'manufacturer': '',
        'description': ' '.join(lines[MAX_SUGGESTIONS:])[:1000],
    }


def parse_price_search(text: str) -> Dict[str, Any]:
    """Price search reply -> {'prices': [...], 'summary'}"""
    data = extract_json(text)
    if data is not None:
        prices = []
        for listing in data.get('prices') or []:
            if not isinstance(listing, dict) or listing.get('price') in (None, ''):
                continue
            prices.append({
                'price': str(listing.get('price')),
                'site': str(listing.get('site') or 'unknown')[:100],
                'url': listing.get('url') or None,
                'condition': listing.get('condition') or None,
                'title': listing.get('title') or None,
            })
        return {'prices': prices, 'summary': str(data.get('summary') or '').strip()}

    amounts = YEN_AMOUNT.findall(text or '')
    return {
        'prices': [
            {'price': amount.strip(), 'site': 'unknown', 'url': None, 'condition': None, 'title': None}
            for amount in amounts[:10]
        ],
        'summary': (text or '').strip()[:500],
    }


class GeminiClient:
    """Thin wrapper over models/{model}:generateContent"""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 timeout: Optional[int] = None, session: Optional[requests.Session] = None):
        self.api_key = api_key if api_key is not None else GEMINI_API_KEY
        self.base_url = (base_url or GEMINI_API_URL).rstrip('/')
        self.timeout = timeout or GEMINI_TIMEOUT
        self.session = session or requests.Session()

    def generate(self, model: str, parts: List[Dict[str, Any]], tools: Optional[List[Dict[str, Any]]] = None) -> str:
        """Send one user turn and return the concatenated text of the first candidate"""
        if not self.api_key:
            raise AIError(AIErrorCode.AI_SERVICE_UNAVAILABLE, 'AI service is not configured')

        payload = {'contents': [{'role': 'user', 'parts': parts}]}
        if tools:
            payload['tools'] = tools

        response = self.session.post(
            f"{self.base_url}/models/{model}:generateContent",
            params={'key': self.api_key},
            json=payload,
            timeout=self.timeout,
        )
        if response.status_code == 429:
            raise AIError(AIErrorCode.AI_QUOTA_EXCEEDED)
        if response.status_code in (401, 403):
            logger.error(f"Gemini rejected the API key: {response.status_code}")
            raise AIError(AIErrorCode.AI_SERVICE_UNAVAILABLE)
        if response.status_code >= 500:
            raise AIError(AIErrorCode.AI_SERVICE_UNAVAILABLE)
        if not response.ok:
            logger.error(f"Gemini request failed: {response.status_code} {response.text[:500]}")
            raise AIError(AIErrorCode.AI_RECOGNITION_FAILED)

        try:
            data = response.json()
        except ValueError:
            raise AIError(AIErrorCode.AI_EMPTY_RESPONSE)
        candidates = data.get('candidates') or []
        parts_out = ((candidates[0].get('content') or {}).get('parts') or []) if candidates else []
        text = ''.join(part.get('text', '') for part in parts_out).strip()
        if not text:
            raise AIError(AIErrorCode.AI_EMPTY_RESPONSE)
        return text

    def recognize_item(self, image_base64: str, mime_type: str) -> Dict[str, Any]:
        text = self.generate(
            GEMINI_RECOGNITION_MODEL,
            [
                {'text': RECOGNITION_PROMPT},
                {'inline_data': {'mime_type': mime_type, 'data': image_base64}},
            ],
        )
        result = parse_recognition(text)
        if not result['suggestions']:
            raise AIError(AIErrorCode.AI_RECOGNITION_FAILED, 'The item could not be recognized')
        return result

    def search_prices(self, item_name: str, manufacturer: Optional[str] = None) -> Dict[str, Any]:
        query = f"{manufacturer} {item_name}" if manufacturer else item_name
        text = self.generate(
            GEMINI_PRICE_SEARCH_MODEL,
            [{'text': PRICE_SEARCH_PROMPT.format(query=query)}],
            tools=[{'google_search': {}}],
        )
        return parse_price_search(text)
