"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from backend.folders.models import Folder
from backend.items.models import Item, ItemImage
from backend.pricing.models import PriceHistory, PriceDetail
from decimal import Decimal
from io import BytesIO
from PIL import Image
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', is_staff=False, is_superuser=False, **extra):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            is_staff=is_staff,
            is_superuser=is_superuser,
            **extra
        )

    @staticmethod
    def create_folder(user, name=None, parent=None, description=None):
        """Create a test folder"""
        if not name:
            name = f'Folder_{TestDataFactory.random_string(6)}'
        return Folder.objects.create(user=user, name=name, parent=parent, description=description)

    @staticmethod
    def create_folder_chain(user, *names):
        """Create nested folders, each inside the previous one"""
        folders = []
        parent = None
        for name in names:
            parent = TestDataFactory.create_folder(user, name=name, parent=parent)
            folders.append(parent)
        return folders

    @staticmethod
    def create_item(user, folder=None, name=None, category=None, purchase_price=None, purchase_date=None, **extra):
        """Create a test item"""
        if not name:
            name = f'Item_{TestDataFactory.random_string(6)}'
        return Item.objects.create(
            user=user,
            folder=folder,
            name=name,
            category=category,
            purchase_price=Decimal(str(purchase_price)) if purchase_price is not None else None,
            purchase_date=purchase_date,
            **extra
        )

    @staticmethod
    def image_bytes(fmt='JPEG', size=(64, 48), color=(200, 30, 30)):
        """Encoded image content generated with Pillow"""
        buffer = BytesIO()
        Image.new('RGB', size, color).save(buffer, format=fmt)
        return buffer.getvalue()

    @staticmethod
    def uploaded_image(name='photo.jpg', fmt='JPEG', content_type='image/jpeg', size=(64, 48)):
        """An in-memory upload suitable for multipart requests"""
        return SimpleUploadedFile(name, TestDataFactory.image_bytes(fmt=fmt, size=size), content_type=content_type)

    @staticmethod
    def create_item_image(item, order=0, name=None):
        """Create a stored image without thumbnails"""
        if not name:
            name = f'{TestDataFactory.random_string(8)}.jpg'
        upload = TestDataFactory.uploaded_image(name=name)
        return ItemImage.objects.create(
            item=item,
            image=upload,
            filename=name,
            mime_type='image/jpeg',
            size=upload.size,
            order=order,
        )

    @staticmethod
    def create_price_history(item, prices=None, summary='', source='gemini_search', is_active=True):
        """Create a price history with one detail row per price"""
        prices = prices if prices is not None else [1000, 2000, 3000]
        history = PriceHistory.objects.create(
            item=item,
            source=source,
            min_price=min(prices) if prices else None,
            avg_price=round(sum(prices) / len(prices)) if prices else None,
            max_price=max(prices) if prices else None,
            listing_count=len(prices),
            summary=summary,
            is_active=is_active,
        )
        for price in prices:
            PriceDetail.objects.create(history=history, site='Mercari', price=price)
        return history


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
