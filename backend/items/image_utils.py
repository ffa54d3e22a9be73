"""
Image upload validation and thumbnail rendering with Pillow
"""
import io
import logging
import os
import secrets
import time

from django.conf import settings
from django.core.files.base import ContentFile
from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

MAX_IMAGE_SIZE = getattr(settings, 'ITEM_IMAGE_MAX_SIZE', 10 * 1024 * 1024)  # 10MB
MAX_IMAGES_PER_ITEM = getattr(settings, 'ITEM_IMAGE_MAX_COUNT', 10)
ALLOWED_MIME_TYPES = ('image/jpeg', 'image/jpg', 'image/png', 'image/webp')
ALLOWED_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.webp')
THUMBNAIL_SIZES = {
    'small': 150,
    'medium': 300,
    'large': 600,
}
THUMBNAIL_QUALITY = 85


class ImageUploadError(Exception):
    def __init__(self, message, status_code=400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def get_upload_config():
    """Limits exposed to clients before they upload"""
    return {
        'max_file_size': MAX_IMAGE_SIZE,
        'max_file_size_mb': MAX_IMAGE_SIZE // (1024 * 1024),
        'max_images_per_item': MAX_IMAGES_PER_ITEM,
        'allowed_mime_types': list(ALLOWED_MIME_TYPES),
        'allowed_extensions': list(ALLOWED_EXTENSIONS),
        'thumbnail_sizes': THUMBNAIL_SIZES,
    }


def validate_image_upload(uploaded_file):
    """
    Check size, declared type, extension and that Pillow can read the file.

    Returns the normalised file extension.
    """
    if uploaded_file is None:
        raise ImageUploadError('No file was uploaded')
    if uploaded_file.size > MAX_IMAGE_SIZE:
        raise ImageUploadError(f'File is too large (maximum {MAX_IMAGE_SIZE // (1024 * 1024)}MB)', status_code=413)

    content_type = (getattr(uploaded_file, 'content_type', '') or '').lower()
    if content_type not in ALLOWED_MIME_TYPES:
        raise ImageUploadError('Unsupported file type. Use JPEG, PNG or WebP images')

    ext = os.path.splitext(uploaded_file.name or '')[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise ImageUploadError('Unsupported file extension. Use .jpg, .jpeg, .png or .webp')

    try:
        uploaded_file.seek(0)
        with Image.open(uploaded_file) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        logger.warning(f"Rejected unreadable image upload {uploaded_file.name}: {str(e)}")
        raise ImageUploadError('The file is not a valid image')
    finally:
        uploaded_file.seek(0)
    return ext


def generate_stored_filename(ext):
    """{millisecond timestamp}-{random hex}{ext}"""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(8)}{ext}"


def render_thumbnail(source, size):
    """Fit the image inside size x size and encode it as JPEG"""
    source.seek(0)
    with Image.open(source) as img:
        img = ImageOps.exif_transpose(img)
        img.thumbnail((size, size))
        if img.mode != 'RGB':
            img = img.convert('RGB')
        buffer = io.BytesIO()
        img.save(buffer, format='JPEG', quality=THUMBNAIL_QUALITY, optimize=True)
    return ContentFile(buffer.getvalue())


def attach_thumbnails(item_image, source, stored_name):
    """Render every thumbnail size onto the ItemImage (not saved)"""
    stem = os.path.splitext(stored_name)[0]
    for label, size in THUMBNAIL_SIZES.items():
        content = render_thumbnail(source, size)
        getattr(item_image, f'thumbnail_{label}').save(f"{stem}-{label}.jpg", content, save=False)


def delete_image_files(item_image):
    """Remove the original and thumbnails from storage"""
    for field_name in ('image', 'thumbnail_small', 'thumbnail_medium', 'thumbnail_large'):
        field_file = getattr(item_image, field_name)
        if field_file:
            try:
                field_file.delete(save=False)
            except OSError as e:
                logger.warning(f"Could not delete {field_name} for image {item_image.pk}: {str(e)}")
