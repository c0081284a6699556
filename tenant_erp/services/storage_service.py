"""
File storage service for uploaded images (profiles, logos, booking evidence).

Files are stored under predictable keys ``<category>/<owner_id>/[<subfolder>/]<name>``
and served back as absolute URLs.

Backends:
- ``local`` (default): writes under ``UPLOAD_FOLDER`` and serves via ``/uploads/<key>``
- ``s3``: boto3 client against any S3-compatible endpoint (MinIO, AWS S3, Spaces)
"""
import logging
import mimetypes
import os
import secrets
import time
from io import BytesIO
from typing import Optional

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import ClientError
from flask import current_app, has_request_context, request
from PIL import Image, ImageOps, UnidentifiedImageError
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from tenant_erp.exceptions import ValidationFailed

logger = logging.getLogger(__name__)

# Pillow format name -> (extension, content type)
_IMAGE_FORMATS = {
    'JPEG': ('.jpg', 'image/jpeg'),
    'PNG': ('.png', 'image/png'),
    'GIF': ('.gif', 'image/gif'),
    'WEBP': ('.webp', 'image/webp'),
}


class StorageService:
    """
    Upload storage.

    Usage:
        storage = get_storage_service()
        key = storage.save_upload(file, 'bookings', booking.id, prefix='before')
        url = storage.public_url(key)
    """

    def __init__(self, config):
        self.backend = config.get('STORAGE_BACKEND', 'local')
        self.max_size = config.get('MAX_UPLOAD_SIZE', 5 * 1024 * 1024)
        self.allowed_types = config.get('ALLOWED_MIME_TYPES', set())
        self.public_base_url = config.get('PUBLIC_BASE_URL')

        if self.backend == 's3':
            self.bucket = config['S3_BUCKET']
            self.s3_public_url = config['S3_PUBLIC_URL']
            self.client = boto3.client(
                's3',
                endpoint_url=config['S3_ENDPOINT'],
                aws_access_key_id=config['S3_ACCESS_KEY'],
                aws_secret_access_key=config['S3_SECRET_KEY'],
                region_name=config['S3_REGION'],
                config=BotoConfig(signature_version='s3v4')
            )
            self._ensure_bucket_exists()
        else:
            self.root = os.path.abspath(config.get('UPLOAD_FOLDER', 'uploads'))
            os.makedirs(self.root, exist_ok=True)

    def _ensure_bucket_exists(self):
        """Create bucket if it doesn't exist."""
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code')
            if error_code != '404':
                logger.error(f"[STORAGE] Failed to check bucket: {e}")
                raise
            self.client.create_bucket(Bucket=self.bucket)
            logger.info(f"[STORAGE] Bucket '{self.bucket}' created")

    def save_upload(
        self,
        file: FileStorage,
        category: str,
        owner_id,
        subfolder: Optional[str] = None,
        prefix: str = 'file'
    ) -> str:
        """
        Validate, normalise and store an uploaded image.

        Args:
            file: Werkzeug FileStorage from request.files
            category: top-level folder, e.g. 'bookings', 'employees', 'organizations'
            owner_id: id of the owning record
            subfolder: optional nested folder, e.g. 'profile'
            prefix: file name prefix, e.g. 'before', 'signature'

        Returns:
            Storage key relative to the upload root
        """
        self._validate_file(file)
        data, extension, content_type = self._normalise_image(file)

        parts = [secure_filename(str(category)), secure_filename(str(owner_id))]
        if subfolder:
            parts.append(secure_filename(subfolder))
        name = f"{secure_filename(prefix) or 'file'}_{int(time.time())}_{secrets.token_hex(4)}{extension}"
        key = '/'.join(parts + [name])

        if self.backend == 's3':
            try:
                self.client.upload_fileobj(
                    BytesIO(data),
                    self.bucket,
                    key,
                    ExtraArgs={'ContentType': content_type, 'ACL': 'public-read'}
                )
            except ClientError as e:
                logger.exception(f"[STORAGE] Upload failed: {e}")
                raise
        else:
            path = self.local_path(key)
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, 'wb') as fh:
                fh.write(data)

        logger.info(f"[STORAGE] Stored '{key}' ({len(data)} bytes, {content_type})")
        return key

    def delete(self, key: Optional[str]) -> bool:
        """Delete a stored file; returns False when nothing was removed."""
        if not key:
            return False
        if self.backend == 's3':
            try:
                self.client.delete_object(Bucket=self.bucket, Key=key)
                return True
            except ClientError as e:
                logger.warning(f"[STORAGE] Delete failed for '{key}': {e}")
                return False
        path = self.local_path(key)
        if os.path.isfile(path):
            os.remove(path)
            return True
        return False

    def public_url(self, key: Optional[str]) -> Optional[str]:
        """Absolute URL for a stored key."""
        if not key:
            return None
        if key.startswith(('http://', 'https://')):
            return key
        if self.backend == 's3':
            return f"{self.s3_public_url.rstrip('/')}/{self.bucket}/{key.lstrip('/')}"
        base = self.public_base_url
        if not base and has_request_context():
            base = request.host_url
        base = (base or '').rstrip('/')
        return f"{base}/uploads/{key.lstrip('/')}"

    def local_path(self, key: str) -> str:
        """Filesystem path for a key; refuses keys escaping the upload root."""
        path = os.path.abspath(os.path.join(self.root, key))
        if not path.startswith(self.root + os.sep):
            raise ValidationFailed(['Invalid file path'])
        return path

    def _validate_file(self, file: FileStorage):
        """Check presence, size and declared MIME type."""
        if not file or not file.filename:
            raise ValidationFailed(['No file provided'])

        file.seek(0, 2)
        file_size = file.tell()
        file.seek(0)
        if file_size == 0:
            raise ValidationFailed(['Uploaded file is empty'])
        if file_size > self.max_size:
            max_mb = self.max_size / (1024 * 1024)
            raise ValidationFailed([f"File is too large. Maximum {max_mb:.1f}MB"])

        content_type = file.mimetype or mimetypes.guess_type(file.filename)[0]
        if self.allowed_types and content_type not in self.allowed_types:
            raise ValidationFailed([
                f"File type not allowed: {content_type}. Allowed: {', '.join(sorted(self.allowed_types))}"
            ])

    def _normalise_image(self, file: FileStorage):
        """Verify the bytes are an image and apply EXIF orientation."""
        raw = file.read()
        file.seek(0)
        try:
            with Image.open(BytesIO(raw)) as candidate:
                candidate.verify()
            img = Image.open(BytesIO(raw))
        except (UnidentifiedImageError, OSError, SyntaxError):
            raise ValidationFailed(['Uploaded file is not a valid image'])

        image_format = img.format or 'JPEG'
        if image_format not in _IMAGE_FORMATS:
            raise ValidationFailed([f"Unsupported image format: {image_format}"])
        extension, content_type = _IMAGE_FORMATS[image_format]

        # Animated GIFs are stored untouched
        if image_format == 'GIF':
            return raw, extension, content_type

        img = ImageOps.exif_transpose(img)
        output = BytesIO()
        if image_format == 'JPEG':
            img.convert('RGB').save(output, format='JPEG', quality=90)
        else:
            img.save(output, format=image_format)
        return output.getvalue(), extension, content_type


def get_storage_service() -> StorageService:
    """
    Get or create the StorageService for the current app.

    Returns:
        StorageService instance
    """
    storage = current_app.extensions.get('tenant_erp_storage')
    if storage is None:
        storage = StorageService(current_app.config)
        current_app.extensions['tenant_erp_storage'] = storage
    return storage
