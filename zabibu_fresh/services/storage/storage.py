import logging
import mimetypes
import time
import uuid
from typing import Optional, Tuple

from zabibu_fresh import config
from zabibu_fresh.errors import ZabibuError, ValidationFailed, WriteFailed

logger = logging.getLogger(__name__)

PUBLIC_OBJECT_MARKER = "/storage/v1/object/public/"

EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
}


def generate_image_file_name(owner_id: str, content_type: str, original_name: Optional[str] = None) -> str:
    """{owner_id}/{millis}_{uuid}.{ext}, so a seller's images share a folder"""
    extension = None
    if original_name and "." in original_name:
        extension = original_name.rsplit(".", 1)[1].lower()
    if not extension:
        extension = EXTENSIONS.get(content_type) or (mimetypes.guess_extension(content_type) or ".jpg").lstrip(".")
    return f"{owner_id}/{int(time.time() * 1000)}_{uuid.uuid4().hex[:12]}.{extension}"


def path_from_public_url(image_url: str, bucket: str = None) -> Optional[str]:
    """Object path inside the bucket for a public URL; plain paths pass through"""
    if not image_url:
        return None
    bucket = bucket or config.PRODUCT_IMAGES_BUCKET
    if PUBLIC_OBJECT_MARKER not in image_url:
        return image_url if "://" not in image_url else None

    parts = image_url.split(PUBLIC_OBJECT_MARKER, 1)[1].split("?", 1)[0]
    bucket_name, _, file_path = parts.partition("/")
    if bucket_name != bucket or not file_path:
        return None
    return file_path


class StorageService:
    """Product images in the public, size- and MIME-restricted product-images bucket"""

    def __init__(self, client, bucket: str = None):
        self.client = client
        self.bucket = bucket or config.PRODUCT_IMAGES_BUCKET

    def validate_image(self, content: bytes, content_type: str, action: str = "upload image"):
        if not content:
            raise ValidationFailed("Please select an image for the product.", action=action)
        if content_type not in config.ALLOWED_IMAGE_TYPES:
            raise ValidationFailed(f"File type {content_type} not allowed", action=action)
        if len(content) > config.MAX_IMAGE_BYTES:
            limit_mb = config.MAX_IMAGE_BYTES // (1024 * 1024)
            raise ValidationFailed(f"File size must be less than {limit_mb}MB", action=action)

    async def upload_image(self, owner_id: str, content: bytes, content_type: str,
                           filename: Optional[str] = None) -> Tuple[str, str]:
        """
        Upload an image and return (path, public_url)
        """
        self.validate_image(content, content_type)
        file_path = generate_image_file_name(owner_id, content_type, filename)

        try:
            logger.info(f"Starting upload for owner {owner_id}: {file_path}")
            bucket = self.client.storage.from_(self.bucket)
            await bucket.upload(
                path=file_path,
                file=content,
                file_options={"content-type": content_type, "cache-control": "3600", "upsert": "false"}
            )
            public_url = await bucket.get_public_url(file_path)
            logger.info(f"Public URL: {public_url}")
            return file_path, public_url

        except ZabibuError:
            raise
        except Exception as e:
            logger.error(f"Upload error: {str(e)}")
            raise WriteFailed("Failed to upload image", action="upload image") from e

    async def remove_image(self, image_url_or_path: str) -> bool:
        """
        Remove an image; failures are logged and reported as False, never raised
        """
        file_path = path_from_public_url(image_url_or_path, self.bucket)
        if not file_path:
            logger.warning(f"Not a {self.bucket} object, skipping delete: {image_url_or_path}")
            return False

        try:
            await self.client.storage.from_(self.bucket).remove([file_path])
            return True
        except Exception as e:
            logger.error(f"Error deleting image {file_path}: {str(e)}")
            return False
