"""
Blob Storage
Stores uploaded chat images in Cloudinary, or on local disk for development and tests
"""
import io
import logging
import os
import uuid

import cloudinary
import cloudinary.uploader
from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)


class CloudinaryBlobStore:
    """Uploads images to Cloudinary and returns their secure URL"""

    def __init__(self, cloud_name, api_key, api_secret, folder='chat_images'):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.folder = folder

    def _configure(self):
        cloudinary.config(
            cloud_name=self.cloud_name,
            api_key=self.api_key,
            api_secret=self.api_secret,
            secure=True
        )

    def store(self, data: bytes, filename: str) -> str:
        """
        Upload image bytes to Cloudinary

        Args:
            data: Raw image bytes
            filename: Original filename, used for the public id

        Returns:
            The secure URL of the uploaded image
        """
        self._configure()

        stem = os.path.splitext(secure_filename(filename) or 'image')[0]
        result = cloudinary.uploader.upload(
            io.BytesIO(data),
            folder=self.folder,
            public_id=f"{stem}_{uuid.uuid4().hex[:12]}",
            resource_type="image",
            transformation=[
                {'width': 1920, 'height': 1080, 'crop': 'limit'},  # Max resolution
                {'quality': 'auto:good'}
            ]
        )

        url = result.get('secure_url') or result.get('url')
        logger.info(f"Uploaded {filename} to Cloudinary ({result.get('bytes')} bytes)")
        return url


class LocalBlobStore:
    """Writes images under UPLOAD_FOLDER and serves them from /uploads"""

    def __init__(self, upload_folder, url_prefix='/uploads'):
        self.upload_folder = upload_folder
        self.url_prefix = url_prefix.rstrip('/')

    def store(self, data: bytes, filename: str) -> str:
        os.makedirs(self.upload_folder, exist_ok=True)

        extension = os.path.splitext(secure_filename(filename))[1].lower()
        stored_name = f"{uuid.uuid4().hex}{extension}"
        with open(os.path.join(self.upload_folder, stored_name), 'wb') as f:
            f.write(data)

        return f"{self.url_prefix}/{stored_name}"


def make_blob_store(config):
    """Build the blob store selected by BLOB_STORE"""
    backend = config.get('BLOB_STORE', 'cloudinary')

    if backend == 'local':
        return LocalBlobStore(config['UPLOAD_FOLDER'])

    if backend == 'cloudinary':
        if not config.get('CLOUDINARY_CLOUD_NAME'):
            logger.warning("BLOB_STORE is cloudinary but CLOUDINARY_CLOUD_NAME is not set")
        return CloudinaryBlobStore(
            config.get('CLOUDINARY_CLOUD_NAME'),
            config.get('CLOUDINARY_API_KEY'),
            config.get('CLOUDINARY_API_SECRET'),
            folder=config.get('CLOUDINARY_FOLDER', 'chat_images')
        )

    raise ValueError(f"Unknown BLOB_STORE: {backend}")
