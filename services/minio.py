"""Object storage for uploaded documents."""
from typing import BinaryIO, Optional
import logging

from minio import Minio
from minio.error import S3Error

from config import Settings, settings

logger = logging.getLogger(__name__)


class MinIOService:
    """
    Stores and fetches uploaded files in one MinIO bucket.

    Failures are logged and reported as ``False`` / ``None``; callers decide
    whether that is fatal for the request.
    """

    def __init__(self, client: Minio, bucket: str = "documents"):
        self.client = client
        self.bucket = bucket
        self._bucket_checked = False

    @classmethod
    def from_settings(cls, config: Settings) -> "MinIOService":
        client = Minio(
            endpoint=config.minio_endpoint,
            access_key=config.minio_access_key,
            secret_key=config.minio_secret_key,
            secure=config.minio_secure,
        )
        return cls(client, config.minio_bucket)

    def ensure_bucket(self) -> None:
        if self._bucket_checked:
            return
        if not self.client.bucket_exists(self.bucket):
            self.client.make_bucket(self.bucket)
            logger.info(f"Created bucket: {self.bucket}")
        self._bucket_checked = True

    def upload_file(self, file_data: BinaryIO, object_name: str, content_type: str, file_size: int) -> bool:
        """Stream ``file_size`` bytes of ``file_data`` into the bucket under ``object_name``."""
        try:
            self.ensure_bucket()
            self.client.put_object(
                bucket_name=self.bucket,
                object_name=object_name,
                data=file_data,
                length=file_size,
                content_type=content_type,
            )
        except S3Error as e:
            logger.error(f"Failed to store {object_name} in {self.bucket}: {e}")
            return False

        logger.info(f"Stored {object_name} ({file_size} bytes) in {self.bucket}")
        return True

    def download_file(self, object_name: str, bucket_name: Optional[str] = None) -> Optional[bytes]:
        """Full content of a stored object, or None if it cannot be read."""
        bucket_name = bucket_name or self.bucket
        try:
            response = self.client.get_object(bucket_name, object_name)
        except S3Error as e:
            logger.error(f"Failed to fetch {object_name} from {bucket_name}: {e}")
            return None

        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()


_minio_service: Optional[MinIOService] = None


def get_minio_service() -> MinIOService:
    """Process-wide storage client, created on first use."""
    global _minio_service
    if _minio_service is None:
        _minio_service = MinIOService.from_settings(settings)
    return _minio_service
