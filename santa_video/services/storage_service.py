import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from urllib.parse import quote

from santa_video.config import Settings, get_settings


class LocalStorageService:
    """Local file storage for development without GCS.

    Buckets are subdirectories of ``local_storage_path``; URLs point at
    ``local_storage_base_url`` which a dev static server is expected to serve.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.base_path = Path(self.settings.local_storage_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, bucket: str, storage_key: str) -> Path:
        full_path = self.base_path / bucket / storage_key
        full_path.parent.mkdir(parents=True, exist_ok=True)
        return full_path

    def get_public_url(self, bucket: str, storage_key: str) -> str:
        """Get URL for accessing the file."""
        base = self.settings.local_storage_base_url.rstrip("/")
        return f"{base}/{bucket}/{quote(storage_key)}"

    def create_signed_url(self, bucket: str, storage_key: str, ttl_seconds: int = 3600) -> str:
        """Time-limited URL. Locally there is no signing, only an expiry hint."""
        if not self.file_exists(bucket, storage_key):
            raise FileNotFoundError(f"Object not found: {bucket}/{storage_key}")
        expires = int((datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)).timestamp())
        return f"{self.get_public_url(bucket, storage_key)}?expires={expires}"

    def upload_bytes(self, bucket: str, storage_key: str, data: bytes, content_type: str) -> str:
        """Write bytes, replacing any existing object."""
        full_path = self._get_full_path(bucket, storage_key)
        full_path.write_bytes(data)
        return self.get_public_url(bucket, storage_key)

    def upload_file(self, bucket: str, storage_key: str, local_path: str, content_type: str) -> str:
        """Copy a local file, replacing any existing object."""
        full_path = self._get_full_path(bucket, storage_key)
        shutil.copy(local_path, str(full_path))
        return self.get_public_url(bucket, storage_key)

    def read_bytes(self, bucket: str, storage_key: str) -> bytes:
        return self._get_full_path(bucket, storage_key).read_bytes()

    def file_exists(self, bucket: str, storage_key: str) -> bool:
        """Check if file exists."""
        return (self.base_path / bucket / storage_key).exists()


class GCSStorageService:
    """Google Cloud Storage service for production."""

    def __init__(self, settings: Settings | None = None) -> None:
        from google.cloud import storage

        self.settings = settings or get_settings()
        self._storage = storage
        self._client: storage.Client | None = None

    @property
    def client(self):
        if self._client is None:
            if self.settings.gcs_project_id:
                self._client = self._storage.Client(project=self.settings.gcs_project_id)
            else:
                self._client = self._storage.Client()
        return self._client

    def _blob(self, bucket: str, storage_key: str):
        return self.client.bucket(bucket).blob(storage_key)

    def get_public_url(self, bucket: str, storage_key: str) -> str:
        """Get the public URL for a stored file."""
        return f"https://storage.googleapis.com/{bucket}/{quote(storage_key)}"

    def create_signed_url(self, bucket: str, storage_key: str, ttl_seconds: int = 3600) -> str:
        """Generate a V4 signed download URL."""
        blob = self._blob(bucket, storage_key)
        if not blob.exists():
            raise FileNotFoundError(f"Object not found: gs://{bucket}/{storage_key}")
        return blob.generate_signed_url(
            version="v4",
            expiration=timedelta(seconds=ttl_seconds),
            method="GET",
        )

    def upload_bytes(self, bucket: str, storage_key: str, data: bytes, content_type: str) -> str:
        """Upload bytes, replacing any existing object."""
        blob = self._blob(bucket, storage_key)
        blob.upload_from_string(data, content_type=content_type)
        return self.get_public_url(bucket, storage_key)

    def upload_file(self, bucket: str, storage_key: str, local_path: str, content_type: str) -> str:
        """Upload a local file, replacing any existing object."""
        blob = self._blob(bucket, storage_key)
        blob.upload_from_filename(local_path, content_type=content_type)
        return self.get_public_url(bucket, storage_key)

    def read_bytes(self, bucket: str, storage_key: str) -> bytes:
        return self._blob(bucket, storage_key).download_as_bytes()

    def file_exists(self, bucket: str, storage_key: str) -> bool:
        """Check if a file exists in GCS."""
        return self._blob(bucket, storage_key).exists()


StorageService = LocalStorageService | GCSStorageService


def get_storage_service(settings: Settings | None = None) -> StorageService:
    """Use LocalStorageService or GCSStorageService based on config."""
    settings = settings or get_settings()
    if settings.use_local_storage:
        return LocalStorageService(settings)
    return GCSStorageService(settings)
