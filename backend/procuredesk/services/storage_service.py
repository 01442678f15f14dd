import boto3
from botocore.exceptions import ClientError
from typing import Optional
import os
from datetime import datetime
from procuredesk.config import settings
import logging

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    'pdf': 'application/pdf',
    'xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    'xls': 'application/vnd.ms-excel',
    'csv': 'text/csv',
    'png': 'image/png',
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
}


def content_type_for(filename: str) -> str:
    """Determine content type based on file extension"""
    ext = filename.lower().rsplit('.', 1)[-1] if '.' in filename else ''
    return CONTENT_TYPES.get(ext, 'application/octet-stream')


class StorageService:
    """Archive of exported documents (PO PDFs, GRN/invoice downloads, master-data sheets)"""

    def __init__(self, local_dir: Optional[str] = None):
        self.bucket_name = settings.storage_bucket_name

        # Require both access key and secret key to use S3
        if settings.storage_access_key_id and settings.storage_secret_access_key:
            s3_config = {
                'aws_access_key_id': settings.storage_access_key_id,
                'aws_secret_access_key': settings.storage_secret_access_key,
            }
            if settings.storage_endpoint_url:
                s3_config['endpoint_url'] = settings.storage_endpoint_url
            if settings.storage_region:
                s3_config['region_name'] = settings.storage_region
            self.s3_client = boto3.client('s3', **s3_config)
            logger.info("S3 export storage initialized")
        else:
            logger.info("No S3 credentials found, using local filesystem storage for exports")
            self.s3_client = None

        self.local_storage_dir = os.path.abspath(local_dir or settings.storage_local_dir)

    def _local_path(self, storage_key: str) -> str:
        path = os.path.abspath(os.path.join(self.local_storage_dir, storage_key))
        # Keys come from URLs; never leave the storage directory
        if os.path.commonpath([path, self.local_storage_dir]) != self.local_storage_dir:
            raise FileNotFoundError(f"File not found: {storage_key}")
        return path

    def archive(self, file_content: bytes, folder: str, filename: str) -> str:
        """
        Store an exported file and return its storage key

        Args:
            file_content: Binary content of the export
            folder: Document family, e.g. "purchase-orders" or "master/taxes"
            filename: Suggested filename, e.g. "PO-2024-2025-001.pdf"

        Returns:
            Storage key such as "purchase-orders/20250115_101500_PO-2024-2025-001.pdf"
        """
        timestamp = datetime.utcnow().strftime("%Y%m%d_%H%M%S")
        safe_name = filename.replace("/", "-")
        storage_key = f"{folder.strip('/')}/{timestamp}_{safe_name}"

        if self.s3_client:
            try:
                self.s3_client.put_object(
                    Bucket=self.bucket_name,
                    Key=storage_key,
                    Body=file_content,
                    ContentType=content_type_for(safe_name)
                )
            except ClientError as e:
                logger.error(f"Failed to archive {storage_key} to S3: {str(e)}")
                raise
            return storage_key

        local_path = self._local_path(storage_key)
        os.makedirs(os.path.dirname(local_path), exist_ok=True)
        with open(local_path, 'wb') as f:
            f.write(file_content)
        logger.info(f"Export archived to local storage: {local_path}")
        return storage_key

    def archive_export(self, file_content: bytes, folder: str, filename: str) -> Optional[str]:
        """
        Archive a download on its way to the caller. A storage failure only loses
        the archived copy; the caller still gets the file, with no storage key.
        """
        if not settings.archive_exports:
            return None
        try:
            return self.archive(file_content, folder, filename)
        except (ClientError, OSError) as e:
            logger.warning(f"Could not archive {filename} under {folder}: {str(e)}")
            return None

    def download(self, storage_key: str) -> bytes:
        """
        Raises:
            FileNotFoundError if nothing is stored under the key
        """
        if self.s3_client:
            try:
                response = self.s3_client.get_object(Bucket=self.bucket_name, Key=storage_key)
            except ClientError as e:
                if e.response.get('Error', {}).get('Code') in ('NoSuchKey', '404'):
                    raise FileNotFoundError(f"File not found: {storage_key}")
                raise
            return response['Body'].read()

        local_path = self._local_path(storage_key)
        if not os.path.exists(local_path):
            raise FileNotFoundError(f"File not found: {storage_key}")
        with open(local_path, 'rb') as f:
            return f.read()


storage_service = StorageService()
