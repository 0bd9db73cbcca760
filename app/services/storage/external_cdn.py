import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi.concurrency import run_in_threadpool

from app.core.config import Settings
from app.core.errors import StoreUnavailable

logger = logging.getLogger(__name__)

@dataclass
class CdnUploadResult:
    url: str
    ref: str
    bytes: int

def build_object_key(metadata: Dict[str, Any]) -> str:
    exam_id = metadata.get("examId") or "unknown"
    user_id = metadata.get("userId") or "anonymous"
    folder = f"examify_pdfs/{exam_id}" if metadata.get("examId") else "examify_pdfs"
    return f"{folder}/submission_{user_id}_{exam_id}_{int(time.time() * 1000)}.pdf"

class ExternalCdnClient:
    """S3 compatible object storage (R2 / S3) used for direct PDF uploads"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._client = None

    @property
    def configured(self) -> bool:
        return self.settings.CDN_CONFIGURED

    def _get_client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=self.settings.CDN_ENDPOINT,
                aws_access_key_id=self.settings.CDN_ACCESS_KEY,
                aws_secret_access_key=self.settings.CDN_SECRET_KEY,
                region_name=self.settings.CDN_REGION,
            )
        return self._client

    def public_url(self, key: str) -> str:
        if self.settings.CDN_PUBLIC_BASE_URL:
            return f"{self.settings.CDN_PUBLIC_BASE_URL.rstrip('/')}/{key}"
        return f"{self.settings.CDN_ENDPOINT.rstrip('/')}/{self.settings.CDN_BUCKET}/{key}"

    def _put_object(self, key: str, data: bytes, metadata: Dict[str, Any]) -> None:
        tags = ["examify", "submission", "emergency" if metadata.get("isEmergencySubmission") else "normal"]
        context = {
            str(k): str(v).encode("ascii", "ignore").decode()
            for k, v in metadata.items()
            if v is not None and not isinstance(v, (dict, list))
        }
        context["tags"] = ",".join(tags)
        self._get_client().put_object(
            Bucket=self.settings.CDN_BUCKET,
            Key=key,
            Body=data,
            ContentType="application/pdf",
            Metadata=context,
        )

    async def upload(self, data: bytes, filename: str, metadata: Optional[Dict[str, Any]] = None) -> CdnUploadResult:
        if not self.configured:
            raise StoreUnavailable("External CDN is not configured")

        metadata = dict(metadata or {})
        metadata.setdefault("fileName", filename)
        key = build_object_key(metadata)
        logger.info(f"Uploading {len(data)} bytes to external CDN as {key}")
        try:
            await run_in_threadpool(self._put_object, key, data, metadata)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"External CDN upload error: {str(e)}")
            raise StoreUnavailable(f"Error uploading to external CDN: {str(e)}")

        url = self.public_url(key)
        logger.info(f"File uploaded to external CDN: {url}")
        return CdnUploadResult(url=url, ref=key, bytes=len(data))
