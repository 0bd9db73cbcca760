import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from sqlalchemy import select, delete, text
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.errors import NotFound, StoreUnavailable, WriteTimeout
from app.models.blob import StoredBlob, BlobChunk

logger = logging.getLogger(__name__)

SUBMISSIONS_BUCKET = "examSubmissions"
DEFAULT_CHUNK_SIZE = 255 * 1024

@dataclass
class BlobInfo:
    id: str
    filename: str
    length: int
    content_type: Optional[str]
    upload_date: Optional[datetime]
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_model(cls, blob: StoredBlob) -> "BlobInfo":
        return cls(
            id=blob.id,
            filename=blob.filename,
            length=blob.length,
            content_type=blob.content_type,
            upload_date=blob.upload_date,
            metadata=dict(blob.meta or {})
        )

def _json_safe(metadata: Dict[str, Any]) -> Dict[str, Any]:
    safe = {}
    for key, value in metadata.items():
        if isinstance(value, datetime):
            safe[key] = value.isoformat()
        elif isinstance(value, (str, int, float, bool, list, dict)) or value is None:
            safe[key] = value
        else:
            safe[key] = str(value)
    return safe

class BlobStore:
    """
    Append-only binary object store over two tables: one file document per blob
    plus its fixed-size chunk rows. Each write happens in a single transaction so
    an aborted or timed-out write leaves nothing behind.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker,
        bucket: str = SUBMISSIONS_BUCKET,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        write_timeout: float = 30.0,
        emergency_write_timeout: float = 15.0,
        connect_retries: int = 3,
        connect_backoff: float = 1.0
    ):
        self.session_maker = session_maker
        self.bucket = bucket
        self.chunk_size = chunk_size
        self.write_timeout = write_timeout
        self.emergency_write_timeout = emergency_write_timeout
        self.connect_retries = connect_retries
        self.connect_backoff = connect_backoff
        self._ready = False
        self._connect_lock = asyncio.Lock()

    @property
    def ready(self) -> bool:
        return self._ready

    async def _probe(self) -> None:
        async with self.session_maker() as session:
            await session.execute(text("SELECT 1"))

    async def connect(self, retries: Optional[int] = None) -> bool:
        """Probe the database until it answers, backing off between attempts"""
        attempts = self.connect_retries if retries is None else retries
        async with self._connect_lock:
            if self._ready:
                return True
            for attempt in range(1, max(attempts, 1) + 1):
                try:
                    await self._probe()
                    self._ready = True
                    logger.info(f"Binary store '{self.bucket}' ready (attempt {attempt})")
                    return True
                except Exception as e:
                    logger.warning(f"Binary store '{self.bucket}' not ready (attempt {attempt}/{attempts}): {str(e)}")
                    if attempt < attempts:
                        await asyncio.sleep(self.connect_backoff * attempt)
            return False

    async def _ensure_ready(self) -> None:
        if self._ready:
            return
        logger.warning(f"Binary store '{self.bucket}' not initialized, reconnecting...")
        if not await self.connect(retries=1):
            raise StoreUnavailable("Database connection not ready")

    def timeout_for(self, metadata: Optional[Dict[str, Any]]) -> float:
        if metadata and metadata.get("isEmergencySubmission") is True:
            return self.emergency_write_timeout
        return self.write_timeout

    async def put(self, data: bytes, filename: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        """Store bytes under a new blob id, bounded by the write timeout"""
        await self._ensure_ready()
        metadata = dict(metadata or {})
        metadata.setdefault("contentType", "application/pdf")
        metadata["uploadDate"] = datetime.utcnow()

        timeout = self.timeout_for(metadata)
        emergency = metadata.get("isEmergencySubmission") is True
        try:
            return await asyncio.wait_for(self._write(data, filename, metadata), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(f"Blob upload timed out for file: {filename}{' (emergency submission)' if emergency else ''}")
            raise WriteTimeout(
                f"Upload timed out after {timeout:g} seconds{' (emergency submission)' if emergency else ''}"
            )

    async def _write(self, data: bytes, filename: str, metadata: Dict[str, Any]) -> str:
        blob_id = uuid.uuid4().hex
        async with self.session_maker() as session:
            async with session.begin():
                session.add(StoredBlob(
                    id=blob_id,
                    bucket=self.bucket,
                    filename=filename,
                    length=len(data),
                    chunk_size=self.chunk_size,
                    content_type=metadata.get("contentType"),
                    meta=_json_safe(metadata),
                    upload_date=metadata["uploadDate"]
                ))
                await session.flush()
                for n, offset in enumerate(range(0, len(data), self.chunk_size)):
                    session.add(BlobChunk(blob_id=blob_id, n=n, data=data[offset:offset + self.chunk_size]))
                    if n % 16 == 15:
                        await session.flush()
        logger.info(f"File stored in binary store: {blob_id} ({filename}, {len(data)} bytes)")
        return blob_id

    async def info(self, blob_id: str) -> BlobInfo:
        async with self.session_maker() as session:
            blob = await session.get(StoredBlob, blob_id)
            if blob is None or blob.bucket != self.bucket:
                raise NotFound(f"Blob not found: {blob_id}")
            return BlobInfo.from_model(blob)

    async def iter_chunks(self, blob_id: str) -> AsyncIterator[bytes]:
        """Yield the stored chunks of a blob in order"""
        await self.info(blob_id)
        async with self.session_maker() as session:
            result = await session.stream(
                select(BlobChunk.data)
                .where(BlobChunk.blob_id == blob_id)
                .order_by(BlobChunk.n)
            )
            async for row in result:
                yield row[0]

    async def get(self, blob_id: str) -> bytes:
        """Buffer the whole blob into memory"""
        parts = [part async for part in self.iter_chunks(blob_id)]
        return b"".join(parts)

    async def delete(self, blob_id: str) -> bool:
        """Best-effort delete; failures are logged, never raised"""
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    await session.execute(delete(BlobChunk).where(BlobChunk.blob_id == blob_id))
                    result = await session.execute(
                        delete(StoredBlob).where(StoredBlob.id == blob_id, StoredBlob.bucket == self.bucket)
                    )
            if result.rowcount:
                logger.info(f"Blob deleted from binary store: {blob_id}")
                return True
            logger.warning(f"Blob not found for delete: {blob_id}")
            return False
        except Exception as e:
            logger.error(f"Binary store delete error for {blob_id}: {str(e)}")
            return False

    async def find(self, *criteria, limit: Optional[int] = None) -> List[BlobInfo]:
        """Blobs in this bucket matching all criteria, newest first"""
        await self._ensure_ready()
        stmt = (
            select(StoredBlob)
            .where(StoredBlob.bucket == self.bucket, *criteria)
            .order_by(StoredBlob.upload_date.desc())
        )
        if limit:
            stmt = stmt.limit(limit)
        async with self.session_maker() as session:
            result = await session.execute(stmt)
            return [BlobInfo.from_model(blob) for blob in result.scalars().all()]

    async def list_by_metadata(self, metadata_filter: Dict[str, Any]) -> List[BlobInfo]:
        criteria = []
        for key, value in metadata_filter.items():
            if isinstance(value, bool):
                criteria.append(StoredBlob.meta_bool(key) == value)
            elif isinstance(value, int):
                criteria.append(StoredBlob.meta_int(key) == value)
            else:
                criteria.append(StoredBlob.meta_text(key) == str(value))
        return await self.find(*criteria)
