import logging
from typing import Optional
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.config import Settings, settings
from app.database import async_session_maker
from app.services.storage.blob_store import BlobStore
from app.services.storage.external_cdn import ExternalCdnClient
from app.services.storage.reassembly import ChunkReassembler
from app.services.submission.intake_service import SubmissionIntakeService

logger = logging.getLogger(__name__)

class Services:
    def __init__(self):
        self.blob_store: Optional[BlobStore] = None
        self.reassembler: Optional[ChunkReassembler] = None
        self.cdn: Optional[ExternalCdnClient] = None
        self.intake_service: Optional[SubmissionIntakeService] = None

services = Services()

def init_services(
    config: Settings = settings,
    session_maker: async_sessionmaker = async_session_maker
) -> Services:
    """Wire the storage and intake services"""
    logger.info("Initializing BlobStore...")
    services.blob_store = BlobStore(
        session_maker,
        bucket=config.BLOB_BUCKET,
        chunk_size=config.BLOB_CHUNK_SIZE,
        write_timeout=config.BLOB_WRITE_TIMEOUT,
        emergency_write_timeout=config.BLOB_EMERGENCY_WRITE_TIMEOUT,
        connect_retries=config.STORE_CONNECT_RETRIES,
        connect_backoff=config.STORE_CONNECT_BACKOFF
    )
    services.reassembler = ChunkReassembler(services.blob_store)
    services.cdn = ExternalCdnClient(config)
    if not services.cdn.configured:
        logger.warning("External CDN is not configured; /upload-pdf/buffer will answer 503")

    services.intake_service = SubmissionIntakeService(
        config,
        services.blob_store,
        services.reassembler,
        services.cdn,
        session_maker
    )
    logger.info("Services initialized successfully")
    return services

async def get_services() -> Services:
    return services

async def get_blob_store() -> BlobStore:
    if services.blob_store is None:
        raise RuntimeError("Services not initialized")
    return services.blob_store

async def get_intake_service() -> SubmissionIntakeService:
    if services.intake_service is None:
        raise RuntimeError("Services not initialized")
    return services.intake_service
