import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from app.core.errors import ReassemblyImpossible, ValidationError
from app.services.storage.blob_store import BlobStore

logger = logging.getLogger(__name__)

@dataclass
class ReassemblyResult:
    blob_id: str
    filename: str
    byte_size: int
    chunks_used: int

class ChunkReassembler:
    """Concatenates stored chunk blobs into one logical blob."""

    def __init__(self, store: BlobStore):
        self.store = store

    async def reassemble(
        self,
        chunk_ids: Sequence[str],
        final_name: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> ReassemblyResult:
        if not chunk_ids:
            raise ValidationError("No chunk IDs provided for reassembly")

        logger.info(f"Starting reassembly of {len(chunk_ids)} chunks into {final_name}")

        buffers: List[bytes] = []
        for chunk_id in chunk_ids:
            try:
                chunk = await self.store.get(chunk_id)
                buffers.append(chunk)
                logger.info(f"Retrieved chunk {chunk_id}, size: {len(chunk)} bytes")
            except Exception as e:
                # keep going with whatever chunks are retrievable
                logger.error(f"Error retrieving chunk {chunk_id}: {str(e)}")

        if not buffers:
            raise ReassemblyImpossible()

        combined = b"".join(buffers)
        logger.info(f"Reassembled {len(buffers)} chunks into a {len(combined)} byte buffer")

        blob_id = await self.store.put(
            combined,
            final_name,
            {
                **(metadata or {}),
                "isReassembled": True,
                "originalChunkCount": len(chunk_ids),
                "reassembledAt": datetime.utcnow()
            }
        )
        return ReassemblyResult(
            blob_id=blob_id,
            filename=final_name,
            byte_size=len(combined),
            chunks_used=len(buffers)
        )
