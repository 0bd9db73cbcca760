import aiofiles
import json
import os
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

class LocalRecoveryStore:
    """
    Last-resort local copy of a submission that no endpoint accepted.
    Every record is flagged for manual recovery.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    async def save(self, exam_id: Optional[str], payload: Dict[str, Any]) -> str:
        os.makedirs(self.directory, exist_ok=True)

        saved_at = datetime.utcnow()
        record = {
            **payload,
            "examId": exam_id,
            "savedAt": saved_at.isoformat(),
            "needsManualRecovery": True
        }
        filename = f"emergency-exam-{exam_id or 'unknown'}-{int(saved_at.timestamp() * 1000)}.json"
        file_path = self.directory / filename

        async with aiofiles.open(file_path, 'w', encoding='utf-8') as f:
            await f.write(json.dumps(record, default=str))

        logger.warning(f"Submission saved locally for manual recovery: {file_path}")
        return str(file_path)

    async def load(self, file_path: Union[str, Path]) -> Dict[str, Any]:
        async with aiofiles.open(file_path, 'r', encoding='utf-8') as f:
            return json.loads(await f.read())

    async def pending(self) -> List[Dict[str, Any]]:
        """Records still waiting for manual recovery, oldest first"""
        if not self.directory.exists():
            return []
        records = []
        for path in sorted(self.directory.glob("emergency-exam-*.json"), key=lambda p: p.stat().st_mtime):
            try:
                records.append(await self.load(path))
            except (OSError, ValueError) as e:
                logger.error(f"Unreadable recovery record {path}: {str(e)}")
        return records

    async def delete(self, file_path: Union[str, Path]) -> bool:
        try:
            if os.path.exists(file_path):
                os.remove(file_path)
                logger.info(f"Recovery record deleted: {file_path}")
                return True
            logger.warning(f"Recovery record not found: {file_path}")
            return False
        except OSError as e:
            logger.error(f"Error deleting recovery record: {str(e)}")
            return False
