from datetime import datetime, timedelta
from typing import Dict, Optional

class MemorySessionStore:
    """Process-local sessions; fine for a single worker and for tests"""

    def __init__(self, expire_hours: int = 24):
        self._sessions: Dict[str, dict] = {}
        self._expiry: Dict[str, datetime] = {}
        self.expire_time = timedelta(hours=expire_hours)

    async def create_session(self, session_id: str, data: dict) -> None:
        self._sessions[session_id] = data
        self._expiry[session_id] = datetime.now() + self.expire_time

    async def get_session(self, session_id: str) -> Optional[dict]:
        if session_id not in self._sessions:
            return None

        if datetime.now() > self._expiry[session_id]:
            await self.delete_session(session_id)
            return None

        # sliding expiry, same as the redis store
        self._expiry[session_id] = datetime.now() + self.expire_time
        return self._sessions[session_id]

    async def delete_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._expiry.pop(session_id, None)

    async def cleanup(self) -> None:
        self._sessions.clear()
        self._expiry.clear()
