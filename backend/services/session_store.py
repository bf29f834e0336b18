import asyncio
import copy
import logging
import os
from typing import Any, Dict, Optional

from models.game import Session
from config import settings

logger = logging.getLogger(__name__)


class SessionStore:
    """Persists one session blob per room."""

    async def load(self, room_id: str) -> Optional[Session]:
        raise NotImplementedError

    async def save(self, room_id: str, session: Session) -> None:
        raise NotImplementedError

    async def delete(self, room_id: str) -> None:
        raise NotImplementedError


class MemorySessionStore(SessionStore):
    """Process-local store. Blobs are stored in wire form so a load never aliases a live session."""

    def __init__(self):
        self._blobs: Dict[str, Dict[str, Any]] = {}

    async def load(self, room_id: str) -> Optional[Session]:
        blob = self._blobs.get(room_id)
        if blob is None:
            return None
        return Session.model_validate(copy.deepcopy(blob))

    async def save(self, room_id: str, session: Session) -> None:
        self._blobs[room_id] = session.to_storage()

    async def delete(self, room_id: str) -> None:
        self._blobs.pop(room_id, None)

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._blobs


class FirestoreSessionStore(SessionStore):
    """
    Async-friendly Firestore wrapper using run_in_executor to avoid
    blocking the event loop. One document per room.
    """

    def __init__(self, collection: Optional[str] = None):
        if settings.firestore_emulator_host:
            os.environ["FIRESTORE_EMULATOR_HOST"] = settings.firestore_emulator_host
        # Lazy import so the memory backend never needs GCP libraries loaded
        from google.cloud import firestore
        self.db = firestore.Client(project=settings.google_cloud_project or None)
        self.collection = collection or settings.firestore_collection

    def _run(self, fn):
        """Run a sync Firestore call in the default thread pool."""
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(None, fn)

    def _room_ref(self, room_id: str):
        return self.db.collection(self.collection).document(room_id)

    async def load(self, room_id: str) -> Optional[Session]:
        doc = await self._run(lambda: self._room_ref(room_id).get())
        if doc.exists:
            return Session.model_validate(doc.to_dict())
        return None

    async def save(self, room_id: str, session: Session) -> None:
        data = session.to_storage()
        await self._run(lambda: self._room_ref(room_id).set(data))

    async def delete(self, room_id: str) -> None:
        await self._run(lambda: self._room_ref(room_id).delete())


_session_store: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    """Lazy singleton, initialised on first call, not at import time.
    This prevents credential errors from crashing the app before FastAPI boots.
    """
    global _session_store
    if _session_store is None:
        if settings.session_backend == "firestore":
            _session_store = FirestoreSessionStore()
        else:
            _session_store = MemorySessionStore()
        logger.info("Session store: %s", type(_session_store).__name__)
    return _session_store


def set_session_store(store: Optional[SessionStore]) -> None:
    """Swap the store (tests, alternative backends). None resets to settings on next use."""
    global _session_store
    _session_store = store
