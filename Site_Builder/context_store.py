"""
In-memory session store for Site Builder
Holds one WebsiteContext per session id, plus the export/import format
"""

import asyncio
import json
import logging
import os
import weakref
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from .state import (
    GenerationResult, HistoryEntry, SessionInfo, SessionSnapshot, WebsiteContext
)

logger = logging.getLogger(__name__)

HISTORY_LIMIT = int(os.getenv("HISTORY_LIMIT", "10"))


class SnapshotFormatError(ValueError):
    """A session snapshot or client context that is not JSON or has the wrong shape."""


def _load_json_document(data: Union[str, bytes, bytearray, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(data, (bytes, bytearray)):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SnapshotFormatError("Invalid session file format") from e
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise SnapshotFormatError("Invalid session file format") from e
    if not isinstance(data, dict):
        raise SnapshotFormatError("Invalid session file format")
    return data


class ContextStore:
    """
    Owns the WebsiteContext of every session in this process.

    Construct one per process and pass it to whatever needs it. Requests for
    the same session are serialized through ``lock(session_id)``; the store
    itself does no locking.
    """

    def __init__(self, history_limit: int = HISTORY_LIMIT):
        self.history_limit = history_limit
        self._contexts: Dict[str, WebsiteContext] = {}
        # An entry disappears once no request holds or waits on its lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._contexts

    def __len__(self) -> int:
        return len(self._contexts)

    def session_ids(self) -> List[str]:
        return list(self._contexts)

    def get(self, session_id: str) -> Optional[WebsiteContext]:
        return self._contexts.get(session_id)

    def get_or_create(self, session_id: str) -> WebsiteContext:
        context = self._contexts.get(session_id)
        if context is None:
            context = WebsiteContext()
            self._contexts[session_id] = context
        return context

    def lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    @staticmethod
    def parse_context(data: Union[WebsiteContext, Dict[str, Any]]) -> WebsiteContext:
        """Validate a client-sent context without touching any session."""
        if isinstance(data, WebsiteContext):
            return data
        try:
            return WebsiteContext.model_validate(data)
        except ValidationError as e:
            raise SnapshotFormatError(f"Invalid session context: {e.error_count()} validation error(s)") from e

    def seed(self, session_id: str, context: Union[WebsiteContext, Dict[str, Any]]) -> WebsiteContext:
        """Adopt a context sent by the client for a session this process doesn't know."""
        context = self.parse_context(context)
        context.history = context.history[-self.history_limit:]
        self._contexts[session_id] = context
        logger.info("📥 Seeded session %s from client context (%d history entries)", session_id, len(context.history))
        return context

    def commit(self, session_id: str, prompt: str, result: GenerationResult) -> WebsiteContext:
        context = self.get_or_create(session_id)
        context.current_files = result.files.model_copy()
        if result.metadata is not None:
            if result.metadata.website_type:
                context.website_type = result.metadata.website_type
            if result.metadata.features is not None:
                context.features = list(result.metadata.features)
            if result.metadata.dependencies is not None:
                context.dependencies = list(result.metadata.dependencies)
        context.history.append(HistoryEntry(
            prompt=prompt,
            action=result.action,
            timestamp=datetime.now(),
            changes=list(result.changes),
        ))
        context.history = context.history[-self.history_limit:]
        logger.info("✅ Context updated for session %s (%d history entries)", session_id, len(context.history))
        return context

    def reset(self, session_id: str) -> WebsiteContext:
        context = WebsiteContext()
        self._contexts[session_id] = context
        logger.info("🔄 Session %s reset", session_id)
        return context

    def session_info(self, session_id: str) -> SessionInfo:
        context = self.get(session_id) or WebsiteContext()
        return SessionInfo(
            website_type=context.website_type,
            features=list(context.features),
            dependencies=list(context.dependencies),
            last_modified=context.history[-1].timestamp if context.history else None,
            total_history=len(context.history),
        )

    def export_snapshot(self, session_id: str) -> Dict[str, Any]:
        context = self.get(session_id) or WebsiteContext()
        snapshot = SessionSnapshot(
            session_id=session_id,
            files=context.current_files,
            session_info=self.session_info(session_id),
            history=context.history,
        )
        return snapshot.to_wire()

    def import_snapshot(self, session_id: str, data: Union[str, bytes, Dict[str, Any]]) -> WebsiteContext:
        """Replace the session's context wholesale. Nothing changes if parsing fails."""
        document = _load_json_document(data)
        if "sessionInfo" not in document and isinstance(document.get("metadata"), dict):
            document = {**document, "sessionInfo": document["metadata"]}
        try:
            snapshot = SessionSnapshot.model_validate(document)
        except ValidationError as e:
            raise SnapshotFormatError(f"Invalid session file format: {e.error_count()} validation error(s)") from e

        info = snapshot.session_info or SessionInfo()
        context = WebsiteContext(
            current_files=snapshot.files,
            history=snapshot.history[-self.history_limit:],
            website_type=info.website_type,
            features=info.features,
            dependencies=info.dependencies,
        )
        self._contexts[session_id] = context
        logger.info("📥 Context imported for session %s", session_id)
        return context
