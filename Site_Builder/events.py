"""
Stream events published by the generator.

An event is a plain dict with a ``type`` key:

    {"type": "status", "message": str}
    {"type": "code_chunk", "file": "html" | "css" | "js", "chunk": str}
    {"type": "final_result", "data": {"result": {...}, "sessionInfo": {...}}}
    {"type": "error", "message": str}

Exactly one ``final_result`` or ``error`` ends a request.
"""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

from .state import GenerationResult, SessionInfo

StreamEvent = Dict[str, Any]
EventEmitter = Callable[[StreamEvent], None]

TERMINAL_EVENT_TYPES = ("final_result", "error")


def status_event(message: str) -> StreamEvent:
    return {"type": "status", "message": message}


def code_chunk_event(file_key: str, chunk: str) -> StreamEvent:
    return {"type": "code_chunk", "file": file_key, "chunk": chunk}


def final_result_event(result: GenerationResult, session_info: SessionInfo) -> StreamEvent:
    return {
        "type": "final_result",
        "data": {"result": result.to_wire(), "sessionInfo": session_info.to_wire()},
    }


def error_event(message: str) -> StreamEvent:
    return {"type": "error", "message": message}


def is_terminal(event: StreamEvent) -> bool:
    return event.get("type") in TERMINAL_EVENT_TYPES


def format_sse(event: StreamEvent) -> str:
    """Format a Server-Sent Event string."""
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"


def null_emitter(event: StreamEvent) -> None:
    pass


class ListEmitter:
    """Collects every event in order."""

    def __init__(self):
        self.events: List[StreamEvent] = []

    def __call__(self, event: StreamEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> List[StreamEvent]:
        return [event for event in self.events if event["type"] == event_type]

    @property
    def terminal(self) -> Optional[StreamEvent]:
        terminal = [event for event in self.events if is_terminal(event)]
        return terminal[-1] if terminal else None


class QueueEmitter:
    """
    Hands events to an asyncio.Queue drained by the HTTP response.

    ``put_nowait`` keeps emit fire-and-forget; the queue is unbounded so the
    generator never waits on a slow client.
    """

    def __init__(self, queue: Optional[asyncio.Queue] = None):
        self.queue = queue if queue is not None else asyncio.Queue()

    def __call__(self, event: StreamEvent) -> None:
        self.queue.put_nowait(event)

    async def get(self) -> StreamEvent:
        return await self.queue.get()
