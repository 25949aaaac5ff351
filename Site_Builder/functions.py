"""
Functions module for Site Builder
Stream handling and LLM output cleanup utilities
"""

import json
import asyncio
import logging
from typing import AsyncIterator, Callable, Optional

from openai.types.responses import ResponseTextDeltaEvent

logger = logging.getLogger(__name__)


class GenerationCancelled(Exception):
    """Raised when the caller aborts a generation while tokens are streaming."""


# -------------------
# Utility Functions
# -------------------

def extract_text_from_event(event):
    """Extract clean text content from streaming events"""
    if getattr(event, "type", None) == "raw_response_event":
        data = getattr(event, "data", None)
        if isinstance(data, ResponseTextDeltaEvent):
            return data.delta
        return ""

    if isinstance(event, dict):
        if "delta" in event and isinstance(event["delta"], str):
            return event["delta"]
        if "text" in event and isinstance(event["text"], str):
            return event["text"]

    if isinstance(event, str):
        return event

    for attr in ("delta", "text", "content"):
        if hasattr(event, attr):
            val = getattr(event, attr)
            if isinstance(val, str):
                return val

    return ""


def extract_partial_json(text):
    """Extract partial JSON and identify what's missing"""
    try:
        return json.loads(text), True
    except json.JSONDecodeError:
        text = text.strip()
        if text.endswith(','):
            text = text[:-1]

        open_braces = text.count('{') - text.count('}')
        open_brackets = text.count('[') - text.count(']')

        for _ in range(open_brackets):
            text += ']'
        for _ in range(open_braces):
            text += '}'

        try:
            return json.loads(text), False
        except json.JSONDecodeError:
            return None, False


def clean_ai_output(output):
    """Clean AI output by removing markdown formatting"""
    cleaned = output.strip()
    if cleaned.startswith("json\n"):
        cleaned = cleaned.replace("json\n", "", 1).strip()
    elif cleaned.startswith("```json"):
        cleaned = cleaned.replace("```json", "").replace("```", "").strip()
    elif cleaned.startswith("```"):
        cleaned = cleaned.replace("```", "").strip()
    return cleaned


def strip_code_fence(code: str) -> str:
    """Unwrap a segment that is wholly enclosed in one markdown fence."""
    stripped = code.strip()
    if not stripped.startswith("```") or not stripped.endswith("```") or len(stripped) < 6:
        return stripped
    body = stripped[3:-3]
    first_newline = body.find("\n")
    if first_newline == -1:
        return body.strip()
    label = body[:first_newline].strip()
    if label and " " not in label:
        body = body[first_newline + 1:]
    if "```" in body:
        # More than one fenced block: not a single wrapper, leave it alone
        return stripped
    return body.strip()


def extract_json_from_text(text: str):
    """Best-effort extraction of a JSON object from noisy LLM output.
    Returns: Parsed JSON value
    Raises: ValueError if JSON cannot be parsed after all attempts
    """
    if not isinstance(text, str):
        text = str(text) if text is not None else ""

    stripped = text.strip()
    if stripped.startswith("```json"):
        stripped = stripped[len("```json"):]
    elif stripped.startswith("json"):
        stripped = stripped[len("json"):]
    if stripped.startswith("```"):
        stripped = stripped[len("```"):]
    if stripped.endswith("```"):
        stripped = stripped[:-3]

    start = stripped.find('{')
    end = stripped.rfind('}')

    if start != -1 and end != -1 and end > start:
        candidate = stripped[start:end + 1]
    else:
        candidate = stripped

    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.debug("JSON parse failed (first attempt): %s", e)

    # Truncated output: close what the model left open
    if candidate.count('{') > candidate.count('}'):
        missing_braces = candidate.count('{') - candidate.count('}')
        completed = candidate + '}' * missing_braces
        lines = completed.split('\n')
        for i, line in enumerate(lines):
            if '"' in line and line.count('"') % 2 != 0:
                lines[i] = line + '"'
        completed = '\n'.join(lines)
        try:
            return json.loads(completed)
        except json.JSONDecodeError as e:
            logger.debug("JSON parse failed (completion attempt): %s", e)

    try:
        return json.loads(clean_ai_output(stripped))
    except json.JSONDecodeError as e:
        logger.debug("JSON parse failed (cleaned attempt): %s", e)

    partial, _ = extract_partial_json(candidate)
    if partial is not None:
        return partial

    raise ValueError(f"All JSON parsing attempts failed. Original text preview: {text[:200]}...")


_END_OF_STREAM = object()


async def _next_piece(iterator):
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return _END_OF_STREAM


async def _next_piece_or_cancel(iterator, cancel_event: asyncio.Event):
    """Wait for the next chunk, giving up as soon as ``cancel_event`` is set."""
    if cancel_event.is_set():
        raise GenerationCancelled("Generation was cancelled.")

    next_piece = asyncio.ensure_future(_next_piece(iterator))
    cancel_wait = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({next_piece, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        # Also reached when the calling task itself is cancelled
        pending = {waiter for waiter in (next_piece, cancel_wait) if not waiter.done()}
        for waiter in pending:
            waiter.cancel()
        if pending:
            await asyncio.wait(pending)

    if cancel_wait.done() and not cancel_wait.cancelled():
        raise GenerationCancelled("Generation was cancelled.")
    return next_piece.result()


async def collect_stream(
    chunks: AsyncIterator[str],
    on_chunk: Optional[Callable[[str], None]] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> str:
    """Concatenate streamed chunks in arrival order.

    ``on_chunk`` sees every non-empty piece before it is appended. Setting
    ``cancel_event`` stops the wait for the next chunk right away, closes the
    stream and raises GenerationCancelled.
    """
    iterator = chunks.__aiter__()
    pieces = []
    try:
        while True:
            if cancel_event is None:
                text_piece = await _next_piece(iterator)
            else:
                text_piece = await _next_piece_or_cancel(iterator, cancel_event)
            if text_piece is _END_OF_STREAM:
                break
            if not text_piece:
                continue
            if on_chunk is not None:
                on_chunk(text_piece)
            pieces.append(text_piece)
        if cancel_event is not None and cancel_event.is_set():
            raise GenerationCancelled("Generation was cancelled.")
    finally:
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()
    return "".join(pieces)
