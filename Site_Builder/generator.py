"""
Context-aware website generation.

IntentClassifier decides between creating a new site and modifying the
current one; WebsiteGenerator runs one request end to end: classify, prompt
the chosen backend, accumulate the stream, extract the files, commit the
session context and publish the outcome through the caller's emitter.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Dict, Optional

from .context_store import ContextStore
from .events import (
    EventEmitter, code_chunk_event, error_event, final_result_event, null_emitter, status_event
)
from .extractor import CodeExtractor, MarkerStreamParser
from .functions import GenerationCancelled, collect_stream
from .models import (
    CLASSIFIER_MODEL, DEFAULT_MODEL, MODEL_TIMEOUT_SECONDS,
    ModelBackend, TokenManager, default_backends, describe_model_error, get_backend
)
from .prompts import (
    create_prompt, file_marker_system_prompt, intent_input_template, intent_prompt, modify_prompt
)
from .state import GenerationResult, WebsiteContext

logger = logging.getLogger(__name__)

STATUS_EVERY_CHUNKS = 25


@dataclass
class Intent:
    action: str
    target: str = "general"
    details: str = ""


def parse_intent(response: str) -> str:
    """One-word answers are taken as given; anything else mentioning "create" is a create."""
    text = (response or "").strip().lower()
    words = re.findall(r"[a-z]+", text)
    if len(words) == 1 and words[0] in ("create", "modify"):
        return words[0]
    return "create" if "create" in text else "modify"


class IntentClassifier:
    def __init__(self, backend: ModelBackend):
        self.backend = backend

    async def classify(self, prompt: str, has_code: bool,
                       cancel_event: Optional[asyncio.Event] = None) -> Intent:
        user_input = intent_input_template.format(has_code="Yes" if has_code else "No", prompt=prompt)
        response = await collect_stream(
            self.backend.generate(intent_prompt, user_input), cancel_event=cancel_event
        )
        action = parse_intent(response)
        logger.info("🧠 Intent classifier answered %r -> %s", response.strip()[:40], action)
        return Intent(action=action, target="general", details=prompt)


class WebsiteGenerator:
    """Runs generation requests against a ContextStore."""

    def __init__(
        self,
        store: ContextStore,
        backends: Optional[Dict[str, ModelBackend]] = None,
        classifier_model: str = CLASSIFIER_MODEL,
        extractor: Optional[CodeExtractor] = None,
        timeout: Optional[float] = MODEL_TIMEOUT_SECONDS,
        token_manager: Optional[TokenManager] = None,
    ):
        self.store = store
        self.backends = backends if backends is not None else default_backends()
        self.classifier_model = classifier_model
        self.extractor = extractor or CodeExtractor()
        self.timeout = timeout
        self.token_manager = token_manager

    def check_model(self, model_choice: str) -> ModelBackend:
        """Fail fast on unknown models or missing credentials, before anything streams."""
        backend = get_backend(self.backends, model_choice)
        backend.ensure_configured()
        get_backend(self.backends, self.classifier_model).ensure_configured()
        return backend

    async def process_request(
        self,
        prompt: str,
        session_id: str,
        model_choice: str = DEFAULT_MODEL,
        emit: EventEmitter = null_emitter,
        cancel_event: Optional[asyncio.Event] = None,
        reset_context: bool = False,
        context: Optional[WebsiteContext] = None,
    ) -> Optional[GenerationResult]:
        """
        Generate or modify the session's website for ``prompt``.

        ``reset_context`` starts the session over; otherwise ``context`` seeds
        a session this process does not know yet. Both are applied under the
        session lock, after any earlier request for the session has finished.

        Returns the result (also when ``success`` is False), or None when the
        request errored or was cancelled. Exactly one ``final_result`` or
        ``error`` event is emitted, except when the surrounding task is
        cancelled: then nothing terminal is emitted and nothing is committed.
        """
        async with self.store.lock(session_id):
            if reset_context:
                self.store.reset(session_id)
            elif context is not None and session_id not in self.store:
                self.store.seed(session_id, context)
            return await self._process(prompt, session_id, model_choice, emit, cancel_event)

    async def _process(self, prompt, session_id, model_choice, emit, cancel_event):
        try:
            emit(status_event("🚀 Processing request with context awareness..."))
            backend = self.check_model(model_choice)
            classifier = IntentClassifier(get_backend(self.backends, self.classifier_model))
            context = self.store.get(session_id) or WebsiteContext()
            previous_files = context.current_files.model_copy()

            intent = await self._bounded(classifier.classify(prompt, context.has_code(), cancel_event))
            emit(status_event(f"🎯 Detected intent: {intent.action}"))

            if intent.action == "create":
                action = "create"
                emit(status_event("🆕 Creating new website..."))
                user_prompt = create_prompt.format(prompt=prompt)
            else:
                action = "modify"
                emit(status_event("✏️ Modifying existing code..."))
                user_prompt = modify_prompt.format(
                    prompt=prompt,
                    current_html=previous_files.html,
                    current_css=previous_files.css,
                    current_js=previous_files.js,
                )

            full_response = await self._bounded(
                self._stream_generation(backend, user_prompt, emit, cancel_event)
            )
            self._record_tokens(user_prompt, full_response)

            emit(status_event("📝 Parsing LLM response..."))
            result = self.extractor.extract(full_response, action, previous_files)

            if result.success:
                emit(status_event("🔄 Updating context..."))
                self.store.commit(session_id, prompt, result)

            emit(final_result_event(result, self.store.session_info(session_id)))
            return result

        except GenerationCancelled as e:
            logger.info("⛔ Generation cancelled for session %s", session_id)
            emit(error_event(str(e)))
            return None
        except Exception as e:
            logger.error("❌ Error processing request for session %s: %s: %s", session_id, type(e).__name__, e)
            emit(error_event(describe_model_error(e)))
            return None

    async def _bounded(self, awaitable):
        if self.timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self.timeout)

    async def _stream_generation(self, backend: ModelBackend, user_prompt: str,
                                 emit: EventEmitter, cancel_event: Optional[asyncio.Event]) -> str:
        marker_parser = MarkerStreamParser()
        chunk_count = 0

        def on_chunk(text_piece: str) -> None:
            nonlocal chunk_count
            chunk_count += 1
            if chunk_count % STATUS_EVERY_CHUNKS == 0:
                emit(status_event("🤖 Generating code..."))
            for file_key, text in marker_parser.feed(text_piece):
                emit(code_chunk_event(file_key, text))

        emit(status_event("🤖 Generating code..."))
        full_response = await collect_stream(
            backend.generate(file_marker_system_prompt, user_prompt),
            on_chunk=on_chunk,
            cancel_event=cancel_event,
        )
        for file_key, text in marker_parser.flush():
            emit(code_chunk_event(file_key, text))
        logger.info("✅ Stream completed: %d chunks, %d file markers", chunk_count, marker_parser.markers_found)
        return full_response

    def _record_tokens(self, user_prompt: str, full_response: str) -> None:
        if self.token_manager is None:
            return
        prompt_tokens = self.token_manager.count_tokens(file_marker_system_prompt + user_prompt)
        response_tokens = self.token_manager.count_tokens(full_response)
        logger.info("📊 Prompt tokens: %d, response tokens: %d", prompt_tokens, response_tokens)
        self.token_manager.add_tokens(prompt_tokens + response_tokens)
