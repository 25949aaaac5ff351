import asyncio
import json
import logging
import os
from typing import AsyncIterator, Dict, Optional

import openai
import tiktoken
from dotenv import load_dotenv, find_dotenv
from openai import AsyncOpenAI
from agents import Agent, OpenAIChatCompletionsModel, ModelSettings, Runner, set_tracing_disabled

from .functions import extract_text_from_event

logger = logging.getLogger(__name__)

# Load environment variables
_ = load_dotenv(find_dotenv())

GROQ_BASE_URL = os.getenv("GROQ_BASE_URL", "https://api.groq.com/openai/v1")
GEMINI_BASE_URL = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/openai/")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
DEFAULT_MODEL = os.getenv("DEFAULT_MODEL", "gemini")
CLASSIFIER_MODEL = os.getenv("CLASSIFIER_MODEL", "groq")
MODEL_TEMPERATURE = float(os.getenv("MODEL_TEMPERATURE", "0.2"))
MODEL_TIMEOUT_SECONDS = float(os.getenv("MODEL_TIMEOUT_SECONDS", "120"))

# Traces would be exported to OpenAI, which none of the providers here are
set_tracing_disabled(True)


class ConfigurationError(RuntimeError):
    """Missing credentials or an unknown model id. Raised before any model call."""


class UnknownModelError(ConfigurationError):
    """The requested model id has no registered backend."""


class TokenManager:
    """Token counting for prompt and response size logging"""

    def __init__(self, encoding_name="cl100k_base"):
        self.tokens_used = 0
        self.encoding_name = encoding_name
        self._tokenizer = None

    @property
    def tokenizer(self):
        # tiktoken fetches the encoding on first use
        if self._tokenizer is None:
            self._tokenizer = tiktoken.get_encoding(self.encoding_name)
        return self._tokenizer

    def count_tokens(self, text):
        """Count tokens in text"""
        try:
            if text is None:
                return 0
            if isinstance(text, dict):
                text = json.dumps(text)
            return len(self.tokenizer.encode(str(text)))
        except Exception:
            return max(1, len(str(text)) // 4)

    def add_tokens(self, tokens):
        """Add tokens to usage counter"""
        self.tokens_used += tokens
        logger.info("📊 Tokens used this process: %d", self.tokens_used)


class ModelBackend:
    """
    One LLM provider reached through its OpenAI-compatible endpoint.

    Satisfies the capability every backend must offer:
    ``generate(system_prompt, user_prompt)`` -> async iterator of text chunks.
    """

    def __init__(self, name: str, model: str, base_url: str, api_key_env: str,
                 temperature: float = MODEL_TEMPERATURE, api_key: Optional[str] = None):
        self.name = name
        self.model = model
        self.base_url = base_url
        self.api_key_env = api_key_env
        self.temperature = temperature
        self._api_key = api_key
        self._llm_model: Optional[OpenAIChatCompletionsModel] = None

    @property
    def api_key(self) -> Optional[str]:
        return self._api_key or os.getenv(self.api_key_env)

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def ensure_configured(self) -> None:
        if not self.is_configured():
            raise ConfigurationError(
                f"{self.api_key_env} environment variable is required for the '{self.name}' model"
            )

    def _get_llm_model(self) -> OpenAIChatCompletionsModel:
        if self._llm_model is None:
            external_client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
            self._llm_model = OpenAIChatCompletionsModel(model=self.model, openai_client=external_client)
        return self._llm_model

    async def generate(self, system_prompt: str, user_prompt: str) -> AsyncIterator[str]:
        self.ensure_configured()
        agent = Agent(
            name=f"{self.name}-generator",
            instructions=system_prompt,
            model=self._get_llm_model(),
            model_settings=ModelSettings(temperature=self.temperature),
        )
        logger.info("🚀 Running %s (%s)...", agent.name, self.model)
        stream_result = Runner.run_streamed(agent, input=user_prompt)
        async for event in stream_result.stream_events():
            text_piece = extract_text_from_event(event)
            if text_piece:
                yield text_piece

    def __repr__(self) -> str:
        return f"ModelBackend(name={self.name!r}, model={self.model!r})"


def default_backends() -> Dict[str, ModelBackend]:
    """Model id -> backend. Adding a provider means adding one entry here."""
    return {
        "gemini": ModelBackend("gemini", GEMINI_MODEL, GEMINI_BASE_URL, "GEMINI_API_KEY"),
        "groq": ModelBackend("groq", GROQ_MODEL, GROQ_BASE_URL, "GROQ_API_KEY"),
    }


def get_backend(backends: Dict[str, ModelBackend], name: str) -> ModelBackend:
    backend = backends.get((name or "").lower())
    if backend is None:
        raise UnknownModelError(
            f"Unknown model '{name}'. Available models: {', '.join(sorted(backends))}"
        )
    return backend


def describe_model_error(error: BaseException) -> str:
    """Readable message for a failed model call; never a stack trace."""
    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return "The AI service did not respond in time. Please try again."
    if isinstance(error, openai.APIStatusError):
        status = error.status_code
        if status == 429:
            return "Rate limit exceeded. Please wait a moment and try again."
        if status == 401:
            return "Invalid API key. Please check your configuration."
        if status == 503:
            return "AI service is temporarily unavailable. Please try again in a few minutes."
        return f"AI service error: {error.message or 'Unknown error'}"
    if isinstance(error, openai.APIConnectionError):
        return "Could not reach the AI service. Please check your connection and try again."
    return str(error) or type(error).__name__
