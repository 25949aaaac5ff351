"""
Site Builder Package
AI-assisted website scaffolding: prompt in, HTML/CSS/JS out, per-session context
"""

__version__ = "1.0.0"
__author__ = "Site Builder Team"

# Import main components for easy access
from .state import (
    WebsiteFiles, GenerationMetadata, GenerationResult,
    HistoryEntry, WebsiteContext, SessionInfo, SessionSnapshot
)
from .models import (
    ConfigurationError, UnknownModelError, ModelBackend, TokenManager,
    default_backends, get_backend
)
from .extractor import CodeExtractor, MarkerStreamParser
from .context_store import ContextStore, SnapshotFormatError
from .events import ListEmitter, QueueEmitter, format_sse
from .generator import IntentClassifier, WebsiteGenerator, parse_intent
from .functions import GenerationCancelled
from .preview import build_preview_document

__all__ = [
    'WebsiteFiles', 'GenerationMetadata', 'GenerationResult',
    'HistoryEntry', 'WebsiteContext', 'SessionInfo', 'SessionSnapshot',
    'ConfigurationError', 'UnknownModelError', 'ModelBackend', 'TokenManager',
    'default_backends', 'get_backend',
    'CodeExtractor', 'MarkerStreamParser',
    'ContextStore', 'SnapshotFormatError',
    'ListEmitter', 'QueueEmitter', 'format_sse',
    'IntentClassifier', 'WebsiteGenerator', 'parse_intent',
    'GenerationCancelled', 'build_preview_document'
]
