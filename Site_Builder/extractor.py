"""
Code extraction from LLM responses.

A finished response is run through an ordered chain of strategies. Each one
returns what it could find (possibly nothing); the extractor keeps the first
value found for every file and only asks later strategies for what is still
missing:

    markers -> embedded JSON -> fenced blocks -> tag/statement heuristics

Whatever is still missing afterwards is taken from the previous files
(modify) or left empty (create). ``CodeExtractor.extract`` never
raises.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .functions import extract_json_from_text, strip_code_fence
from .state import FILE_KEYS, GenerationMetadata, GenerationResult, WebsiteFiles

logger = logging.getLogger(__name__)


MARKER_PATTERN = re.compile(r"\[--FILE:(.*?)--\]")
MARKER_FILE_KEYS = {"index.html": "html", "styles.css": "css", "index.js": "js"}

EMPTY_CREATE_EXPLANATION = (
    "The AI responded, but I couldn't extract any valid code from its response. "
    "Please try a more specific prompt."
)


def normalize_marker_name(raw_name: str) -> Optional[str]:
    """Map a marker file name onto index.html / styles.css / index.js."""
    name = raw_name.strip()
    if name in MARKER_FILE_KEYS:
        return name
    if "script" in name or "js" in name:
        return "index.js"
    if "style" in name or "css" in name:
        return "styles.css"
    if "html" in name:
        return "index.html"
    return None


def marker_file_key(raw_name: str) -> Optional[str]:
    mapped = normalize_marker_name(raw_name)
    return MARKER_FILE_KEYS.get(mapped) if mapped else None


def clean_code(raw_code) -> str:
    if not raw_code or not isinstance(raw_code, str):
        return ""
    return strip_code_fence(raw_code)


TRAILING_OBJECT_START = re.compile(r"^[ \t]*\{", re.MULTILINE)


def _is_files_object(candidate: str) -> bool:
    try:
        parsed = extract_json_from_text(candidate)
    except ValueError:
        return False
    return isinstance(parsed, dict) and isinstance(parsed.get("files"), dict)


def _trailing_json_start(text: str, start: int) -> int:
    """Where a trailing {..., "files": {...}} object begins after the last marker, else len(text)."""
    if not text.rstrip().endswith("}"):
        return len(text)
    for match in TRAILING_OBJECT_START.finditer(text, start):
        if _is_files_object(text[match.start():]):
            return match.start()
    return len(text)


@dataclass
class ParsedResponse:
    """Partial parse: only files that were actually found are present."""
    files: Dict[str, str] = field(default_factory=dict)
    changes: Optional[List[str]] = None
    explanation: Optional[str] = None
    metadata: Optional[GenerationMetadata] = None

    def missing(self) -> List[str]:
        return [key for key in FILE_KEYS if not self.files.get(key)]


class ExtractionStrategy:
    name = "strategy"

    def extract(self, text: str) -> Optional[ParsedResponse]:
        raise NotImplementedError


class MarkerStrategy(ExtractionStrategy):
    """``[--FILE:index.html--]`` style delimiters."""
    name = "markers"

    def extract(self, text: str) -> Optional[ParsedResponse]:
        matches = list(MARKER_PATTERN.finditer(text))
        if not matches:
            return None

        segments: Dict[str, List[str]] = {}
        for index, match in enumerate(matches):
            if index + 1 < len(matches):
                end = matches[index + 1].start()
            else:
                end = _trailing_json_start(text, match.end())
            key = marker_file_key(match.group(1))
            if key is None:
                logger.debug("Ignoring unknown file marker %r", match.group(1))
                continue
            segments.setdefault(key, []).append(text[match.end():end])

        files = {}
        for key, parts in segments.items():
            content = clean_code("\n".join(part.strip() for part in parts))
            if content:
                files[key] = content
        return ParsedResponse(files=files) if files else None


class JsonStrategy(ExtractionStrategy):
    """A ``{summary?, changes, explanation, files: {html, css, js}}`` object."""
    name = "json"

    def extract(self, text: str) -> Optional[ParsedResponse]:
        start = text.find("{")
        if start == -1 or text.rfind("}") < start:
            return None
        try:
            parsed = extract_json_from_text(text)
        except ValueError:
            logger.debug("Embedded JSON could not be parsed, falling back to regex parsing")
            return None
        if not isinstance(parsed, dict) or not isinstance(parsed.get("files"), dict):
            return None

        files = {}
        for key in FILE_KEYS:
            content = clean_code(parsed["files"].get(key))
            if content:
                files[key] = content

        changes = parsed.get("changes")
        if isinstance(changes, list):
            changes = [str(change) for change in changes if change]
        elif isinstance(changes, str) and changes:
            changes = [changes]
        else:
            changes = None

        explanation = parsed.get("explanation")
        if not isinstance(explanation, str) or not explanation.strip():
            explanation = None

        return ParsedResponse(
            files=files,
            changes=changes or None,
            explanation=explanation.strip() if explanation else None,
            metadata=self._metadata(parsed.get("summary")),
        )

    @staticmethod
    def _metadata(summary) -> Optional[GenerationMetadata]:
        if not isinstance(summary, dict):
            return None

        def _strings(value):
            if not isinstance(value, list):
                return None
            return [str(item) for item in value]

        website_type = summary.get("type")
        return GenerationMetadata(
            website_type=str(website_type) if website_type else None,
            features=_strings(summary.get("features")),
            dependencies=_strings(summary.get("dependencies")),
        )


FENCE_PATTERN = re.compile(r"```[ \t]*([A-Za-z0-9_+#-]*)[^\n]*\n(.*?)```", re.DOTALL)
FENCE_LABELS = {
    "html": "html",
    "htm": "html",
    "css": "css",
    "javascript": "js",
    "js": "js",
}

HTML_DOCUMENT = re.compile(r"<!DOCTYPE html.*?</html\s*>", re.IGNORECASE | re.DOTALL)
HTML_ELEMENT = re.compile(r"<html[\s>].*?</html\s*>", re.IGNORECASE | re.DOTALL)
STYLE_TAG = re.compile(r"<style[^>]*>(.*?)</style\s*>", re.IGNORECASE | re.DOTALL)
SCRIPT_TAG = re.compile(r"<script(?![^>]*\bsrc\s*=)[^>]*>(.*?)</script\s*>", re.IGNORECASE | re.DOTALL)
CSS_RULE = re.compile(r"^[ \t]*([^{};\n]+?)[ \t]*\{([^{}]*)\}", re.MULTILINE)
CSS_DECLARATION = re.compile(r"[\w-]+\s*:\s*[^;{}]+")
JS_SELECTOR_START = re.compile(
    r"^(?:function|const|let|var|if|else|for|while|switch|return|class|async|try|catch|do|new)\b"
)
JS_BODY_HINTS = ("return ", "console.", "=>", "document.", "window.", " = ", "();")
JS_STATEMENT = re.compile(
    r"^\s*(?:(?:async\s+)?function\s*\*?\s*[\w$]*\s*\("
    r"|(?:const|let|var)\s+[\w$\[{][^=]*="
    r"|(?:document|window)\.[\w$]+)"
)


def _looks_like_html(code: str) -> bool:
    head = code.lstrip()[:200].lower()
    return head.startswith("<!doctype") or head.startswith("<html") or head.startswith("<")


def _css_rules(text: str) -> str:
    rules = []
    for match in CSS_RULE.finditer(text):
        selector, body = match.group(1).strip(), match.group(2)
        if not selector or JS_SELECTOR_START.search(selector) or "=>" in selector:
            continue
        if "(" in selector and not (selector.startswith("@") or ":" in selector):
            continue
        if not CSS_DECLARATION.search(body) or any(hint in body for hint in JS_BODY_HINTS):
            continue
        rules.append(match.group(0).strip())
    return "\n\n".join(rules)


def _looks_like_code_line(line: str) -> bool:
    stripped = line.strip()
    return (
        bool(JS_STATEMENT.match(line))
        or stripped.startswith(("//", "}", ")", "/*", "*"))
        or stripped.endswith((";", "{", "}", ",", "(", ")"))
    )


def _js_statements(text: str) -> str:
    lines = text.splitlines()
    start = next((i for i, line in enumerate(lines) if JS_STATEMENT.match(line)), None)
    if start is None:
        return ""

    depth = 0
    last_code = start
    for index in range(start, len(lines)):
        line = lines[index]
        if not line.strip():
            continue
        if depth <= 0 and index != start and not _looks_like_code_line(line):
            break
        depth += line.count("{") - line.count("}")
        last_code = index
    return "\n".join(lines[start:last_code + 1]).strip()


def _classify_unlabeled(code: str) -> Optional[str]:
    if _looks_like_html(code):
        return "html"
    if JS_STATEMENT.search(code) or "=>" in code:
        return "js"
    if _css_rules(code):
        return "css"
    return None


class FencedBlockStrategy(ExtractionStrategy):
    """Markdown code fences labeled html / css / javascript."""
    name = "fenced"

    def extract(self, text: str) -> Optional[ParsedResponse]:
        files: Dict[str, str] = {}
        for match in FENCE_PATTERN.finditer(text):
            label, code = match.group(1).lower(), match.group(2).strip()
            if not code:
                continue
            key = FENCE_LABELS.get(label) if label else _classify_unlabeled(code)
            if key and key not in files:
                files[key] = code
        return ParsedResponse(files=files) if files else None


class HeuristicStrategy(ExtractionStrategy):
    """Bare code: a full HTML document, style/script tags, CSS rules, JS statements."""
    name = "heuristic"

    def extract(self, text: str) -> Optional[ParsedResponse]:
        files: Dict[str, str] = {}
        remainder = text

        document = HTML_DOCUMENT.search(text) or HTML_ELEMENT.search(text)
        if document:
            files["html"] = document.group(0).strip()
            remainder = text[:document.start()] + "\n" + text[document.end():]

        styles = [block.strip() for block in STYLE_TAG.findall(text) if block.strip()]
        if styles:
            files["css"] = "\n\n".join(styles)
        else:
            css = _css_rules(SCRIPT_TAG.sub("", remainder))
            if css:
                files["css"] = css

        scripts = [block.strip() for block in SCRIPT_TAG.findall(text) if block.strip()]
        if scripts:
            files["js"] = "\n\n".join(scripts)
        else:
            without_css = CSS_RULE.sub(
                lambda match: "" if _css_rules(match.group(0)) else match.group(0), remainder
            )
            js = _js_statements(STYLE_TAG.sub("", without_css))
            if js:
                files["js"] = js

        files = {key: value for key, value in files.items() if value}
        return ParsedResponse(files=files) if files else None


def default_strategies() -> List[ExtractionStrategy]:
    return [MarkerStrategy(), JsonStrategy(), FencedBlockStrategy(), HeuristicStrategy()]


class CodeExtractor:
    """Turns one completed LLM response into a GenerationResult."""

    def __init__(self, strategies: Optional[Iterable[ExtractionStrategy]] = None):
        self.strategies = list(strategies) if strategies is not None else default_strategies()

    def parse(self, text: str) -> ParsedResponse:
        merged = ParsedResponse()
        for strategy in self.strategies:
            if not merged.missing():
                break
            try:
                partial = strategy.extract(text)
            except Exception as e:
                logger.warning("⚠️ %s extraction failed: %s", strategy.name, e)
                continue
            if partial is None:
                continue

            found = [key for key in merged.missing() if partial.files.get(key)]
            for key in found:
                merged.files[key] = partial.files[key].strip()
            if found:
                logger.debug("%s strategy supplied %s", strategy.name, ", ".join(found))
            if merged.changes is None and partial.changes:
                merged.changes = partial.changes
            if merged.explanation is None and partial.explanation:
                merged.explanation = partial.explanation
            if merged.metadata is None and partial.metadata is not None:
                merged.metadata = partial.metadata
        return merged

    def extract(self, text: str, action: str, previous_files: Optional[WebsiteFiles] = None) -> GenerationResult:
        logger.info("📝 Parsing LLM response (%d characters)...", len(text or ""))
        logger.debug("--- RAW LLM RESPONSE START ---\n%s\n--- RAW LLM RESPONSE END ---", text)

        parsed = self.parse(text or "")
        files = dict(parsed.files)
        changes = parsed.changes
        explanation = parsed.explanation

        if action == "create":
            if not files:
                logger.warning("⚠️ No code could be extracted for a create request. Treating as failure.")
                return GenerationResult(
                    action=action,
                    files=WebsiteFiles(),
                    changes=["Failed to generate code."],
                    explanation=EMPTY_CREATE_EXPLANATION,
                    success=False,
                )
            for key in FILE_KEYS:
                files.setdefault(key, "")
        else:
            previous = previous_files or WebsiteFiles()
            preserved = [key for key in FILE_KEYS if not files.get(key)]
            for key in preserved:
                files[key] = getattr(previous, key)
            if len(preserved) == len(FILE_KEYS):
                changes = changes or ["No code changes detected - existing files preserved"]
                explanation = explanation or (
                    "I couldn't find updated code in the AI response. Your existing code has been preserved."
                )

        result = GenerationResult(
            action=action,
            files=WebsiteFiles(**files),
            changes=changes or (["Initial creation"] if action == "create" else ["Code updated based on request."]),
            explanation=explanation or (
                "The website has been created based on your request."
                if action == "create"
                else "The code has been updated. Review the changes in the editor."
            ),
            success=True,
            metadata=parsed.metadata,
        )
        return enforce_create_content(result)


def enforce_create_content(result: GenerationResult) -> GenerationResult:
    """A successful create must carry at least one non-empty file."""
    if result.success and result.action == "create" and not result.files.has_content():
        return result.model_copy(update={
            "success": False,
            "changes": ["Failed to generate code."],
            "explanation": EMPTY_CREATE_EXPLANATION,
        })
    return result


class MarkerStreamParser:
    """
    Incremental marker parsing for a response that is still arriving.

    ``feed`` returns ``(file_key, text)`` pieces for every complete line seen
    so far; ``flush`` releases a trailing partial line at end of stream. Text
    before the first marker, and after an unknown marker, is not attributed
    to any file.
    """

    def __init__(self):
        self.buffer = ""
        self.current_file: Optional[str] = None
        self.markers_found = 0

    def feed(self, chunk: str) -> List[Tuple[str, str]]:
        self.buffer += chunk
        pieces: List[Tuple[str, str]] = []
        while True:
            newline_index = self.buffer.find("\n")
            if newline_index == -1:
                break
            line = self.buffer[:newline_index]
            self.buffer = self.buffer[newline_index + 1:]
            self._handle_line(line, "\n", pieces)
        return pieces

    def flush(self) -> List[Tuple[str, str]]:
        pieces: List[Tuple[str, str]] = []
        if self.buffer:
            line, self.buffer = self.buffer, ""
            self._handle_line(line, "", pieces)
        return pieces

    def _handle_line(self, line: str, terminator: str, pieces: List[Tuple[str, str]]) -> None:
        match = MARKER_PATTERN.search(line)
        if match:
            self.markers_found += 1
            self.current_file = marker_file_key(match.group(1))
            logger.debug("📁 File marker %r -> %s", match.group(1), self.current_file)
            line = line[match.end():]
            if not line:
                return
        if self.current_file is None:
            return
        text = line + terminator
        if pieces and pieces[-1][0] == self.current_file:
            pieces[-1] = (self.current_file, pieces[-1][1] + text)
        else:
            pieces.append((self.current_file, text))
