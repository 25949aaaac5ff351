"""
Site Builder State Models

Typed records shared by the extractor, the generator and the context store.
Python attributes are snake_case; the wire form (what the browser sends and
what session files contain) uses camelCase, bridged by pydantic aliases.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


Action = Literal["create", "modify", "add", "remove"]

FILE_KEYS = ("html", "css", "js")


class WireModel(BaseModel):
    """Base for every model that crosses the HTTP boundary."""
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class WebsiteFiles(WireModel):
    """The three generated artifacts. Missing keys are always empty strings."""
    html: str = ""
    css: str = ""
    js: str = ""

    def has_content(self) -> bool:
        return bool(self.html or self.css or self.js)


class GenerationMetadata(WireModel):
    website_type: Optional[str] = Field(default=None, alias="websiteType")
    features: Optional[List[str]] = None
    dependencies: Optional[List[str]] = None


class GenerationResult(WireModel):
    """Outcome of one generation cycle."""
    action: Action
    files: WebsiteFiles = Field(default_factory=WebsiteFiles)
    changes: List[str] = Field(default_factory=list)
    explanation: str = ""
    success: bool = False
    metadata: Optional[GenerationMetadata] = None


class HistoryEntry(WireModel):
    prompt: str
    action: Action
    timestamp: datetime = Field(default_factory=datetime.now)
    changes: List[str] = Field(default_factory=list)


class WebsiteContext(WireModel):
    """
    Session-scoped state.

    Mutated in place by the context store after each successful generation;
    replaced wholesale by reset or import.
    """
    current_files: WebsiteFiles = Field(default_factory=WebsiteFiles, alias="currentFiles")
    history: List[HistoryEntry] = Field(default_factory=list)
    website_type: str = Field(default="", alias="websiteType")
    features: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)

    def has_code(self) -> bool:
        return bool(self.current_files.html)


class SessionInfo(WireModel):
    website_type: str = Field(default="", alias="websiteType")
    features: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    last_modified: Optional[datetime] = Field(default=None, alias="lastModified")
    total_history: int = Field(default=0, alias="totalHistory")


class SessionSnapshot(WireModel):
    """Export/import document for one session."""
    session_id: str = Field(default="", alias="sessionId")
    files: WebsiteFiles = Field(default_factory=WebsiteFiles)
    session_info: Optional[SessionInfo] = Field(default=None, alias="sessionInfo")
    history: List[HistoryEntry] = Field(default_factory=list)
