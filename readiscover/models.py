"""
models.py
---------
Pydantic models used by the ingestion pipeline, the session layer and the API.
"""
from __future__ import annotations
import threading
import time
from enum import Enum
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, PrivateAttr


# --------------------------------------------------------------------------------------
# Ingestion
# --------------------------------------------------------------------------------------
class EntryKind(str, Enum):
    DIRECTORY = "directory"
    REGULAR = "regular"


class ArchiveEntry(BaseModel):
    path: str
    size_bytes: int = Field(ge=0)
    kind: EntryKind = EntryKind.REGULAR
    raw_content: bytes = b""


class ContentClass(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    BINARY = "binary"


class ParsedDocument(BaseModel):
    path: str
    extension: str = ""
    content_class: ContentClass
    text_content: Optional[str] = None      # only for text
    binary_payload: Optional[bytes] = None  # only for images
    encoded_payload: Optional[str] = None   # base64 of binary_payload


class FigureFormat(str, Enum):
    PDF = "pdf"
    PNG = "png"
    JPG = "jpg"
    JPEG = "jpeg"
    GIF = "gif"
    SVG = "svg"
    EPS = "eps"
    UNKNOWN = "unknown"

    @classmethod
    def from_extension(cls, extension: str) -> "FigureFormat":
        try:
            return cls((extension or "").lower())
        except ValueError:
            return cls.UNKNOWN

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES.get(self, "application/octet-stream")


_MIME_TYPES = {
    FigureFormat.PDF: "application/pdf",
    FigureFormat.PNG: "image/png",
    FigureFormat.JPG: "image/jpeg",
    FigureFormat.JPEG: "image/jpeg",
    FigureFormat.GIF: "image/gif",
    FigureFormat.SVG: "image/svg+xml",
    FigureFormat.EPS: "application/postscript",
}


class Figure(BaseModel):
    label: str
    caption: str = ""
    source_path: str
    format: FigureFormat = FigureFormat.UNKNOWN
    encoded_payload: str = ""


class PaperStructure(BaseModel):
    title: str = ""
    main_document_path: str
    full_text: str = ""
    figures: List[Figure] = Field(default_factory=list)


# --------------------------------------------------------------------------------------
# Session
# --------------------------------------------------------------------------------------
class Concept(BaseModel):
    id: int
    title: str
    core_idea: str = ""
    required_background: str = ""
    relevant_figures: List[str] = Field(default_factory=list)
    discovery_path: Optional[str] = None


class Message(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class DisclosedFigure(BaseModel):
    label: str
    caption: str = ""
    format: FigureFormat
    mime_type: str
    payload: str


class Session(BaseModel):
    id: str
    credential: str
    arxiv_id: str = ""
    knowledge_text: str = ""
    structure: PaperStructure
    concepts: List[Concept]
    history: List[Message] = Field(default_factory=list)
    current_concept: int = 1
    last_activity: float = Field(default_factory=time.time)
    completed: bool = False

    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    @property
    def lock(self) -> threading.Lock:
        """Exclusive access for one turn at a time."""
        return self._lock

    @property
    def total_concepts(self) -> int:
        return len(self.concepts)

    def touch(self, now: Optional[float] = None) -> None:
        self.last_activity = time.time() if now is None else now


# --------------------------------------------------------------------------------------
# API payloads
# --------------------------------------------------------------------------------------
class StartSessionRequest(BaseModel):
    arxiv_id: Optional[str] = Field(None, description="arXiv identifier or abs/pdf URL")
    openrouter_api_key: Optional[str] = Field(None, description="Opaque credential for the completion provider")
    user_knowledge_text: Optional[str] = Field(None, description="What the reader already knows")


class StartSessionResponse(BaseModel):
    session_id: str
    paper_title: str
    total_concepts: int
    initial_message: str


class AnswerRequest(BaseModel):
    session_id: Optional[str] = Field(None, description="Session id returned by /session/start")
    user_answer: Optional[str] = Field(None, description="The reader's reply")


class AnswerResponse(BaseModel):
    tutor_message: str
    current_concept: int
    is_complete: bool
    figures: List[DisclosedFigure] = Field(default_factory=list)
    progress_percentage: Optional[int] = None
