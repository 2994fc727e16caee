"""
DATA MODELS MODULE
==================

This file defines the Pydantic models used for API requests, responses, and the
in-memory data model shared by the services. FastAPI uses these to validate
incoming JSON and to serialize responses.

Wire shapes use camelCase keys (techStack, agentType, sessionId, ...) because the
web client sends and expects them; Python code uses the snake_case attribute names.

MODELS:
  ProjectRuleset   - Project rules injected into every agent instruction.
  AgentRole        - PM / DEV / DESIGNER.
  ChatTurn         - One message in a conversation (user or agent). Immutable.
  ClientMessage    - A prior message sent by the web client ({sender, text}).
  HistoryEntry     - One turn as the generation backend sees it (role + text).
  DocumentBlock    - One typed unit of document content.
  Document         - A persisted document built from an agent reply.
  Project          - A workspace owning one ruleset.
  ChatRequest / ChatResponse / HistoryResponse       - /api/chat bodies.
  DocumentCreateRequest / SaveTurnRequest / ParseRequest / DocumentSaveResponse
                                                     - /api/docs bodies.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from config import DOCUMENT_VERSION, MAX_MESSAGE_LENGTH

# ==============================================================================
# ENUMS
# ==============================================================================

class AgentRole(str, Enum):
    """The specialised agents a user can talk to."""
    PM = "PM"
    DEV = "DEV"
    DESIGNER = "DESIGNER"


class Sender(str, Enum):
    USER = "user"
    AGENT = "agent"


class BlockKind(str, Enum):
    # "code" is never produced by the parser; it exists for externally supplied content.
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    LIST = "list"
    CODE = "code"


class DocType(str, Enum):
    MEETING = "MEETING"
    SPEC = "SPEC"
    MEMO = "MEMO"
    TECH = "TECH"


class TurnState(str, Enum):
    """Lifecycle of one user message: Composed -> Sent -> AwaitingReply -> Replied | Failed."""
    COMPOSED = "Composed"
    SENT = "Sent"
    AWAITING_REPLY = "AwaitingReply"
    REPLIED = "Replied"
    FAILED = "Failed"


class DocumentState(str, Enum):
    NONE = "None"
    PARSED = "Parsed"
    PERSISTED = "Persisted"


# ==============================================================================
# PROJECT RULESET
# ==============================================================================

class ProjectRuleset(BaseModel):
    """
    Project rules injected into every agent instruction.

    Missing or null fields become empty values instead of validation errors,
    and blank tech-stack entries are dropped. Display order of the stack is kept.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    tech_stack: List[str] = Field(default_factory=list, alias="techStack")
    convention: str = ""
    tone: str = ""
    custom_instructions: str = Field(default="", alias="customInstructions")

    @field_validator("tech_stack", mode="before")
    @classmethod
    def _clean_stack(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        return [str(item) for item in value if item is not None and str(item).strip()]

    @field_validator("convention", "tone", "custom_instructions", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> str:
        return "" if value is None else str(value)


# ==============================================================================
# CHAT
# ==============================================================================

class ChatTurn(BaseModel):
    """
    A single message in a conversation. Created on send/receive and never changed.
    agent_role is set only on agent turns.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: int
    sender: Sender
    text: str
    agent_role: Optional[AgentRole] = Field(default=None, alias="agentRole")
    timestamp: datetime

    @model_validator(mode="after")
    def _role_only_on_agent_turns(self) -> "ChatTurn":
        if self.sender == Sender.USER and self.agent_role is not None:
            raise ValueError("agentRole is only allowed on agent turns")
        return self


class HistoryEntry(BaseModel):
    """One prior turn in the shape the generation backend expects."""
    role: str   # "user" or "model"
    text: str


class ClientMessage(BaseModel):
    """
    One prior message as the web client keeps it: {sender, text}.
    Extra keys (id, agentType, timestamp) are ignored.
    """
    sender: Sender
    text: str = ""

    @field_validator("sender", mode="before")
    @classmethod
    def _accept_ai_sender(cls, value: Any) -> Any:
        # The web client labels agent messages "ai".
        return Sender.AGENT if value == "ai" else value

    @field_validator("text", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> str:
        return "" if value is None else str(value)


class ChatRequest(BaseModel):
    """
    Request body for POST /api/chat.

    - projectId: Project whose ruleset is injected.
    - message: Required, 1-32,000 characters (422 otherwise).
    - agentType: PM, DEV or DESIGNER. Any other string is accepted and answered
      with the generic directive.
    - sessionId: Optional. Omit to start a new conversation.
    - history: Optional. The client's own prior messages, used as history only
      when no sessionId is given (a session's recorded turns win).
    """
    model_config = ConfigDict(populate_by_name=True)

    project_id: int = Field(..., alias="projectId")
    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
    agent_type: str = Field(default=AgentRole.DEV.value, alias="agentType")
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    history: Optional[List[ClientMessage]] = None


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reply: str
    agent_type: str = Field(..., alias="agentType")
    timestamp: datetime
    session_id: str = Field(..., alias="sessionId")
    turn_id: int = Field(..., alias="turnId")


class HistoryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId")
    project_id: int = Field(..., alias="projectId")
    turns: List[ChatTurn]


# ==============================================================================
# DOCUMENTS
# ==============================================================================

class DocumentBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: BlockKind
    content: str


class DocumentContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: str = DOCUMENT_VERSION
    blocks: List[DocumentBlock] = Field(default_factory=list)


class DocumentDraft(BaseModel):
    """A parsed document that has not been given an id or date by the store yet."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    title: str
    doc_type: DocType = Field(default=DocType.MEMO, alias="docType")
    content: DocumentContent


class Document(BaseModel):
    """A stored document. Never points back at the chat turn it came from."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: int
    title: str
    doc_type: DocType = Field(..., alias="docType")
    date: date
    content: DocumentContent


class DocumentCreateRequest(BaseModel):
    """Body of POST /api/docs: a document whose blocks were built by the client."""
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1)
    doc_type: DocType = Field(default=DocType.MEMO, alias="docType")
    content: DocumentContent


class SaveTurnRequest(BaseModel):
    """Body of POST /api/chat/{session_id}/turns/{turn_id}/document."""
    model_config = ConfigDict(populate_by_name=True)

    doc_type: DocType = Field(default=DocType.MEMO, alias="docType")
    title: Optional[str] = None


class ParseRequest(BaseModel):
    text: str = ""


class DocumentSaveResponse(BaseModel):
    success: bool
    doc: Document


# ==============================================================================
# PROJECTS
# ==============================================================================

class Project(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: str = ""
    settings: ProjectRuleset = Field(default_factory=ProjectRuleset)


class ProjectCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    settings: Optional[ProjectRuleset] = None
