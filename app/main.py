"""
WORKIWI MAIN API
================

This module defines the FastAPI application and all HTTP endpoints. One team runs
one server (python run.py) and points the Workiwi web client at it.

ENDPOINTS:
  GET  /                                        - API name and list of endpoints.
  GET  /health                                  - Whether each service is initialized.
  GET  /api/projects                            - All projects.
  POST /api/projects                            - Create a project (default ruleset unless given).
  GET  /api/projects/{id}                       - One project with its ruleset.
  PUT  /api/projects/{id}/settings              - Replace a project's ruleset.
  GET  /api/projects/{id}/system-instruction    - Preview the instruction for ?agentType=.
  POST /api/chat                                - Send a message to a PM / DEV / DESIGNER agent.
  GET  /api/chat/history/{session_id}           - All turns of a session.
  POST /api/chat/{session_id}/turns/{turn_id}/document
                                                - Parse an agent reply and save it as a document.
  POST /api/docs/parse                          - Preview the blocks for a text.
  POST /api/docs                                - Save a document built by the client.
  GET  /api/docs                                - All documents, newest first.
  GET  /api/docs/{id}                           - One document.

SESSION:
  If sessionId is omitted on /api/chat the server generates one and returns it;
  send it back on the next request to continue the conversation. Sessions are
  kept in memory only.

STARTUP:
  The lifespan function builds the project store (seeded with the default
  project), the document store, the Groq backend and the chat/document services.
"""


from contextlib import asynccontextmanager
import logging
from typing import List

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from app.errors import (
    ConversationBusyError,
    DocumentNotFoundError,
    PersistenceError,
    ProjectNotFoundError,
    SessionNotFoundError,
    TurnNotFoundError,
)
from app.models import (
    ChatRequest,
    ChatResponse,
    Document,
    DocumentBlock,
    DocumentCreateRequest,
    DocumentSaveResponse,
    HistoryResponse,
    ParseRequest,
    Project,
    ProjectCreateRequest,
    ProjectRuleset,
    SaveTurnRequest,
    TurnState,
)
from app.services.chat_service import ChatService
from app.services.document_parser import parse
from app.services.document_service import DocumentService
from app.services.groq_service import GroqService
from app.services.prompt_composer import build_system_instruction
from app.services.stores import DocumentStore, ProjectStore, build_document_backing
from config import (
    CHAT_FAILURE_MESSAGE,
    DEFAULT_PROJECT,
    DOCS_DATA_DIR,
    DOCUMENT_STORE_BACKEND,
    HOST,
    PORT,
    RATE_LIMIT_MESSAGE,
)


def _is_rate_limit_error(exc: Exception) -> bool:
    """True if the exception is a Groq rate limit (429 / tokens per day)."""
    msg = str(exc).lower()
    return "429" in msg or "rate limit" in msg or "tokens per day" in msg


# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("Workiwi")


# -----------------------------------------------------------------------------
# GLOBAL SERVICE REFERENCES
# -----------------------------------------------------------------------------
# Set by init_services() during startup and used by all route handlers.
project_store: ProjectStore = None
document_store: DocumentStore = None
chat_service: ChatService = None
document_service: DocumentService = None


def print_title():
    """Print the Workiwi banner to the console when the server starts."""
    GREEN = "\033[92m"
    WHITE = "\033[97m"
    BOLD = "\033[1m"
    RESET = "\033[0m"
    print(f"\n{BOLD}{GREEN}  W O R K I W I{RESET}\n  {WHITE}Team AI agents with project rules{RESET}\n")


def init_services(backend, document_backing=None):
    """
    Build the stores and services and publish them as the module globals.

    backend is anything with generate(system_instruction, history, message) -> str;
    the lifespan passes a GroqService.
    """
    global project_store, document_store, chat_service, document_service

    default_settings = ProjectRuleset.model_validate(DEFAULT_PROJECT["settings"])
    project_store = ProjectStore(default_settings=default_settings)
    project_store.append(DEFAULT_PROJECT["name"], DEFAULT_PROJECT["description"], default_settings)

    if document_backing is None:
        document_backing = build_document_backing(DOCUMENT_STORE_BACKEND, DOCS_DATA_DIR)
    document_store = DocumentStore(document_backing)

    chat_service = ChatService(backend, project_store)
    document_service = DocumentService(document_store, chat_service)


# -------------------------------------------------------------------------
# LIFESPAN (STARTUP / SHUTDOWN)
# -------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: create the Groq backend, then the stores and services via init_services().
    Shutdown: nothing to flush; the JSON document backing writes on every save.
    """
    print_title()
    logger.info("=" * 60)
    logger.info("Workiwi - Starting Up...")
    logger.info("=" * 60)

    try:
        logger.info("Initializing Groq service...")
        groq_service = GroqService()

        logger.info("Initializing stores and services (documents: %s)...", DOCUMENT_STORE_BACKEND)
        init_services(groq_service)

        logger.info("=" * 60)
        logger.info("Workiwi is online. API: http://localhost:%s  Docs: http://localhost:%s/docs", PORT, PORT)
        logger.info("=" * 60)
    except Exception as e:
        logger.error(f"Fatal error during startup: {e}", exc_info=True)
        raise

    yield

    logger.info("Shutting down Workiwi. Goodbye!")


# -------------------------------------------------------------------------
# FASTAPI APP AND CORS
# -------------------------------------------------------------------------
app = FastAPI(
    title="Workiwi API",
    description="Team chat with role-specialised AI agents and structured documents",
    lifespan=lifespan
)

# Allow any origin so the web client on another port can call this API.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _require(service, name: str):
    if service is None:
        raise HTTPException(status_code=503, detail=f"{name} not initialized")
    return service


# =========================================================================
# API ENDPOINTS
# =========================================================================

@app.get("/")
async def root():
    """Return the API name and a short description of each endpoint (for discovery)."""
    return {
        "message": "Workiwi API",
        "endpoints": {
            "/api/projects": "List or create projects",
            "/api/projects/{id}/settings": "Replace a project's ruleset",
            "/api/chat": "Chat with a PM / DEV / DESIGNER agent",
            "/api/chat/history/{session_id}": "Get chat history",
            "/api/chat/{session_id}/turns/{turn_id}/document": "Save an agent reply as a document",
            "/api/docs": "List or save documents",
            "/api/docs/parse": "Preview document blocks for a text",
            "/health": "System health check"
        }
    }


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "project_store": project_store is not None,
        "document_store": document_store is not None,
        "chat_service": chat_service is not None,
        "document_service": document_service is not None,
    }


# -------------------------------------------------------------------------
# PROJECTS
# -------------------------------------------------------------------------

@app.get("/api/projects", response_model=List[Project])
async def list_projects():
    return _require(project_store, "Project store").list()


@app.post("/api/projects", response_model=Project, status_code=201)
async def create_project(request: ProjectCreateRequest):
    return _require(project_store, "Project store").append(request.name, request.description, request.settings)


@app.get("/api/projects/{project_id}", response_model=Project)
async def get_project(project_id: int):
    try:
        return _require(project_store, "Project store").get(project_id)
    except ProjectNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.put("/api/projects/{project_id}/settings", response_model=Project)
async def update_project_settings(project_id: int, settings: ProjectRuleset):
    try:
        return _require(project_store, "Project store").update_settings(project_id, settings)
    except ProjectNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.get("/api/projects/{project_id}/system-instruction")
async def preview_system_instruction(project_id: int, agent_type: str = Query("DEV", alias="agentType")):
    """Show exactly what an agent of this role would be told for this project."""
    try:
        ruleset = _require(project_store, "Project store").get_ruleset(project_id)
    except ProjectNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {
        "projectId": project_id,
        "agentType": agent_type,
        "systemInstruction": build_system_instruction(ruleset, agent_type),
    }


# -------------------------------------------------------------------------
# CHAT
# -------------------------------------------------------------------------

@app.post("/api/chat", response_model=ChatResponse)
def chat(request: ChatRequest):
    """
    Send a message to an agent.

    Declared without async so the blocking Groq call runs in the threadpool and
    other requests (and other sessions) are served meanwhile.

    The project's ruleset and the chosen agentType become the system instruction;
    the last MAX_CHAT_HISTORY_TURNS turns of the session are sent as history.
    Without a sessionId, the client's own "history" (if any) is used instead, as
    the web client keeps the conversation itself.

    REQUEST BODY:
    {"projectId": 1, "message": "Plan the login page", "agentType": "DEV", "sessionId": "optional",
     "history": [{"sender": "user", "text": "..."}, {"sender": "ai", "text": "..."}]}

    RESPONSE:
    {"reply": "...", "agentType": "DEV", "timestamp": "...", "sessionId": "...", "turnId": 1739...}

    On backend failure the session still records an agent turn with the fixed
    diagnostic message and the endpoint returns 503 (429 for rate limits), with
    the session id in the X-Session-Id header.
    """
    service = _require(chat_service, "Chat service")

    try:
        session_id = service.get_or_create_session(request.session_id, request.project_id)
        prior_turns = request.history if request.session_id is None else None
        exchange = service.process_message(session_id, request.message, request.agent_type, prior_turns)
    except ProjectNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConversationBusyError as e:
        logger.warning(f"Rejected concurrent send: {e}")
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        logger.warning(f"Invalid chat request: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    if exchange.state == TurnState.FAILED:
        headers = {"X-Session-Id": session_id}
        if _is_rate_limit_error(exchange.error):
            logger.warning(f"Rate limit hit: {exchange.error}")
            raise HTTPException(status_code=429, detail=RATE_LIMIT_MESSAGE, headers=headers)
        raise HTTPException(status_code=503, detail=CHAT_FAILURE_MESSAGE, headers=headers)

    return ChatResponse(
        reply=exchange.reply_turn.text,
        agent_type=request.agent_type,
        timestamp=exchange.reply_turn.timestamp,
        session_id=session_id,
        turn_id=exchange.reply_turn.id,
    )


@app.get("/api/chat/history/{session_id}", response_model=HistoryResponse)
async def get_chat_history(session_id: str):
    service = _require(chat_service, "Chat service")
    try:
        session = service.get_session(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return HistoryResponse(session_id=session.id, project_id=session.project_id, turns=list(session.turns))


@app.post("/api/chat/{session_id}/turns/{turn_id}/document", response_model=DocumentSaveResponse, status_code=201)
def save_turn_as_document(session_id: str, turn_id: int, request: SaveTurnRequest = None):
    """Parse one agent reply into blocks and store it as a document."""
    service = _require(document_service, "Document service")
    request = request or SaveTurnRequest()
    try:
        doc = service.save_turn(session_id, turn_id, request.doc_type, request.title)
    except (SessionNotFoundError, TurnNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=_persistence_detail(e))
    return DocumentSaveResponse(success=True, doc=doc)


# -------------------------------------------------------------------------
# DOCUMENTS
# -------------------------------------------------------------------------

def _persistence_detail(error: PersistenceError) -> dict:
    """Error body for a failed save: the message plus the unsaved draft, if any."""
    detail = {"message": f"Document could not be saved: {error}"}
    if error.draft is not None:
        detail["document"] = error.draft.model_dump(mode="json", by_alias=True)
    logger.error(detail["message"])
    return detail


@app.post("/api/docs/parse", response_model=List[DocumentBlock])
async def parse_document(request: ParseRequest):
    return parse(request.text)


@app.post("/api/docs", response_model=DocumentSaveResponse, status_code=201)
async def create_document(request: DocumentCreateRequest):
    service = _require(document_service, "Document service")
    try:
        doc = service.save_content(request.title, request.doc_type, request.content)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=_persistence_detail(e))
    return DocumentSaveResponse(success=True, doc=doc)


@app.get("/api/docs", response_model=List[Document])
async def list_documents():
    return _require(document_store, "Document store").list()


@app.get("/api/docs/{document_id}", response_model=Document)
async def get_document(document_id: int):
    try:
        return _require(document_store, "Document store").get(document_id)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


# -------------------------------------------------------------------------
# STANDALONE RUN (python -m app.main)
# -------------------------------------------------------------------------
def run():
    """Start the uvicorn server (same as run.py)."""
    uvicorn.run(
        "app.main:app",
        host=HOST,
        port=PORT,
        reload=True,
        log_level="info"
    )

if __name__ == "__main__":
    run()
