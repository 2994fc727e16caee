"""
Pytest configuration and fixtures
"""
import pytest
from fastapi.testclient import TestClient

from app import main
from app.errors import PersistenceError
from app.models import ProjectRuleset
from app.services.chat_service import ChatService
from app.services.document_service import DocumentService
from app.services.stores import DocumentStore, MemoryBacking, ProjectStore


class FakeBackend:
    """Generation backend double: records every call and answers from a queue (or echoes)."""

    def __init__(self, replies=None, error=None):
        self.replies = list(replies or [])
        self.error = error
        self.calls = []

    def generate(self, system_instruction, history, message):
        self.calls.append({"system_instruction": system_instruction, "history": list(history), "message": message})
        if self.error is not None:
            raise self.error
        if self.replies:
            return self.replies.pop(0)
        return f"echo: {message}"


class FailingBacking(MemoryBacking):
    """Backing whose writes always fail."""

    def put(self, key, value):
        raise PersistenceError("disk full")


@pytest.fixture
def ruleset():
    return ProjectRuleset(
        tech_stack=["React", "Tailwind CSS", "Supabase"],
        convention="Use functional components",
        tone="Friendly and logical",
        custom_instructions="Explain for junior developers",
    )


@pytest.fixture
def project_store(ruleset):
    store = ProjectStore(default_settings=ruleset)
    store.append("Workiwi MVP", "Team AI collaboration tool", ruleset)
    return store


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def chat_service(backend, project_store):
    return ChatService(backend, project_store)


@pytest.fixture
def document_store():
    return DocumentStore(MemoryBacking())


@pytest.fixture
def document_service(document_store, chat_service):
    return DocumentService(document_store, chat_service)


@pytest.fixture
def client(backend):
    """Test client wired to a fake backend; the lifespan (and Groq) is not started."""
    main.init_services(backend, document_backing=MemoryBacking())
    yield TestClient(main.app)
    main.project_store = None
    main.document_store = None
    main.chat_service = None
    main.document_service = None
