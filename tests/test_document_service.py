"""
Tests for saving agent replies as documents
"""
import pytest

from app.errors import PersistenceError, TurnNotFoundError
from app.models import BlockKind, DocType, DocumentContent, DocumentBlock
from app.services.chat_service import ChatService
from app.services.document_service import DocumentService
from app.services.stores import DocumentStore
from tests.conftest import FailingBacking, FakeBackend

REPLY = "# 로그인 화면\n\n구현 계획입니다.\n- 폼 검증\n1. API 연동"


@pytest.fixture
def replied(project_store):
    chat = ChatService(FakeBackend(replies=[REPLY]), project_store)
    session_id = chat.get_or_create_session(None, 1)
    exchange = chat.process_message(session_id, "로그인 화면 계획", "DEV")
    return chat, exchange


def test_save_turn_parses_and_persists(replied, document_store):
    chat, exchange = replied
    service = DocumentService(document_store, chat)

    doc = service.save_turn(exchange.session_id, exchange.reply_turn.id, DocType.TECH)

    assert doc.id == 1
    assert doc.doc_type == DocType.TECH
    assert doc.title.startswith("AI chat record (DEV) - ")
    assert [(b.kind, b.content) for b in doc.content.blocks] == [
        (BlockKind.HEADING, "로그인 화면"),
        (BlockKind.PARAGRAPH, "구현 계획입니다."),
        (BlockKind.LIST, "- 폼 검증"),
        (BlockKind.LIST, "1. API 연동"),
    ]
    assert document_store.list() == [doc]
    assert service.pending == {}


def test_custom_title(replied, document_store):
    chat, exchange = replied
    doc = DocumentService(document_store, chat).save_turn(exchange.session_id, exchange.reply_turn.id,
                                                          title="Login plan")
    assert doc.title == "Login plan"
    assert doc.doc_type == DocType.MEMO


def test_user_turn_cannot_be_saved(replied, document_store):
    chat, exchange = replied
    with pytest.raises(ValueError):
        DocumentService(document_store, chat).save_turn(exchange.session_id, exchange.user_turn.id)


def test_unknown_turn(replied, document_store):
    chat, exchange = replied
    with pytest.raises(TurnNotFoundError):
        DocumentService(document_store, chat).save_turn(exchange.session_id, 123)


def test_persistence_failure_keeps_draft(replied):
    chat, exchange = replied
    service = DocumentService(DocumentStore(FailingBacking()), chat)

    with pytest.raises(PersistenceError) as exc_info:
        service.save_turn(exchange.session_id, exchange.reply_turn.id)

    draft = service.pending[exchange.reply_turn.id]
    assert exc_info.value.draft == draft
    assert len(draft.content.blocks) == 4


def test_successful_retry_clears_pending(replied, document_store):
    chat, exchange = replied
    service = DocumentService(DocumentStore(FailingBacking()), chat)
    with pytest.raises(PersistenceError):
        service.save_turn(exchange.session_id, exchange.reply_turn.id)

    service.document_store = document_store
    service.save_turn(exchange.session_id, exchange.reply_turn.id)

    assert service.pending == {}


def test_save_content_stores_client_blocks(document_service, document_store):
    content = DocumentContent(blocks=[DocumentBlock(kind=BlockKind.CODE, content="print('hi')")])

    doc = document_service.save_content("Snippet", DocType.TECH, content)

    assert document_store.get(doc.id).content.blocks[0].kind == BlockKind.CODE


def test_save_content_failure_returns_draft_without_pending(chat_service):
    service = DocumentService(DocumentStore(FailingBacking()), chat_service)
    content = DocumentContent(blocks=[DocumentBlock(kind=BlockKind.PARAGRAPH, content="notes")])

    with pytest.raises(PersistenceError) as exc_info:
        service.save_content("Snippet", DocType.MEMO, content)

    assert exc_info.value.draft.title == "Snippet"
    assert exc_info.value.draft.content == content
    assert service.pending == {}
