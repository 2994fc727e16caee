"""
DOCUMENT SERVICE MODULE
=======================

Turns agent replies into stored documents: None -> Parsed -> Persisted.

  save_turn(session_id, turn_id, ...)  parse an agent turn's text and store it.
  save_content(title, doc_type, content) store blocks the client already built.

If the store rejects a write, the parsed draft is kept in self.pending (keyed by
turn id) and PersistenceError is raised with the draft attached. Nothing is
retried automatically and a failed draft is never silently dropped; a later
successful save of the same turn clears it.

save_content has no turn to key a pending entry on, so a failed client-built
draft is not kept; the caller gets it back on PersistenceError.draft (and the
API returns it in the 500 body).
"""

import logging
from typing import Dict, Optional

from app.errors import PersistenceError
from app.models import (
    DocType,
    Document,
    DocumentContent,
    DocumentDraft,
    DocumentState,
    Sender,
)
from app.services.chat_service import ChatService
from app.services.document_parser import build_document_content
from app.services.stores import DocumentStore
from app.utils.time_info import time_label

logger = logging.getLogger("Workiwi")


def default_title(role_label: str) -> str:
    """e.g. "AI chat record (DEV) - 14:03:22"."""
    return f"AI chat record ({role_label}) - {time_label()}"


class DocumentService:

    def __init__(self, document_store: DocumentStore, chat_service: ChatService):
        self.document_store = document_store
        self.chat_service = chat_service
        self.pending: Dict[int, DocumentDraft] = {}

    def save_turn(
        self,
        session_id: str,
        turn_id: int,
        doc_type: DocType = DocType.MEMO,
        title: Optional[str] = None,
    ) -> Document:
        """
        Parse an agent turn into a document and persist it.
        Raises ValueError for user turns, SessionNotFoundError/TurnNotFoundError for
        unknown ids and PersistenceError when the store fails.
        """
        turn = self.chat_service.get_turn(session_id, turn_id)
        if turn.sender != Sender.AGENT:
            raise ValueError("Only agent replies can be saved as documents")

        role_label = turn.agent_role.value if turn.agent_role else "AI"
        draft = DocumentDraft(
            title=title or default_title(role_label),
            doc_type=doc_type,
            content=build_document_content(turn.text),
        )
        logger.info("Turn %s document %s (%s blocks)", turn_id, DocumentState.PARSED.value,
                    len(draft.content.blocks))

        try:
            document = self.document_store.append(draft)
        except PersistenceError as e:
            self.pending[turn_id] = draft
            logger.error("Turn %s document not persisted, draft kept in memory: %s", turn_id, e)
            raise PersistenceError(str(e), draft=draft) from e

        self.pending.pop(turn_id, None)
        logger.info("Turn %s document %s as id %s", turn_id, DocumentState.PERSISTED.value, document.id)
        return document

    def save_content(self, title: str, doc_type: DocType, content: DocumentContent) -> Document:
        """
        Persist a document whose blocks were built elsewhere.

        Raises PersistenceError carrying the draft; nothing is added to pending.
        """
        draft = DocumentDraft(title=title, doc_type=doc_type, content=content)
        return self.document_store.append(draft)
