"""
SERVICES PACKAGE
=================

Business logic lives here. The API layer (app.main) calls these services;
they don't handle HTTP.

MODULES:
    prompt_composer   - system instruction + bounded history (pure)
    document_parser   - reply text -> typed blocks (pure)
    stores            - ProjectStore / DocumentStore over injected backings
    groq_service      - generation backend (Groq via langchain)
    chat_service      - sessions and the send/reply lifecycle
    document_service  - reply -> parsed -> persisted document
"""
