"""
WORKIWI APPLICATION PACKAGE
===========================

This directory is the main Python package for the Workiwi backend:

  from app.main import app
  from app.models import ProjectRuleset, ChatTurn
  from app.services.prompt_composer import build_system_instruction

FILE STRUCTURE:
  app/
    __init__.py   - This file; marks 'app' as a package.
    main.py       - FastAPI app and all HTTP endpoints (/api/chat, /api/docs, /api/projects, ...).
    models.py     - Pydantic models for the data model and API bodies.
    errors.py     - Exceptions raised by the services.
    services/     - Prompt composer, block parser, stores, Groq backend, chat and document flows.
    utils/        - Clock helpers for turn ids, timestamps and document titles.
"""
