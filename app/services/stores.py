"""
STORES MODULE
=============

Project and document storage behind an explicit interface. Each store is given
its backing at construction time (app.main builds them in the lifespan), so no
service keeps lists at module level and tests can hand in their own backing.

BACKINGS:
  MemoryBacking   - dict in process memory; lost on restart.
  JsonFileBacking - one JSON file (e.g. database/docs_data/documents.json), rewritten on every put.

STORES:
  ProjectStore  - get / append / list / update_settings / get_ruleset
  DocumentStore - get / append / list (newest first)
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel

from app.errors import DocumentNotFoundError, PersistenceError, ProjectNotFoundError
from app.models import Document, DocumentDraft, Project, ProjectRuleset
from app.utils.time_info import today

logger = logging.getLogger("Workiwi")

M = TypeVar("M", bound=BaseModel)


# ==============================================================================
# BACKINGS
# ==============================================================================

class MemoryBacking(Generic[M]):
    """Key-value backing held in a plain dict."""

    def __init__(self):
        self._items: Dict[int, M] = {}

    def get(self, key: int) -> Optional[M]:
        return self._items.get(key)

    def put(self, key: int, value: M) -> None:
        self._items[key] = value

    def values(self) -> List[M]:
        return list(self._items.values())

    def __len__(self) -> int:
        return len(self._items)


class JsonFileBacking(Generic[M]):
    """
    Key-value backing persisted to a single JSON file as {"<id>": {...}, ...}.

    The whole file is loaded once on construction and rewritten (temp file +
    rename) on every put. Read and write failures raise PersistenceError.
    """

    def __init__(self, path: Path, model: Type[M]):
        self.path = Path(path)
        self.model = model
        self._items: Dict[int, M] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            self._items = {int(k): self.model.model_validate(v) for k, v in raw.items()}
            logger.info("Loaded %s records from %s", len(self._items), self.path)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Could not read {self.path}: {e}") from e

    def _flush(self, items: Dict[int, M]) -> None:
        payload = {str(k): v.model_dump(mode="json", by_alias=True) for k, v in items.items()}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def get(self, key: int) -> Optional[M]:
        return self._items.get(key)

    def put(self, key: int, value: M) -> None:
        updated = dict(self._items)
        updated[key] = value
        try:
            self._flush(updated)
        except OSError as e:
            raise PersistenceError(f"Could not write {self.path}: {e}") from e
        # Only visible in memory once it is on disk.
        self._items = updated

    def values(self) -> List[M]:
        return list(self._items.values())

    def __len__(self) -> int:
        return len(self._items)


# ==============================================================================
# PROJECT STORE
# ==============================================================================

class ProjectStore:
    """Projects and their rulesets. The chat flow only reads from it."""

    def __init__(self, backing=None, default_settings: Optional[ProjectRuleset] = None):
        self.backing = backing if backing is not None else MemoryBacking()
        self.default_settings = default_settings or ProjectRuleset()
        self._lock = threading.Lock()

    def get(self, project_id: int) -> Project:
        project = self.backing.get(project_id)
        if project is None:
            raise ProjectNotFoundError(f"Project {project_id} not found")
        return project

    def get_ruleset(self, project_id: int) -> ProjectRuleset:
        """Snapshot of the project's ruleset (immutable model)."""
        return self.get(project_id).settings

    def append(self, name: str, description: str = "", settings: Optional[ProjectRuleset] = None) -> Project:
        """Create a project. Without explicit settings it starts from the default ruleset."""
        with self._lock:
            next_id = max((p.id for p in self.backing.values()), default=0) + 1
            project = Project(
                id=next_id,
                name=name,
                description=description,
                settings=settings if settings is not None else self.default_settings,
            )
            self.backing.put(project.id, project)
        logger.info("Project created: %s (id=%s)", project.name, project.id)
        return project

    def list(self) -> List[Project]:
        return sorted(self.backing.values(), key=lambda p: p.id)

    def update_settings(self, project_id: int, settings: ProjectRuleset) -> Project:
        """Replace a project's ruleset. Turns already in flight keep the snapshot they read."""
        with self._lock:
            project = self.get(project_id)
            updated = project.model_copy(update={"settings": settings})
            self.backing.put(project_id, updated)
        logger.info("Ruleset updated for project %s", project_id)
        return updated


# ==============================================================================
# DOCUMENT STORE
# ==============================================================================

class DocumentStore:
    """Append-only document storage. Ids are assigned here: count + 1."""

    def __init__(self, backing=None):
        self.backing = backing if backing is not None else MemoryBacking()
        self._lock = threading.Lock()

    def append(self, draft: DocumentDraft) -> Document:
        """Give the draft its id and today's date and store it. Raises PersistenceError."""
        with self._lock:
            document = Document(
                id=len(self.backing) + 1,
                title=draft.title,
                doc_type=draft.doc_type,
                date=today(),
                content=draft.content,
            )
            try:
                self.backing.put(document.id, document)
            except PersistenceError as e:
                raise PersistenceError(str(e), draft=draft) from e
        logger.info("Document saved: %s (id=%s)", document.title, document.id)
        return document

    def get(self, document_id: int) -> Document:
        document = self.backing.get(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return document

    def list(self) -> List[Document]:
        """All documents, newest first."""
        return sorted(self.backing.values(), key=lambda d: d.id, reverse=True)


def build_document_backing(kind: str, data_dir: Path):
    """Pick the document backing named by DOCUMENT_STORE_BACKEND ("memory" or "json")."""
    if kind == "json":
        return JsonFileBacking(Path(data_dir) / "documents.json", Document)
    if kind != "memory":
        logger.warning("Unknown DOCUMENT_STORE_BACKEND %r, using memory", kind)
    return MemoryBacking()
