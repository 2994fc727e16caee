"""
Tests for the project and document stores and their backings
"""
import pytest

from app.errors import DocumentNotFoundError, PersistenceError, ProjectNotFoundError
from app.models import Document, DocumentContent, DocumentDraft, DocType, ProjectRuleset
from app.services.document_parser import build_document_content
from app.services.stores import (
    DocumentStore,
    JsonFileBacking,
    MemoryBacking,
    ProjectStore,
    build_document_backing,
)
from app.utils.time_info import today


def _draft(title="Memo", text="# Title\nbody"):
    return DocumentDraft(title=title, doc_type=DocType.MEMO, content=build_document_content(text))


# ------------------------------------------------------------------------------
# ProjectStore
# ------------------------------------------------------------------------------

def test_project_ids_increase(project_store):
    second = project_store.append("Second", "desc")
    assert second.id == 2
    assert [p.id for p in project_store.list()] == [1, 2]


def test_new_project_starts_from_default_ruleset(project_store, ruleset):
    project = project_store.append("No settings")
    assert project.settings == ruleset


def test_update_settings_replaces_ruleset(project_store):
    before = project_store.get_ruleset(1)
    new_rules = ProjectRuleset(tech_stack=["Go"], convention="use interfaces")

    project_store.update_settings(1, new_rules)

    assert project_store.get_ruleset(1) == new_rules
    # Snapshots handed out earlier do not change.
    assert before.tech_stack == ["React", "Tailwind CSS", "Supabase"]


def test_unknown_project_raises(project_store):
    with pytest.raises(ProjectNotFoundError):
        project_store.get(99)
    with pytest.raises(ProjectNotFoundError):
        project_store.update_settings(99, ProjectRuleset())


# ------------------------------------------------------------------------------
# DocumentStore
# ------------------------------------------------------------------------------

def test_append_assigns_id_and_date(document_store):
    doc = document_store.append(_draft())

    assert doc.id == 1
    assert doc.date == today()
    assert document_store.get(1) == doc


def test_list_is_newest_first(document_store):
    for title in ("a", "b", "c"):
        document_store.append(_draft(title))
    assert [d.title for d in document_store.list()] == ["c", "b", "a"]


def test_unknown_document_raises(document_store):
    with pytest.raises(DocumentNotFoundError):
        document_store.get(1)


def test_write_failure_carries_draft():
    class Broken(MemoryBacking):
        def put(self, key, value):
            raise PersistenceError("read-only")

    store = DocumentStore(Broken())
    draft = _draft()

    with pytest.raises(PersistenceError) as exc_info:
        store.append(draft)

    assert exc_info.value.draft == draft
    assert store.list() == []


# ------------------------------------------------------------------------------
# JsonFileBacking
# ------------------------------------------------------------------------------

def test_json_backing_survives_reload(tmp_path):
    path = tmp_path / "docs" / "documents.json"
    store = DocumentStore(JsonFileBacking(path, Document))
    saved = store.append(_draft("Kickoff", "기획 모드] 킥오프\n- 일정 확정"))

    reloaded = DocumentStore(JsonFileBacking(path, Document))

    assert reloaded.get(saved.id) == saved
    assert "킥오프" in path.read_text(encoding="utf-8")


def test_json_backing_write_error_becomes_persistence_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    store = DocumentStore(JsonFileBacking(blocker / "documents.json", Document))

    with pytest.raises(PersistenceError):
        store.append(_draft())
    assert len(store.backing) == 0


def test_json_backing_corrupt_file(tmp_path):
    path = tmp_path / "documents.json"
    path.write_text("{not json")
    with pytest.raises(PersistenceError):
        JsonFileBacking(path, Document)


def test_build_document_backing(tmp_path):
    assert isinstance(build_document_backing("memory", tmp_path), MemoryBacking)
    assert isinstance(build_document_backing("json", tmp_path), JsonFileBacking)
    assert isinstance(build_document_backing("redis", tmp_path), MemoryBacking)


def test_document_content_defaults():
    assert DocumentContent().blocks == []
