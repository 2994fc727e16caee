"""
API tests for the Workiwi endpoints
"""
import asyncio
import threading

import httpx

from app import main
from app.services.prompt_composer import DEFAULT_DIRECTIVE
from config import CHAT_FAILURE_MESSAGE, RATE_LIMIT_MESSAGE


def _chat(client, message="hello", agent="DEV", session_id=None, project_id=1):
    body = {"projectId": project_id, "message": message, "agentType": agent}
    if session_id:
        body["sessionId"] = session_id
    return client.post("/api/chat", json=body)


def test_root_and_health(client):
    assert client.get("/").json()["message"] == "Workiwi API"
    health = client.get("/health").json()
    assert health["chat_service"] is True
    assert health["document_store"] is True


def test_default_project_is_seeded(client):
    projects = client.get("/api/projects").json()
    assert projects[0]["name"] == "Workiwi MVP"
    assert projects[0]["settings"]["techStack"] == ["React", "Tailwind CSS", "Supabase", "Node.js"]


def test_create_project_and_update_settings(client):
    response = client.post("/api/projects", json={"name": "Backend rewrite", "description": "Go services"})
    assert response.status_code == 201
    project_id = response.json()["id"]

    response = client.put(
        f"/api/projects/{project_id}/settings",
        json={"techStack": ["Go"], "convention": "use interfaces", "tone": "formal",
              "customInstructions": "be concise"},
    )
    assert response.status_code == 200

    preview = client.get(f"/api/projects/{project_id}/system-instruction", params={"agentType": "DEV"}).json()
    for expected in ("Go", "use interfaces", "formal", "be concise", "declared tech stack"):
        assert expected in preview["systemInstruction"]


def test_unknown_project_is_404(client):
    assert client.get("/api/projects/99").status_code == 404
    assert client.put("/api/projects/99/settings", json={}).status_code == 404
    assert _chat(client, project_id=99).status_code == 404


def test_chat_round_trip(client, backend):
    response = _chat(client, "Build a login form")

    assert response.status_code == 200
    data = response.json()
    assert data["reply"] == "echo: Build a login form"
    assert data["agentType"] == "DEV"

    second = _chat(client, "Add validation", session_id=data["sessionId"]).json()
    assert second["sessionId"] == data["sessionId"]
    assert [e.text for e in backend.calls[1]["history"]] == ["Build a login form", "echo: Build a login form"]

    history = client.get(f"/api/chat/history/{data['sessionId']}").json()
    assert [t["sender"] for t in history["turns"]] == ["user", "agent", "user", "agent"]
    assert history["turns"][1]["agentRole"] == "DEV"
    assert history["turns"][0]["agentRole"] is None


def test_unknown_agent_type_uses_default_directive(client, backend):
    assert _chat(client, agent="WIZARD").status_code == 200
    assert backend.calls[0]["system_instruction"].endswith(DEFAULT_DIRECTIVE)


def test_chat_validation(client):
    assert _chat(client, message="").status_code == 422
    assert _chat(client, session_id="../../etc").status_code == 400


def test_backend_failure_returns_diagnostic(client, backend):
    backend.error = RuntimeError("connection refused")

    response = _chat(client)

    assert response.status_code == 503
    assert response.json()["detail"] == CHAT_FAILURE_MESSAGE
    session_id = response.headers["X-Session-Id"]
    turns = client.get(f"/api/chat/history/{session_id}").json()["turns"]
    assert turns[-1]["text"] == CHAT_FAILURE_MESSAGE


def test_rate_limit_returns_429(client, backend):
    backend.error = RuntimeError("Error code: 429 - Rate limit reached for tokens per day")
    response = _chat(client)
    assert response.status_code == 429
    assert response.json()["detail"] == RATE_LIMIT_MESSAGE


def test_history_for_unknown_session(client):
    assert client.get("/api/chat/history/nope").status_code == 404


def test_save_reply_as_document(client, backend):
    backend.replies = ["# Sprint plan\n- login\n2. signup\nnotes"]
    data = _chat(client, agent="PM").json()

    response = client.post(
        f"/api/chat/{data['sessionId']}/turns/{data['turnId']}/document",
        json={"docType": "MEETING"},
    )

    assert response.status_code == 201
    doc = response.json()["doc"]
    assert doc["docType"] == "MEETING"
    assert doc["title"].startswith("AI chat record (PM)")
    assert doc["content"]["version"] == "1.0"
    assert doc["content"]["blocks"] == [
        {"kind": "heading", "content": "Sprint plan"},
        {"kind": "list", "content": "- login"},
        {"kind": "list", "content": "2. signup"},
        {"kind": "paragraph", "content": "notes"},
    ]
    assert client.get(f"/api/docs/{doc['id']}").json() == doc


def test_save_reply_without_body_defaults_to_memo(client):
    data = _chat(client).json()
    response = client.post(f"/api/chat/{data['sessionId']}/turns/{data['turnId']}/document")
    assert response.status_code == 201
    assert response.json()["doc"]["docType"] == "MEMO"


def test_save_errors(client):
    data = _chat(client).json()
    history = client.get(f"/api/chat/history/{data['sessionId']}").json()
    user_turn_id = history["turns"][0]["id"]

    assert client.post(f"/api/chat/{data['sessionId']}/turns/{user_turn_id}/document").status_code == 400
    assert client.post(f"/api/chat/{data['sessionId']}/turns/1/document").status_code == 404
    assert client.post(f"/api/chat/missing/turns/1/document").status_code == 404


def test_persistence_failure_returns_draft(client):
    from tests.conftest import FailingBacking
    main.document_service.document_store.backing = FailingBacking()
    data = _chat(client).json()

    response = client.post(f"/api/chat/{data['sessionId']}/turns/{data['turnId']}/document")

    assert response.status_code == 500
    detail = response.json()["detail"]
    assert "disk full" in detail["message"]
    assert detail["document"]["content"]["blocks"] == [{"kind": "paragraph", "content": "echo: hello"}]
    assert data["turnId"] in main.document_service.pending


def test_client_built_document_and_listing(client):
    for title in ("first", "second"):
        response = client.post("/api/docs", json={
            "title": title,
            "docType": "SPEC",
            "content": {"version": "1.0", "blocks": [{"kind": "code", "content": "x = 1"}]},
        })
        assert response.status_code == 201
        assert response.json()["success"] is True

    docs = client.get("/api/docs").json()
    assert [d["title"] for d in docs] == ["second", "first"]
    assert client.get("/api/docs/42").status_code == 404


def test_parse_preview(client):
    response = client.post("/api/docs/parse", json={"text": "Plan 모드] kickoff\n\n- a"})
    assert response.json() == [
        {"kind": "heading", "content": "Plan 모드] kickoff"},
        {"kind": "list", "content": "- a"},
    ]


def test_client_history_is_used_without_session(client, backend):
    response = client.post("/api/chat", json={
        "projectId": 1,
        "message": "and then?",
        "agentType": "DEV",
        "history": [{"sender": "user", "text": "q"}, {"sender": "ai", "text": "a"}],
    })

    assert response.status_code == 200
    assert [(e.role, e.text) for e in backend.calls[0]["history"]] == [("user", "q"), ("model", "a")]


def test_session_turns_win_over_client_history(client, backend):
    session_id = _chat(client, "first").json()["sessionId"]

    client.post("/api/chat", json={
        "projectId": 1,
        "message": "second",
        "sessionId": session_id,
        "history": [{"sender": "user", "text": "stale"}],
    })

    assert [e.text for e in backend.calls[1]["history"]] == ["first", "echo: first"]


class SlowBackend:
    """Blocks in generate() until released, like a slow Groq call."""

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()

    def generate(self, system_instruction, history, message):
        self.started.set()
        self.release.wait(5)
        return "finally"


def test_server_stays_responsive_while_a_reply_is_pending(client):
    slow = SlowBackend()
    main.chat_service.backend = slow
    body = {"projectId": 1, "message": "long question", "agentType": "DEV", "sessionId": "s1"}

    async def scenario():
        transport = httpx.ASGITransport(app=main.app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
            first = asyncio.create_task(ac.post("/api/chat", json=body))
            try:
                assert await asyncio.to_thread(slow.started.wait, 5)

                health = await ac.get("/health")
                busy = await ac.post("/api/chat", json={**body, "message": "too soon"})
            finally:
                slow.release.set()
            return health, busy, await first

    health, busy, first = asyncio.run(scenario())

    assert health.status_code == 200
    assert busy.status_code == 409
    assert first.status_code == 200
    assert first.json()["reply"] == "finally"
