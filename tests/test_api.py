"""Tests for API endpoints, wired to the offline service (no external API keys required)."""

from unittest.mock import MagicMock, patch

from talknotes.api.main import app, serve
from talknotes.config import Settings
from talknotes.errors import UpstreamServiceError
from talknotes.ingestion import storage
from talknotes.ingestion.status import SessionStatus
from talknotes.retrieval.generation import NOT_COVERED_ANSWER


def _create(client, **body) -> dict:
    response = client.post("/api/sessions", json=body)
    assert response.status_code == 201
    return response.json()


def _ready(client, runner) -> str:
    session_id = _create(client, title="Offline talk")["id"]
    response = client.post(f"/api/sessions/{session_id}/audio", json={"file_url": "https://cdn.example/a.m4a"})
    assert response.status_code == 202
    assert runner.drain(timeout=10)
    return session_id


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_create_session_defaults(client):
    body = _create(client)
    assert body["title"] == "Untitled Session"
    assert body["status"] == "recording"
    assert body["speaker_metadata"] == []


def test_create_session_with_speakers(client):
    body = _create(client, title="Keynote", topic_context="RAG", speakers=[{"name": "Ada", "role": "host"}])
    assert body["speaker_metadata"] == [{"name": "Ada", "role": "host"}]
    assert body["topic_context"] == "RAG"


def test_list_sessions(client):
    _create(client, title="a")
    _create(client, title="b")
    response = client.get("/api/sessions")
    assert response.status_code == 200
    assert {s["title"] for s in response.json()} == {"a", "b"}


def test_unknown_session_is_404(client):
    response = client.get("/api/sessions/missing")
    assert response.status_code == 404
    assert "detail" in response.json()


def test_attach_audio_requires_input(client):
    session_id = _create(client)["id"]
    response = client.post(f"/api/sessions/{session_id}/audio", json={})
    assert response.status_code == 400


def test_attach_audio_rejects_negative_duration(client):
    session_id = _create(client)["id"]
    response = client.post(
        f"/api/sessions/{session_id}/audio",
        json={"file_url": "https://cdn.example/a.m4a", "duration_seconds": -1},
    )
    assert response.status_code == 422


def test_attach_audio_processes_to_ready(client, runner):
    session_id = _ready(client, runner)

    detail = client.get(f"/api/sessions/{session_id}").json()

    assert detail["session"]["status"] == "ready"
    assert detail["audio_url"] == "https://cdn.example/a.m4a"
    assert len(detail["transcript"]) == 4
    assert len(detail["summary"]["highlights"]) == 3
    assert len(detail["resources"]) == 2


def test_attach_audio_while_processing_is_409(client, service):
    session_id = _create(client)["id"]
    with service.database.transaction() as db:
        storage.set_session_status(db, session_id, SessionStatus.PROCESSING)
    response = client.post(f"/api/sessions/{session_id}/audio", json={"file_url": "https://cdn.example/a.m4a"})
    assert response.status_code == 409


def test_reindex(client, runner):
    session_id = _ready(client, runner)
    response = client.post(f"/api/sessions/{session_id}/reindex")
    assert response.status_code == 200
    assert response.json() == {"message": "Reindexed", "chunks_indexed": 1, "embedding_model": "hashed-bow-128"}


def test_resummarize_not_ready_is_400(client):
    session_id = _create(client)["id"]
    response = client.post(f"/api/sessions/{session_id}/resummarize")
    assert response.status_code == 400


def test_resummarize_with_language(client, runner):
    session_id = _ready(client, runner)
    response = client.post(f"/api/sessions/{session_id}/resummarize", json={"language": "es"})
    assert response.status_code == 200
    assert response.json()["summary"]["language"] == "es"


def test_chat_requires_message(client):
    session_id = _create(client)["id"]
    response = client.post(f"/api/sessions/{session_id}/chat", json={})
    assert response.status_code == 422


def test_chat_empty_message_is_400(client):
    session_id = _create(client)["id"]
    response = client.post(f"/api/sessions/{session_id}/chat", json={"message": "  "})
    assert response.status_code == 400


def test_chat_without_transcript_returns_non_answer(client):
    session_id = _create(client)["id"]
    response = client.post(f"/api/sessions/{session_id}/chat", json={"message": "What was said?"})
    assert response.status_code == 200
    body = response.json()
    assert body["assistant_message"] == NOT_COVERED_ANSWER
    assert body["citations"] == []
    assert body["top_score"] == 0.0


def test_chat_grounded_answer_has_citation(client, runner):
    session_id = _ready(client, runner)
    response = client.post(f"/api/sessions/{session_id}/chat", json={"message": "What does the study hub surface?"})
    body = response.json()
    assert response.status_code == 200
    assert len(body["citations"]) == 1
    assert set(body["citations"][0]) == {"chunk_id", "start_time_seconds", "end_time_seconds", "text"}

    messages = client.get(f"/api/sessions/{session_id}").json()["chat_messages"]
    assert [m["role"] for m in messages] == ["user", "assistant"]


def test_chat_upstream_failure_is_503(client, runner, service):
    session_id = _ready(client, runner)
    service.composer = MagicMock()
    service.composer.compose.side_effect = UpstreamServiceError("LLM unavailable")

    response = client.post(f"/api/sessions/{session_id}/chat", json={"message": "What does the study hub surface?"})

    assert response.status_code == 503
    assert client.get(f"/api/sessions/{session_id}").json()["chat_messages"] == []


def test_study_lists_ready_sessions(client, runner):
    ready_id = _ready(client, runner)
    _create(client, title="Still recording")
    response = client.get("/api/study")
    assert response.status_code == 200
    body = response.json()
    assert [s["id"] for s in body] == [ready_id]
    assert body[0]["resource_count"] == 2


def test_serve_runs_uvicorn_with_configured_address():
    settings = Settings(_env_file=None, api_host="127.0.0.1", api_port=9001, log_level="DEBUG")
    with patch("talknotes.api.main.get_settings", return_value=settings), \
            patch("talknotes.api.main.uvicorn.run") as mock_run:
        serve()
    mock_run.assert_called_once_with(app, host="127.0.0.1", port=9001, log_level="debug")
