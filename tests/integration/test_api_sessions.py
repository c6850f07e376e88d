"""Integration tests for the edit-session API endpoints.

Endpoints tested
----------------
POST   /sessions                        — load a batch and open a session
GET    /sessions/{session_id}           — current render state
GET    /sessions/{session_id}/changes   — pending change-set preview
PATCH  /sessions/{session_id}/marks/{i} — edit a score or comment
POST   /sessions/{session_id}/undo      — undo
POST   /sessions/{session_id}/redo      — redo
POST   /sessions/{session_id}/save      — submit the change-set
DELETE /sessions/{session_id}           — discard

Tests use the ``test_client`` fixture with a mocked marks API client.
No network calls are made.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from marks_editor.exceptions import BatchLoadError, SaveError
from marks_editor.services.session_store import SessionStore
from tests.fixtures.sample_batches import GROUP_KEY


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _open(client, role: str = "teacher", **extra) -> dict:
    response = client.post("/sessions", json={"group_key": GROUP_KEY, "role": role, **extra})
    assert response.status_code == 201, (
        f"Expected 201 opening a session, got {response.status_code}: {response.text}"
    )
    return response.json()


def _edit(client, session_id: str, index: int, field: str, value):
    return client.patch(
        f"/sessions/{session_id}/marks/{index}", json={"field": field, "value": value}
    )


@pytest.fixture
def locked_client(test_client, mock_marks_client, batch_detail, locked_batch):
    """TestClient whose marks API serves the batch with the edit window closed."""
    mock_marks_client.load_batch.return_value = batch_detail.model_copy(
        update={"batch": locked_batch}
    )
    return test_client


# ---------------------------------------------------------------------------
# POST /sessions
# ---------------------------------------------------------------------------


class TestOpenSession:
    def test_open_session_returns_clean_state(self, test_client, mock_marks_client):
        body = _open(test_client)

        assert body["group_key"] == GROUP_KEY
        assert body["state"] == "loaded"
        assert body["is_editable"] is True
        assert body["is_dirty"] is False
        assert body["can_undo"] is False
        assert [m["id"] for m in body["marks"]] == ["m1", "m2", "m3"]
        assert body["pagination"]["total_count"] == 3
        mock_marks_client.load_batch.assert_awaited_once_with(
            GROUP_KEY, page=1, page_size=50
        )

    def test_open_session_uses_requested_page(self, test_client, mock_marks_client):
        _open(test_client, page=2, page_size=10)

        mock_marks_client.load_batch.assert_awaited_once_with(GROUP_KEY, page=2, page_size=10)

    def test_open_session_load_failure_returns_502(self, test_client, mock_marks_client):
        mock_marks_client.load_batch.side_effect = BatchLoadError(
            "Batch not found", group_key=GROUP_KEY, status_code=404
        )

        response = test_client.post("/sessions", json={"group_key": GROUP_KEY, "role": "teacher"})

        assert response.status_code == 502
        body = response.json()
        assert body["error"] == "batch_load_failed"
        assert body["upstream_status"] == 404
        assert body["group_key"] == GROUP_KEY

    def test_open_session_requires_group_key(self, test_client):
        response = test_client.post("/sessions", json={"role": "teacher"})

        assert response.status_code == 422

    def test_locked_batch_is_not_editable_for_teacher(self, locked_client):
        body = _open(locked_client)

        assert body["is_editable"] is False
        assert body["batch"]["can_edit"] is False

    def test_locked_batch_is_editable_for_principal(self, locked_client):
        body = _open(locked_client, role="principal")

        assert body["is_editable"] is True


# ---------------------------------------------------------------------------
# GET /sessions/{id}
# ---------------------------------------------------------------------------


def test_get_session_state(test_client):
    session_id = _open(test_client)["session_id"]

    response = test_client.get(f"/sessions/{session_id}")

    assert response.status_code == 200
    assert response.json()["session_id"] == session_id


def test_get_unknown_session_returns_404(test_client):
    response = test_client.get("/sessions/does-not-exist")

    assert response.status_code == 404
    body = response.json()
    assert body["error"] == "session_not_found"
    assert body["session_id"] == "does-not-exist"


# ---------------------------------------------------------------------------
# PATCH /sessions/{id}/marks/{index}
# ---------------------------------------------------------------------------


class TestEditMark:
    def test_score_edit_updates_grade(self, test_client):
        session_id = _open(test_client)["session_id"]

        response = _edit(test_client, session_id, 1, "score", "16")

        assert response.status_code == 200
        body = response.json()
        assert body["applied"] is True
        row = body["session"]["marks"][1]
        assert row["score"] == 16
        assert row["grade"] == "A"
        assert row["is_below_half"] is False
        assert body["session"]["state"] == "dirty"
        assert body["session"]["pending_changes"] == 1
        assert body["session"]["undo_depth"] == 1

    def test_numeric_value_is_accepted(self, test_client):
        session_id = _open(test_client)["session_id"]

        body = _edit(test_client, session_id, 0, "score", 9).json()

        assert body["session"]["marks"][0]["grade"] == "E"
        assert body["session"]["marks"][0]["is_below_half"] is True

    def test_score_above_max_returns_422(self, test_client):
        session_id = _open(test_client)["session_id"]

        response = _edit(test_client, session_id, 0, "score", "25")

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "validation_failed"
        assert body["field"] == "score"
        assert body["index"] == 0
        assert body["value"] == "25"

        state = test_client.get(f"/sessions/{session_id}").json()
        assert state["undo_depth"] == 0, "A rejected edit must not record history"
        assert state["marks"][0]["score"] == 16

    def test_out_of_range_index_returns_422(self, test_client):
        session_id = _open(test_client)["session_id"]

        response = _edit(test_client, session_id, 7, "score", "5")

        assert response.status_code == 422
        assert response.json()["index"] == 7

    @pytest.mark.parametrize("value", [True, False])
    def test_boolean_score_is_rejected(self, test_client, value):
        """JSON booleans must not be coerced into a score of 1 or 0."""
        session_id = _open(test_client)["session_id"]

        response = _edit(test_client, session_id, 1, "score", value)

        assert response.status_code == 422, (
            f"Expected 422 for a boolean score, got {response.status_code}: {response.text}"
        )
        state = test_client.get(f"/sessions/{session_id}").json()
        assert state["marks"][1]["score"] == 9
        assert state["undo_depth"] == 0

    def test_unknown_field_is_rejected_by_request_schema(self, test_client):
        session_id = _open(test_client)["session_id"]

        response = _edit(test_client, session_id, 0, "grade", "A")

        assert response.status_code == 422

    def test_locked_batch_edit_is_not_applied(self, locked_client):
        session_id = _open(locked_client)["session_id"]

        response = _edit(locked_client, session_id, 0, "score", "5")

        assert response.status_code == 200
        body = response.json()
        assert body["applied"] is False
        assert body["session"]["marks"][0]["score"] == 16
        assert body["session"]["can_undo"] is False


# ---------------------------------------------------------------------------
# Undo / redo / change preview
# ---------------------------------------------------------------------------


def test_undo_and_redo_round_trip(test_client):
    session_id = _open(test_client)["session_id"]
    _edit(test_client, session_id, 0, "score", "10")

    undone = test_client.post(f"/sessions/{session_id}/undo").json()
    assert undone["marks"][0]["score"] == 16
    assert undone["is_dirty"] is False
    assert undone["can_redo"] is True

    redone = test_client.post(f"/sessions/{session_id}/redo").json()
    assert redone["marks"][0]["score"] == 10
    assert redone["can_redo"] is False
    assert redone["is_dirty"] is True


def test_undo_with_empty_history_is_harmless(test_client):
    session_id = _open(test_client)["session_id"]

    response = test_client.post(f"/sessions/{session_id}/undo")

    assert response.status_code == 200
    assert response.json()["can_undo"] is False


def test_changes_preview_matches_wire_format(test_client):
    session_id = _open(test_client)["session_id"]
    _edit(test_client, session_id, 0, "comment", "")
    _edit(test_client, session_id, 2, "score", "20")

    response = test_client.get(f"/sessions/{session_id}/changes")

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 2
    assert body["marks"] == [
        {"id": "m1", "comment": ""},
        {"id": "m3", "score": 20.0},
    ]


# ---------------------------------------------------------------------------
# POST /sessions/{id}/save
# ---------------------------------------------------------------------------


class TestSaveSession:
    def test_nothing_to_save(self, test_client, mock_marks_client):
        session_id = _open(test_client)["session_id"]

        response = test_client.post(f"/sessions/{session_id}/save")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "nothing_to_save"
        assert body["session"]["session_id"] == session_id
        mock_marks_client.submit.assert_not_called()

    def test_save_submits_and_reopens_fresh_session(self, test_client, mock_marks_client):
        session_id = _open(test_client)["session_id"]
        _edit(test_client, session_id, 1, "score", "12")

        response = test_client.post(f"/sessions/{session_id}/save")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "saved"
        assert body["saved_count"] == 1
        mock_marks_client.submit.assert_awaited_once()
        group_key, change_set = mock_marks_client.submit.call_args.args
        assert group_key == GROUP_KEY
        assert [u.model_dump(exclude_unset=True) for u in change_set] == [
            {"id": "m2", "score": 12.0}
        ]

        fresh = body["session"]
        assert fresh["session_id"] != session_id
        assert fresh["state"] == "loaded"
        assert mock_marks_client.load_batch.await_count == 2

        old = test_client.get(f"/sessions/{session_id}")
        assert old.status_code == 404, "The saved session must be retired"

    def test_save_without_reload(self, test_client, mock_marks_client):
        session_id = _open(test_client)["session_id"]
        _edit(test_client, session_id, 1, "score", "12")

        body = test_client.post(f"/sessions/{session_id}/save", params={"reload": "false"}).json()

        assert body["status"] == "saved"
        assert body["session"] is None
        assert mock_marks_client.load_batch.await_count == 1

    def test_reload_failure_still_reports_saved(self, test_client, mock_marks_client):
        session_id = _open(test_client)["session_id"]
        _edit(test_client, session_id, 1, "score", "12")
        mock_marks_client.load_batch = AsyncMock(side_effect=BatchLoadError("down"))

        response = test_client.post(f"/sessions/{session_id}/save")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "saved"
        assert body["session"] is None

    def test_save_failure_keeps_session_for_retry(self, test_client, mock_marks_client):
        session_id = _open(test_client)["session_id"]
        _edit(test_client, session_id, 1, "score", "12")
        mock_marks_client.submit.side_effect = SaveError(
            "Edit window has closed", group_key=GROUP_KEY, status_code=403
        )

        response = test_client.post(f"/sessions/{session_id}/save")

        assert response.status_code == 502
        body = response.json()
        assert body["error"] == "save_failed"
        assert body["retryable"] is True
        assert body["upstream_status"] == 403

        state = test_client.get(f"/sessions/{session_id}").json()
        assert state["state"] == "dirty"
        assert state["marks"][1]["score"] == 12
        assert state["undo_depth"] == 1

        mock_marks_client.submit.side_effect = None
        retry = test_client.post(f"/sessions/{session_id}/save", params={"reload": "false"})
        assert retry.json()["status"] == "saved"

    def test_locked_batch_never_reaches_marks_api(self, locked_client, mock_marks_client):
        session_id = _open(locked_client)["session_id"]
        _edit(locked_client, session_id, 0, "score", "5")

        response = locked_client.post(f"/sessions/{session_id}/save")

        assert response.status_code == 200
        assert response.json()["status"] == "nothing_to_save"
        mock_marks_client.submit.assert_not_called()


# ---------------------------------------------------------------------------
# DELETE /sessions/{id}
# ---------------------------------------------------------------------------


def test_discard_session(test_client):
    session_id = _open(test_client)["session_id"]
    _edit(test_client, session_id, 0, "score", "3")

    response = test_client.delete(f"/sessions/{session_id}")

    assert response.status_code == 204
    assert test_client.get(f"/sessions/{session_id}").status_code == 404
    assert test_client.delete(f"/sessions/{session_id}").status_code == 404


def test_health_reports_open_sessions(test_client):
    _open(test_client)
    _open(test_client)

    body = test_client.get("/health").json()

    assert body["status"] == "ok"
    assert body["open_sessions"] == 2


def test_abandoned_sessions_expire_when_new_ones_open(test_client):
    """Sessions never discarded by the client are retired once idle."""
    now = [0.0]
    store = SessionStore(idle_timeout_seconds=60, clock=lambda: now[0])
    test_client.app.state.session_store = store

    abandoned = [_open(test_client)["session_id"] for _ in range(5)]
    assert len(store) == 5

    now[0] += 120
    _open(test_client)

    assert len(store) == 1, f"Idle sessions should have been pruned, {len(store)} remain"
    for session_id in abandoned:
        assert test_client.get(f"/sessions/{session_id}").status_code == 404
