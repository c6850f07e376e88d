"""Top-level pytest configuration and shared fixtures for the Marks Editor suite.

Environment variables are set at the top of this module *before* any
marks_editor imports so the cached settings point at a test-only marks API.

Fixture hierarchy
-----------------
batch_detail      → parsed BatchDetail for the sample payload (max_score=20)
editable_batch    → its BatchInfo (can_edit=True)
locked_batch      → same batch with the edit window closed
sample_marks      → the three StudentMark records of the batch
teacher_session   → EditSession opened by a teacher on the editable batch
mock_persister    → persister double whose ``submit`` is an AsyncMock
mock_marks_client → MarksApiClient double for the API routes
test_client       → FastAPI TestClient with the marks client overridden
"""

from __future__ import annotations

import os

os.environ.setdefault("MARKS_API_BASE_URL", "http://marks.test/api")
os.environ.setdefault("UNDO_LIMIT", "30")

from unittest.mock import AsyncMock, MagicMock

import pytest

from marks_editor.schemas.marks import BatchDetail, BatchInfo, MarksOverview, StudentMark
from marks_editor.services.edit_session import EditSession
from tests.fixtures.sample_batches import batch_detail_payload, overview_payload


# ---------------------------------------------------------------------------
# Batch and record fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def batch_detail() -> BatchDetail:
    """Provide the sample batch payload parsed into a ``BatchDetail``."""
    return BatchDetail.model_validate(batch_detail_payload())


@pytest.fixture
def editable_batch(batch_detail: BatchDetail) -> BatchInfo:
    return batch_detail.batch


@pytest.fixture
def locked_batch(batch_detail: BatchDetail) -> BatchInfo:
    """The sample batch with its edit window closed (``can_edit=False``)."""
    return batch_detail.batch.model_copy(update={"can_edit": False})


@pytest.fixture
def sample_marks(batch_detail: BatchDetail) -> list[StudentMark]:
    return list(batch_detail.marks)


@pytest.fixture
def teacher_session(editable_batch: BatchInfo, sample_marks: list[StudentMark]) -> EditSession:
    """Provide an EditSession opened by a teacher on an editable batch."""
    return EditSession(batch=editable_batch, baseline=sample_marks, role="teacher")


# ---------------------------------------------------------------------------
# Collaborator doubles
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_persister() -> MagicMock:
    """Provide a persister whose ``submit`` coroutine succeeds by default."""
    persister = MagicMock()
    persister.submit = AsyncMock(return_value=None)
    return persister


@pytest.fixture
def mock_marks_client(batch_detail: BatchDetail) -> MagicMock:
    """Provide a MarksApiClient double serving the sample batch.

    ``load_batch`` returns the sample batch, ``submit`` succeeds,
    ``list_recent_batches`` returns an empty list and ``get_overview``
    returns the sample upload progress.  Tests reconfigure the
    AsyncMocks as needed.
    """
    client = MagicMock()
    client.load_batch = AsyncMock(return_value=batch_detail)
    client.submit = AsyncMock(return_value=None)
    client.list_recent_batches = AsyncMock(return_value=[])
    client.get_overview = AsyncMock(
        return_value=MarksOverview.model_validate(overview_payload())
    )
    return client


# ---------------------------------------------------------------------------
# FastAPI TestClient with overridden dependencies
# ---------------------------------------------------------------------------


@pytest.fixture
def test_client(mock_marks_client: MagicMock):
    """Provide a FastAPI TestClient with the marks client dependency overridden.

    The lifespan still runs, so every test gets a fresh, empty session
    store.  Overrides are cleared after the test completes.

    Yields:
        A ``starlette.testclient.TestClient`` bound to the FastAPI app.
    """
    from fastapi.testclient import TestClient

    from marks_editor.api.dependencies import get_marks_client
    from marks_editor.main import app

    app.dependency_overrides[get_marks_client] = lambda: mock_marks_client

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
