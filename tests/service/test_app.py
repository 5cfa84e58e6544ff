"""Tests for the FastAPI knowledge base service."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from kodex.generator import GenerationResult
from kodex.llm import GenerationError
from kodex.models import CodeMap, GapItem, KnowledgeBase, KnowledgeItem, ScanMeta
from kodex.orchestrator import ItemPinnedError, ScanOutcome
from kodex.service import create_app
from kodex.storage import KnowledgeStore


def _item(item_id: str, topic: str, status: str = "draft") -> KnowledgeItem:
    return KnowledgeItem(
        id=item_id,
        topic=topic,
        title=f"About {topic}",
        pages=["/settings"],
        content="Original content",
        source_files=["src/Settings.tsx"],
        code_version="2024-05-01T00:00:00+00:00",
        generated_at="2024-05-01T00:00:00+00:00",
        status=status,
        confidence=0.9,
    )


class _StubOrchestrator:
    def __init__(self) -> None:
        self.scan_calls: list[dict[str, object]] = []
        self.regenerate_calls: list[dict[str, object]] = []

    def run_scan(self, path, *, changed_only=False, dry_run=False, generate=True, mock=False):  # type: ignore[no-untyped-def]
        self.scan_calls.append(
            {
                "path": Path(path),
                "changed_only": changed_only,
                "dry_run": dry_run,
                "generate": generate,
                "mock": mock,
            }
        )
        code_map = CodeMap(
            routes=[],
            components=[],
            pages=[],
            strings=[],
            api_endpoints=[],
            features=[],
            meta=ScanMeta(scanned_at="2024-05-01T00:00:00+00:00", files_scanned=7, scan_duration_ms=3),
        )
        if not generate:
            return ScanOutcome(code_map=code_map, result=None, dry_run=dry_run)
        result = GenerationResult(
            items=[], generated=2, updated=1, skipped=3, tokens_used=1200, failures=["billing.invoices"]
        )
        return ScanOutcome(code_map=code_map, result=result, dry_run=dry_run)

    def regenerate_item(self, path, item_id, *, mock=False):  # type: ignore[no-untyped-def]
        self.regenerate_calls.append({"path": Path(path), "id": item_id, "mock": mock})
        if item_id == "kb-pinned":
            raise ItemPinnedError(f"{item_id} is pinned; unpin it before regenerating")
        if item_id == "kb-broken":
            raise GenerationError("backend unavailable")
        return _item(item_id, "settings.notifications")


@pytest.fixture
def store(tmp_path: Path) -> KnowledgeStore:
    store = KnowledgeStore(tmp_path)
    store.save(
        KnowledgeBase(
            items=[
                _item("kb-auth", "authentication.login-logout"),
                _item("kb-theme", "settings.theme-appearance", status="approved"),
            ]
        )
    )
    return store


@pytest.fixture
def orchestrator() -> _StubOrchestrator:
    return _StubOrchestrator()


@pytest.fixture
def client(tmp_path: Path, store: KnowledgeStore, orchestrator: _StubOrchestrator) -> TestClient:
    app = create_app(tmp_path, store_factory=lambda: store, orchestrator_factory=lambda: orchestrator)
    return TestClient(app)


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_list_docs_with_status_filter(client: TestClient) -> None:
    all_items = client.get("/docs").json()["items"]
    approved = client.get("/docs", params={"status": "approved"}).json()["items"]

    assert [item["id"] for item in all_items] == ["kb-auth", "kb-theme"]
    assert [item["id"] for item in approved] == ["kb-theme"]


def test_get_doc_and_missing_doc(client: TestClient) -> None:
    response = client.get("/docs/kb-auth")
    missing = client.get("/docs/kb-nope")

    assert response.status_code == 200
    assert response.json()["topic"] == "authentication.login-logout"
    assert missing.status_code == 404
    assert "kb-nope" in missing.json()["detail"]


def test_update_doc_records_human_edit(client: TestClient, store: KnowledgeStore) -> None:
    response = client.put(
        "/docs/kb-auth",
        json={"content": "Edited steps", "status": "reviewed", "edited_by": "dana"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["content"] == "Edited steps"
    assert data["status"] == "reviewed"
    assert data["human_edited"] is True
    assert data["last_edited_by"] == "dana"
    assert data["title"] == "About authentication.login-logout"
    assert store.get_item("kb-auth").content == "Edited steps"


def test_update_doc_rejects_unknown_status(client: TestClient) -> None:
    response = client.put("/docs/kb-auth", json={"status": "published"})

    assert response.status_code == 400


def test_delete_doc(client: TestClient, store: KnowledgeStore) -> None:
    response = client.delete("/docs/kb-theme")

    assert response.json() == {"status": "deleted", "id": "kb-theme"}
    assert [item.id for item in store.load().items] == ["kb-auth"]
    assert client.delete("/docs/kb-theme").status_code == 404


def test_pin_and_unpin(client: TestClient) -> None:
    pinned = client.post("/docs/kb-auth/pin").json()
    unpinned = client.post("/docs/kb-auth/unpin").json()

    assert (pinned["pinned"], pinned["status"]) == (True, "pinned")
    assert (unpinned["pinned"], unpinned["status"]) == (False, "reviewed")


def test_regenerate_endpoint(client: TestClient, orchestrator: _StubOrchestrator, tmp_path: Path) -> None:
    response = client.post("/regenerate", json={"id": "kb-auth", "mock": True})

    assert response.status_code == 200
    assert response.json()["id"] == "kb-auth"
    assert orchestrator.regenerate_calls == [{"path": tmp_path.resolve(), "id": "kb-auth", "mock": True}]


def test_regenerate_error_statuses(client: TestClient) -> None:
    assert client.post("/regenerate", json={"id": "kb-pinned"}).status_code == 409
    assert client.post("/regenerate", json={"id": "kb-broken"}).status_code == 502
    assert client.post("/regenerate", json={}).status_code == 422


def test_scan_endpoint_reports_summary(client: TestClient, orchestrator: _StubOrchestrator) -> None:
    response = client.post("/scan", json={"changed_only": True, "mock": True})

    assert response.status_code == 200
    assert response.json() == {
        "files_scanned": 7,
        "features": 0,
        "generated": 2,
        "updated": 1,
        "skipped": 3,
        "tokens_used": 1200,
        "failures": ["billing.invoices"],
        "dry_run": False,
    }
    assert orchestrator.scan_calls[0]["changed_only"] is True
    assert orchestrator.scan_calls[0]["generate"] is True


def test_scan_endpoint_without_generation(client: TestClient) -> None:
    data = client.post("/scan", json={"generate": False}).json()

    assert data["files_scanned"] == 7
    assert data["generated"] == 0
    assert data["failures"] == []


def test_gap_endpoints(client: TestClient) -> None:
    first = client.post("/gaps", json={"question": "How do I export data?", "page": "/reports"}).json()
    repeat = client.post("/gaps", json={"question": "how do I export data?"}).json()
    client.post("/gaps", json={"question": "Is there an API?"})

    gaps = client.get("/gaps").json()["gaps"]

    assert repeat["id"] == first["id"]
    assert repeat["frequency"] == 2
    assert [gap["question"] for gap in gaps] == ["How do I export data?", "Is there an API?"]
    assert client.get("/gaps", params={"status": "resolved"}).json() == {"gaps": []}
    assert client.post("/gaps", json={"question": "  "}).status_code == 400


def test_default_store_requires_configuration(tmp_path: Path) -> None:
    client = TestClient(create_app(tmp_path))

    response = client.get("/docs")

    assert response.status_code == 400
    assert "kodex init" in response.json()["detail"]


class _LoopCheckingStore(KnowledgeStore):
    """Records whether each store call ran on a thread with an event loop."""

    def __init__(self, root: Path) -> None:
        super().__init__(root)
        self.on_loop: list[bool] = []

    def _record(self) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self.on_loop.append(False)
        else:
            self.on_loop.append(True)

    def load(self) -> KnowledgeBase:
        self._record()
        return super().load()

    def add_gap(self, question: str, page: str | None = None) -> GapItem:
        self._record()
        return super().add_gap(question, page=page)


def test_store_calls_run_off_the_event_loop(tmp_path: Path, orchestrator: _StubOrchestrator) -> None:
    store = _LoopCheckingStore(tmp_path)
    client = TestClient(
        create_app(tmp_path, store_factory=lambda: store, orchestrator_factory=lambda: orchestrator)
    )

    assert client.get("/docs").status_code == 200
    assert client.post("/gaps", json={"question": "Where is the audit log?"}).status_code == 200

    assert store.on_loop
    assert not any(store.on_loop)
