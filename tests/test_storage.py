"""Tests for kodex.storage."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from kodex.config import DocsConfig
from kodex.models import CodeMap, GapItem, KnowledgeBase, KnowledgeItem, ScanMeta
from kodex.storage import KnowledgeStore, RecordNotFoundError, StorageError, render_markdown


def _item(item_id: str = "kb-auth-1", topic: str = "authentication.password-reset", **overrides) -> KnowledgeItem:
    values = dict(
        id=item_id,
        topic=topic,
        title="Reset your password",
        pages=["/forgot-password"],
        content="1. Click **Forgot password**.",
        source_files=["src/ForgotPassword.tsx"],
        code_version="2024-05-01T00:00:00+00:00",
        generated_at="2024-05-01T00:00:00+00:00",
        status="draft",
        confidence=0.95,
    )
    values.update(overrides)
    return KnowledgeItem(**values)


def _empty_code_map() -> CodeMap:
    return CodeMap(
        routes=[],
        components=[],
        pages=[],
        strings=[],
        api_endpoints=[],
        features=[],
        meta=ScanMeta(scanned_at="2024-05-01T00:00:00+00:00", files_scanned=0, scan_duration_ms=1),
    )


@pytest.fixture
def store(tmp_path: Path) -> KnowledgeStore:
    return KnowledgeStore(tmp_path, DocsConfig(), name="Acme", version="1.2.0")


def test_load_from_empty_directory(store: KnowledgeStore) -> None:
    kb = store.load()

    assert kb.items == []
    assert kb.gaps == []
    assert kb.code_map is None
    assert kb.meta.name == "Acme"


def test_save_writes_state_and_docs(store: KnowledgeStore) -> None:
    kb = KnowledgeBase(items=[_item()], code_map=_empty_code_map())
    kb.meta.last_scan_at = "2024-05-01T00:00:00+00:00"

    store.save(kb)

    items_payload = json.loads((store.state_dir / "items.json").read_text(encoding="utf-8"))
    assert items_payload["items"][0]["id"] == "kb-auth-1"
    assert items_payload["meta"]["last_scan_at"] == "2024-05-01T00:00:00+00:00"
    assert (store.state_dir / "gaps.json").exists()
    assert (store.state_dir / "codemap.json").exists()
    assert (store.docs_dir / "authentication" / "password-reset.md").exists()
    assert (store.docs_dir / "json" / "kb-auth-1.json").exists()

    reloaded = store.load()
    assert reloaded.items == kb.items
    assert reloaded.code_map is not None
    assert reloaded.meta.last_scan_at == "2024-05-01T00:00:00+00:00"


def test_markdown_only_format(tmp_path: Path) -> None:
    store = KnowledgeStore(tmp_path, DocsConfig(output_dir="help", format="markdown"))

    store.save(KnowledgeBase(items=[_item()]))

    assert (tmp_path / "help" / "authentication" / "password-reset.md").exists()
    assert not (tmp_path / "help" / "json").exists()


def test_render_markdown_front_matter() -> None:
    text = render_markdown(_item(human_edited=True, pinned=True, status="pinned"))

    assert text.startswith("---\n")
    _, header, body = text.split("---\n", 2)
    front_matter = yaml.safe_load(header)
    assert front_matter["id"] == "kb-auth-1"
    assert front_matter["topic"] == "authentication.password-reset"
    assert front_matter["pages"] == ["/forgot-password"]
    assert front_matter["status"] == "pinned"
    assert front_matter["confidence"] == 0.95
    assert front_matter["humanEdited"] is True
    assert front_matter["pinned"] is True
    assert body.strip() == "1. Click **Forgot password**."


def test_render_markdown_omits_unset_flags() -> None:
    header = yaml.safe_load(render_markdown(_item()).split("---\n")[1])

    assert "humanEdited" not in header
    assert "pinned" not in header


def test_corrupt_state_files_are_treated_as_empty(store: KnowledgeStore) -> None:
    store.state_dir.mkdir(parents=True)
    (store.state_dir / "items.json").write_text("{not json", encoding="utf-8")
    (store.state_dir / "gaps.json").write_text('{"gaps": [{"question": "no id"}]}', encoding="utf-8")

    kb = store.load()

    assert kb.items == []
    assert kb.gaps == []


def test_update_item_marks_human_edits(store: KnowledgeStore) -> None:
    store.save(KnowledgeBase(items=[_item()]))

    updated = store.update_item(
        "kb-auth-1", {"content": "New steps", "title": "Reset password", "id": "ignored"}, edited_by="dana"
    )

    assert updated.content == "New steps"
    assert updated.title == "Reset password"
    assert updated.id == "kb-auth-1"
    assert updated.human_edited is True
    assert updated.last_edited_by == "dana"
    assert updated.last_edited_at is not None
    assert store.get_item("kb-auth-1").human_edited is True


def test_status_only_update_is_not_a_content_edit(store: KnowledgeStore) -> None:
    store.save(KnowledgeBase(items=[_item()]))

    updated = store.update_item("kb-auth-1", {"status": "reviewed"})

    assert updated.status == "reviewed"
    assert updated.human_edited is False
    with pytest.raises(ValueError):
        store.update_item("kb-auth-1", {"status": "published"})


def test_pin_and_unpin(store: KnowledgeStore) -> None:
    store.save(KnowledgeBase(items=[_item()]))

    pinned = store.set_pinned("kb-auth-1", True)
    assert (pinned.pinned, pinned.status) == (True, "pinned")

    unpinned = store.set_pinned("kb-auth-1", False)
    assert (unpinned.pinned, unpinned.status) == (False, "reviewed")


def test_set_status_syncs_pinned_flag(store: KnowledgeStore) -> None:
    store.save(KnowledgeBase(items=[_item()]))

    assert store.set_status("kb-auth-1", "pinned").pinned is True
    assert store.set_status("kb-auth-1", "approved").pinned is False


def test_delete_item_removes_docs(store: KnowledgeStore) -> None:
    store.save(KnowledgeBase(items=[_item(), _item("kb-other", "settings.theme-appearance")]))

    store.delete_item("kb-auth-1")

    assert [item.id for item in store.load().items] == ["kb-other"]
    assert not (store.docs_dir / "authentication" / "password-reset.md").exists()
    assert not (store.docs_dir / "json" / "kb-auth-1.json").exists()


def test_unknown_ids_raise(store: KnowledgeStore) -> None:
    with pytest.raises(RecordNotFoundError):
        store.get_item("missing")
    with pytest.raises(RecordNotFoundError):
        store.set_pinned("missing", True)
    with pytest.raises(RecordNotFoundError):
        store.resolve_gap("missing")


def test_add_gap_deduplicates_case_insensitively(store: KnowledgeStore) -> None:
    first = store.add_gap("How do I export to CSV?", page="/reports")
    again = store.add_gap("  how do i export to csv?  ")
    other = store.add_gap("Can I change my email?")

    assert again.id == first.id
    assert again.frequency == 2
    assert other.id != first.id
    assert [gap.question for gap in store.list_gaps()] == [
        "How do I export to CSV?",
        "Can I change my email?",
    ]
    with pytest.raises(ValueError):
        store.add_gap("   ")


def test_resolve_gap_and_filter(store: KnowledgeStore) -> None:
    gap = store.add_gap("Where are invoices?")
    store.add_gap("How do I invite a teammate?")

    resolved = store.resolve_gap(gap.id, resolved_by="kb-billing", resolution="Linked billing article")

    assert resolved.status == "resolved"
    assert [item.id for item in store.list_gaps("resolved")] == [gap.id]
    assert len(store.list_gaps("pending")) == 1
    with pytest.raises(ValueError):
        store.list_gaps("closed")


def test_gap_records_survive_reload(store: KnowledgeStore) -> None:
    gap = store.add_gap("Is there a dark mode?", page="/settings")

    [reloaded] = store.load().gaps

    assert isinstance(reloaded, GapItem)
    assert reloaded == gap


def test_write_failure_raises_storage_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocked"
    blocker.write_text("not a directory", encoding="utf-8")
    store = KnowledgeStore(blocker)

    with pytest.raises(StorageError):
        store.save(KnowledgeBase(items=[_item()]))
