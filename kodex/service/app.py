"""FastAPI application exposing the knowledge base to the review dashboard."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import ConfigError, load_config
from ..llm import GenerationError
from ..orchestrator import ItemPinnedError, Orchestrator
from ..storage import KnowledgeStore, RecordNotFoundError, StorageError

_T = TypeVar("_T")


class HealthResponse(BaseModel):
    status: str


class DocUpdateRequest(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    pages: Optional[List[str]] = None
    status: Optional[str] = None
    edited_by: Optional[str] = None


class RegenerateRequest(BaseModel):
    id: str
    mock: bool = False


class ScanRequest(BaseModel):
    changed_only: bool = False
    dry_run: bool = False
    generate: bool = True
    mock: bool = False


class ScanResponse(BaseModel):
    files_scanned: int
    features: int
    generated: int = 0
    updated: int = 0
    skipped: int = 0
    tokens_used: int = 0
    failures: List[str] = []
    dry_run: bool = False


class GapRequest(BaseModel):
    question: str
    page: Optional[str] = None


async def _in_thread(func: Callable[[], _T]) -> _T:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:  # pragma: no cover
        return func()
    return await loop.run_in_executor(None, func)


def create_app(
    project_root: Path | str,
    store_factory: Callable[[], KnowledgeStore] | None = None,
    orchestrator_factory: Callable[[], Orchestrator] | None = None,
) -> FastAPI:
    """Create the FastAPI application serving the project's knowledge base."""
    root = Path(project_root).expanduser().resolve()

    def _default_store() -> KnowledgeStore:
        return KnowledgeStore.from_config(load_config(root))

    make_store = store_factory or _default_store
    make_orchestrator = orchestrator_factory or Orchestrator

    # /docs serves knowledge items, so the interactive schema moves aside.
    app = FastAPI(
        title="Kodex Knowledge Base",
        version="1.0.0",
        docs_url="/swagger",
        redoc_url=None,
    )

    async def get_store() -> KnowledgeStore:
        return await _in_thread(make_store)

    async def get_orchestrator() -> Orchestrator:
        return make_orchestrator()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/docs")
    async def list_docs(
        status: Optional[str] = None,
        store: KnowledgeStore = Depends(get_store),
    ) -> Dict[str, Any]:
        items = (await _in_thread(store.load)).items
        if status is not None:
            items = [item for item in items if item.status == status]
        return {"items": [item.to_dict() for item in items]}

    @app.get("/docs/{item_id}")
    async def get_doc(item_id: str, store: KnowledgeStore = Depends(get_store)) -> Dict[str, Any]:
        item = await _in_thread(lambda: store.get_item(item_id))
        return item.to_dict()

    @app.put("/docs/{item_id}")
    async def update_doc(
        item_id: str,
        payload: DocUpdateRequest,
        store: KnowledgeStore = Depends(get_store),
    ) -> Dict[str, Any]:
        updates = payload.model_dump(exclude={"edited_by"}, exclude_none=True)
        item = await _in_thread(
            lambda: store.update_item(item_id, updates, edited_by=payload.edited_by)
        )
        return item.to_dict()

    @app.delete("/docs/{item_id}")
    async def delete_doc(item_id: str, store: KnowledgeStore = Depends(get_store)) -> Dict[str, str]:
        await _in_thread(lambda: store.delete_item(item_id))
        return {"status": "deleted", "id": item_id}

    @app.post("/docs/{item_id}/pin")
    async def pin_doc(item_id: str, store: KnowledgeStore = Depends(get_store)) -> Dict[str, Any]:
        item = await _in_thread(lambda: store.set_pinned(item_id, True))
        return item.to_dict()

    @app.post("/docs/{item_id}/unpin")
    async def unpin_doc(item_id: str, store: KnowledgeStore = Depends(get_store)) -> Dict[str, Any]:
        item = await _in_thread(lambda: store.set_pinned(item_id, False))
        return item.to_dict()

    @app.post("/regenerate")
    async def regenerate(
        payload: RegenerateRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> Dict[str, Any]:
        item = await _in_thread(
            lambda: orchestrator.regenerate_item(root, payload.id, mock=payload.mock)
        )
        return item.to_dict()

    @app.post("/scan", response_model=ScanResponse)
    async def scan(
        payload: ScanRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> ScanResponse:
        outcome = await _in_thread(
            lambda: orchestrator.run_scan(
                root,
                changed_only=payload.changed_only,
                dry_run=payload.dry_run,
                generate=payload.generate,
                mock=payload.mock,
            )
        )
        response = ScanResponse(
            files_scanned=outcome.code_map.meta.files_scanned,
            features=len(outcome.code_map.features),
            dry_run=outcome.dry_run,
        )
        if outcome.result is not None:
            response.generated = outcome.result.generated
            response.updated = outcome.result.updated
            response.skipped = outcome.result.skipped
            response.tokens_used = outcome.result.tokens_used
            response.failures = list(outcome.result.failures)
        return response

    @app.get("/gaps")
    async def list_gaps(
        status: Optional[str] = None,
        store: KnowledgeStore = Depends(get_store),
    ) -> Dict[str, Any]:
        gaps = await _in_thread(lambda: store.list_gaps(status))
        return {"gaps": [gap.to_dict() for gap in gaps]}

    @app.post("/gaps")
    async def add_gap(payload: GapRequest, store: KnowledgeStore = Depends(get_store)) -> Dict[str, Any]:
        gap = await _in_thread(lambda: store.add_gap(payload.question, page=payload.page))
        return gap.to_dict()

    @app.exception_handler(RecordNotFoundError)
    async def not_found_handler(_: Any, exc: RecordNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ItemPinnedError)
    async def pinned_handler(_: Any, exc: ItemPinnedError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(GenerationError)
    async def generation_handler(_: Any, exc: GenerationError) -> JSONResponse:
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.exception_handler(ConfigError)
    async def config_handler(_: Any, exc: ConfigError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def value_error_handler(_: Any, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(StorageError)
    async def storage_handler(_: Any, exc: StorageError) -> JSONResponse:  # pragma: no cover
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    return app


def run_service(
    project_root: Path | str = ".", host: str = "127.0.0.1", port: int = 3333
) -> None:  # pragma: no cover - integration path
    import uvicorn

    app = create_app(project_root)
    uvicorn.run(app, host=host, port=port)
