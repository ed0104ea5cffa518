"""FastAPI app entrypoint."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, WebSocket, WebSocketDisconnect

from projsync.api.deps import get_registry, shutdown
from projsync.api.routes.projects import router as projects_router
from projsync.api.schemas.projects import ProjectSummary
from projsync.core.project_model import ProjectModel
from projsync.core.registry import ProjectRegistry


@asynccontextmanager
async def _lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    await shutdown()


def create_app() -> FastAPI:
    app = FastAPI(title="projsync API", version="0.1.0", lifespan=_lifespan)
    app.include_router(projects_router)

    @app.get("/api/v1/health", tags=["system"])
    async def health(registry: ProjectRegistry = Depends(get_registry)) -> dict[str, str | int]:
        return {
            "status": "ok" if registry.connected else "disconnected",
            "projects": len(registry.list_projects()),
        }

    @app.websocket("/api/v1/projects/ws")
    async def project_changes(
        websocket: WebSocket,
        registry: ProjectRegistry = Depends(get_registry),
    ) -> None:
        changed: asyncio.Queue[str] = asyncio.Queue()
        loop = asyncio.get_running_loop()

        def on_change(model: ProjectModel) -> None:
            # models may be driven from a different loop than this socket
            loop.call_soon_threadsafe(changed.put_nowait, model.id)

        unsubscribe = registry.notifier.subscribe(on_change)
        await websocket.accept()
        receive = asyncio.ensure_future(websocket.receive_text())
        try:
            while True:
                next_change = asyncio.ensure_future(changed.get())
                done, _ = await asyncio.wait(
                    {receive, next_change}, return_when=asyncio.FIRST_COMPLETED
                )
                if next_change in done:
                    await websocket.send_json(_change_payload(registry, next_change.result()))
                else:
                    next_change.cancel()
                if receive in done:
                    # client messages are ignored; this raises once the client leaves
                    receive.result()
                    receive = asyncio.ensure_future(websocket.receive_text())
        except WebSocketDisconnect:
            return
        finally:
            receive.cancel()
            unsubscribe()

    return app


def _change_payload(registry: ProjectRegistry, project_id: str) -> dict[str, object]:
    model = registry.get(project_id)
    if model is None:
        return {"id": project_id, "removed": True}
    return ProjectSummary.from_model(model).model_dump(mode="json")


app = create_app()


def run() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("projsync.api.app:app", host="127.0.0.1", port=8000, reload=False)
