"""FastAPI binding of the sync API.

Every route lives under ``/api``. ``POST /api/login/sync`` sets the
session cookie that all other routes require.
"""

import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, Header, Request, Response
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .. import __version__
from ..context import AppContext
from ..sync.errors import (
    AuthError,
    EntityNotFoundError,
    PreconditionError,
    ProtocolError,
    SyncError,
)
from .routes import SyncApi

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "notesync_session"


def require_session(request: Request) -> None:
    """Reject requests that carry no valid sync session cookie."""
    request.app.state.api.require_session(request.cookies.get(SESSION_COOKIE_NAME))


def create_app(context: AppContext, start_background: bool = False) -> FastAPI:
    """Build the application for *context*.

    Args:
        context: The wired instance.
        start_background: Start the sync, reaper and backup timers with
            the application lifespan.
    """
    api = SyncApi(context)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_background:
            context.start()
        logger.info("notesync API ready (source %s)", context.store.source_id)
        yield
        if start_background:
            context.stop()

    app = FastAPI(title="notesync", version=__version__, lifespan=lifespan)
    app.state.api = api
    app.state.context = context

    _register_error_handlers(app)

    public = APIRouter(prefix="/api")
    router = APIRouter(prefix="/api", dependencies=[Depends(require_session)])

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    @public.post("/login/sync")
    async def login_sync(request: Request, response: Response):
        body = await request.json()
        token = await run_in_threadpool(api.login, body)
        response.set_cookie(SESSION_COOKIE_NAME, token, httponly=True, samesite="strict")
        return {"success": True}

    # ------------------------------------------------------------------
    # Replication
    # ------------------------------------------------------------------

    @router.get("/sync/changed")
    def get_changed(lastSyncId: int = 0, sourceId: str | None = None):
        return api.get_changed(lastSyncId, sourceId)

    @router.get("/sync/check")
    def check():
        return api.check()

    @router.get("/sync/stats")
    def stats():
        return api.stats()

    @router.put("/sync/update")
    async def update(
        request: Request,
        page_count: Annotated[int | None, Header(alias="pageCount")] = None,
        page_index: Annotated[int | None, Header(alias="pageIndex")] = None,
        request_id: Annotated[str | None, Header(alias="requestId")] = None,
    ):
        raw = (await request.body()).decode("utf-8")
        return await run_in_threadpool(
            api.update, raw, page_count, page_index, request_id
        )

    @router.get("/sync/{entity_name}/{entity_id}")
    def get_entity(entity_name: str, entity_id: str):
        return api.get_entity(entity_name, entity_id)

    @router.put("/sync/{entity_name}")
    async def put_entity(
        entity_name: str,
        request: Request,
        page_count: Annotated[int | None, Header(alias="pageCount")] = None,
        page_index: Annotated[int | None, Header(alias="pageIndex")] = None,
        request_id: Annotated[str | None, Header(alias="requestId")] = None,
    ):
        raw = (await request.body()).decode("utf-8")
        return await run_in_threadpool(
            api.put_entity, entity_name, raw, page_count, page_index, request_id
        )

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    @router.post("/sync/now")
    def sync_now():
        return api.sync_now().model_dump(mode="json")

    @router.post("/sync/test")
    def sync_test():
        return api.test()

    @router.post("/sync/force-full-sync")
    def force_full_sync():
        return api.force_full_sync().model_dump(mode="json")

    @router.post("/sync/force-note-sync/{note_id}")
    def force_note_sync(note_id: str):
        return api.force_note_sync(note_id).model_dump(mode="json")

    @router.post("/sync/fill-entity-changes")
    def fill_entity_changes():
        return api.fill_entity_changes()

    @router.post("/sync/queue-sector/{entity_name}/{sector}")
    def queue_sector(entity_name: str, sector: str):
        return api.queue_sector(entity_name, sector)

    @router.post("/sync/finished")
    def sync_finished():
        return api.sync_finished()

    @router.post("/database/backup")
    def backup():
        return api.backup()

    @router.post("/database/vacuum")
    def vacuum():
        return api.vacuum()

    app.include_router(public)
    app.include_router(router)

    @app.get("/health")
    async def health():
        return {"service": "notesync", "version": __version__, "status": "ok"}

    return app


def _register_error_handlers(app: FastAPI) -> None:
    def handler(status_code: int):
        async def handle(request: Request, exc: Exception) -> JSONResponse:
            logger.warning(
                "%s %s -> %d: %s", request.method, request.url.path, status_code, exc
            )
            return JSONResponse(status_code=status_code, content={"detail": str(exc)})

        return handle

    app.add_exception_handler(ProtocolError, handler(400))
    app.add_exception_handler(AuthError, handler(401))
    app.add_exception_handler(EntityNotFoundError, handler(404))
    app.add_exception_handler(PreconditionError, handler(409))
    app.add_exception_handler(SyncError, handler(502))
    app.add_exception_handler(ValueError, handler(400))
