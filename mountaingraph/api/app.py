"""HTTP entry points for sweeps, background extraction and ledger sync."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from mountaingraph.pipeline.workflow import enqueue_prefix
from mountaingraph.services import Services

router = APIRouter(tags=["Extraction"])


class ExtractGraphRequest(BaseModel):
    limit: Optional[int] = None
    cursor: Optional[str] = None
    bucket: Optional[str] = None
    prefix: Optional[str] = None


def _services(request: Request) -> Services:
    return request.app.state.services


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


@router.post("/extract-graph", summary="Process one page of a bucket listing")
def extract_graph(request: Request, body: Optional[ExtractGraphRequest] = None):
    """Run one sweep page and return aggregate stats plus the next cursor.

    Individual file failures are reported in ``failed`` and never change the
    status code; only a missing bucket (400) or a request-level error (500) does.
    """
    services = _services(request)
    body = body or ExtractGraphRequest()
    limit = body.limit or services.config.sweep.default_limit
    bucket_name = body.bucket or services.config.buckets.default_bucket
    prefix = body.prefix or services.config.buckets.default_prefix

    if bucket_name not in services.buckets:
        return _error(f"Bucket {bucket_name} not found", status.HTTP_400_BAD_REQUEST)

    try:
        result = services.orchestrator.sweep(
            limit=limit, cursor=body.cursor or None, bucket_name=bucket_name, prefix=prefix
        )
    except Exception as e:
        logger.exception(f"Sweep request failed: {e}")
        return _error(str(e), status.HTTP_500_INTERNAL_SERVER_ERROR)

    return {
        "success": True,
        "stats": result.stats.model_dump(by_alias=True),
        "next_cursor": result.next_cursor,
        "failed": result.failed,
    }


@router.post("/extraction/automagic", summary="Queue every document under the prefix")
def automagic(request: Request, background_tasks: BackgroundTasks):
    services = _services(request)
    bucket_name = services.config.buckets.default_bucket
    bucket = services.buckets.get(bucket_name)
    if bucket is None:
        return _error(f"Bucket {bucket_name} not configured", status.HTTP_500_INTERNAL_SERVER_ERROR)

    try:
        enqueued = enqueue_prefix(
            services.queue,
            bucket,
            bucket_name,
            services.config.buckets.default_prefix,
            page_size=services.config.sweep.page_size,
            extensions=services.config.sweep.extensions,
        )
    except Exception as e:
        logger.exception(f"Enqueue failed: {e}")
        return _error(str(e), status.HTTP_500_INTERNAL_SERVER_ERROR)

    background_tasks.add_task(services.drain_queue)
    return {
        "success": True,
        "message": f"Enqueued {enqueued} files for background extraction.",
    }


@router.post("/sync-ledger", summary="Mirror the ledger into the graph store")
def sync_ledger(request: Request):
    services = _services(request)
    try:
        stats = services.ledger_sync().sync()
    except Exception as e:
        logger.exception(f"Ledger sync failed: {e}")
        return JSONResponse(
            {"error": "Sync failed", "details": str(e)},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    return {"message": "Sync completed successfully", "stats": stats.model_dump()}


def create_app(services: Services) -> FastAPI:
    app = FastAPI(title="mountaingraph", version="0.1.0")
    app.state.services = services
    app.include_router(router)

    @app.get("/health", tags=["Health"])
    def health():
        return {"status": "ok", "store": services.config.store.backend}

    return app
