"""HTTP endpoints: event ingestion, on-demand dispatch and health."""
import json
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool

from boxsync import settings
from boxsync.logging_conf import logger


def _decode_body(raw: bytes) -> Any:
    """Decode the request body, keeping undecodable input instead of dropping it."""
    text = raw.decode("utf-8", errors="replace")
    try:
        payload = json.loads(text)
    except ValueError:
        return {"raw": _strip_nul(text)}
    # jsonb cannot store \u0000; keep the event with the original text instead
    if "\\u0000" in json.dumps(payload):
        return {"raw": _strip_nul(text)}
    return payload


def _strip_nul(text: str) -> str:
    return text.replace("\x00", "\\u0000")


def create_app(store, dispatcher=None, cache=None) -> FastAPI:
    """Build the FastAPI app around an already-constructed queue store."""
    app = FastAPI(title="boxsync", docs_url=None, redoc_url=None)

    @app.post("/webhooks/order-allocated")
    async def order_allocated(request: Request):
        # Body is read raw so that any shape is accepted and stored as-is
        payload = _decode_body(await request.body())

        webhook_type = payload.get("webhook_type") if isinstance(payload, dict) else None
        if webhook_type is not None and webhook_type != settings.ALLOCATED_WEBHOOK_TYPE:
            logger.info(f"Ignored webhook: {webhook_type}")
            return PlainTextResponse("Ignored", status_code=200)

        try:
            item = await run_in_threadpool(store.enqueue, payload)
        except Exception as e:
            logger.error(f"Failed to persist event: {e}", exc_info=True)
            return PlainTextResponse("Error", status_code=500)

        return PlainTextResponse(f"OK {item.id}", status_code=200)

    @app.post("/dispatch")
    def dispatch():
        if dispatcher is None:
            return JSONResponse({"error": "dispatcher not configured"}, status_code=503)
        summary = dispatcher.run_once()
        return summary.as_dict()

    @app.get("/health")
    def health():
        body = {"status": "ok"}
        try:
            body["queue"] = store.count_by_status()
        except Exception as e:
            logger.error(f"Health check could not read queue: {e}")
            return JSONResponse({"status": "error", "error": str(e)}, status_code=503)
        if cache is not None:
            snapshot = cache.snapshot
            body["reference_cache"] = {
                "products": len(snapshot.products),
                "box_classes": len(snapshot.box_classes),
                "age_seconds": cache.age(),
            }
        return body

    return app
