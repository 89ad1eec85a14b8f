"""crawlguard API: start runs in the background and stream their progress over SSE."""

import asyncio
import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from crawlguard.core.scanner import CrawlGuardScanner, ScanResult
from crawlguard.models.errors import CrawlGuardError
from crawlguard.utils.config import Settings, get_settings

app = FastAPI(title="crawlguard API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

scans: dict[str, dict] = {}
# Per-scan event queues for SSE streaming
_event_queues: dict[str, list[asyncio.Queue]] = {}


class ScanRequest(BaseModel):
    url: str
    max_pages: Optional[int] = Field(default=None, ge=1)
    max_depth: Optional[int] = Field(default=None, ge=0)
    workers: Optional[int] = Field(default=None, ge=1)
    test_buttons: bool = False


class ScanResponse(BaseModel):
    scan_id: str
    status: str
    url: str


@app.get("/health")
def health():
    return {"status": "ok", "service": "crawlguard-api", "version": "0.1.0"}


@app.post("/api/v1/scan", response_model=ScanResponse)
async def start_scan(req: ScanRequest, background_tasks: BackgroundTasks):
    url = req.url.strip()
    if not url.startswith("http"):
        url = f"https://{url}"

    scan_id = str(uuid.uuid4())[:8]
    base = get_settings()
    try:
        settings = get_settings(
            BASE_URL=url,
            MAX_PAGES=req.max_pages,
            MAX_DEPTH=req.max_depth,
            CRAWLER_WORKERS=req.workers,
            OUTPUT_DIR=str(Path(base.OUTPUT_DIR) / scan_id),
        )
        settings.require_credentials()
    except CrawlGuardError as e:
        raise HTTPException(status_code=422, detail=str(e))

    scans[scan_id] = {
        "scan_id": scan_id,
        "url": url,
        "status": "running",
        "started_at": datetime.now().isoformat(),
        "completed_at": None,
        "result": None,
        "error": None,
    }
    _event_queues[scan_id] = []

    background_tasks.add_task(run_scan, scan_id, settings, req.test_buttons)

    return ScanResponse(scan_id=scan_id, status="running", url=url)


@app.get("/api/v1/scan/{scan_id}/stream")
async def scan_stream(scan_id: str, request: Request):
    """SSE endpoint that streams live progress events during a scan."""
    if scan_id not in scans:
        raise HTTPException(status_code=404, detail="Scan not found")

    queue: asyncio.Queue = asyncio.Queue()
    _event_queues.setdefault(scan_id, []).append(queue)

    async def event_generator():
        try:
            while True:
                if await request.is_disconnected():
                    break

                try:
                    event = await asyncio.wait_for(queue.get(), timeout=30.0)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue

                if event is None:
                    break

                event_type = event.get("type", "update")
                yield f"event: {event_type}\ndata: {json.dumps(event)}\n\n"

                if event_type in ("scan_complete", "scan_failed"):
                    break
        finally:
            if queue in _event_queues.get(scan_id, []):
                _event_queues[scan_id].remove(queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@app.get("/api/v1/scan/{scan_id}")
async def get_scan(scan_id: str):
    if scan_id not in scans:
        raise HTTPException(status_code=404, detail="Scan not found")

    scan = scans[scan_id]
    payload = {
        "scan_id": scan_id,
        "status": scan["status"],
        "url": scan["url"],
        "started_at": scan["started_at"],
        "completed_at": scan["completed_at"],
        "error": scan.get("error"),
    }

    result: Optional[ScanResult] = scan["result"]
    if scan["status"] == "completed" and result is not None:
        payload.update({
            "discovery": result.discovery.summary.to_dict() if result.discovery else None,
            "adjusted_limits": _adjusted_limits(result),
            "urls": result.discovery.urls if result.discovery else [],
            "validation": result.validation.summary.to_dict() if result.validation else None,
            "failures": [r.to_dict() for r in result.validation.failures] if result.validation else [],
            "interactions": {
                url: [r.to_dict() for r in items] for url, items in result.interactions.items()
            },
            "errors": result.errors,
        })
    return payload


@app.get("/api/v1/scans")
async def list_scans():
    return [
        {
            "scan_id": s["scan_id"],
            "url": s["url"],
            "status": s["status"],
            "started_at": s["started_at"],
            "critical": _critical_count(s.get("result")),
        }
        for s in scans.values()
    ]


def _broadcast_event(scan_id: str, event_type: str, data: dict):
    """Push an SSE event to all connected clients for this scan."""
    event = {"type": event_type, **data}
    for q in _event_queues.get(scan_id, []):
        try:
            q.put_nowait(event)
        except asyncio.QueueFull:
            pass


async def run_scan(scan_id: str, settings: Settings, test_buttons: bool = False):
    def on_progress(event_type: str, data: dict):
        _broadcast_event(scan_id, event_type, data)

    try:
        scanner = CrawlGuardScanner(settings, on_progress=on_progress)
        result = await scanner.scan(test_buttons=test_buttons)
        scans[scan_id]["status"] = "completed"
        scans[scan_id]["result"] = result
    except Exception as e:
        scans[scan_id]["status"] = "failed"
        scans[scan_id]["error"] = str(e)[:500]
        _broadcast_event(scan_id, "scan_failed", {"error": str(e)[:500]})
    scans[scan_id]["completed_at"] = datetime.now().isoformat()

    # Signal end to all SSE listeners
    for q in _event_queues.get(scan_id, []):
        try:
            q.put_nowait(None)
        except asyncio.QueueFull:
            pass


def _adjusted_limits(result: ScanResult) -> Optional[dict]:
    if not result.discovery or result.discovery.output.adjusted_max_pages is None:
        return None
    return {
        "maxPages": result.discovery.output.adjusted_max_pages,
        "reason": result.discovery.output.adjusted_reason,
    }


def _critical_count(result: Optional[ScanResult]) -> Optional[int]:
    if result is None or result.validation is None:
        return None
    return result.validation.summary.critical
