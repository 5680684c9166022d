"""FastAPI application: the provider webhook plus admin call inspection.

Endpoints:

  GET|POST /yemot                      Provider webhook, entry at the main menu
  GET|POST /yemot/{extension}          Provider webhook, entry state by extension
  GET      /health                     Health check
  GET      /api/calls                  Active calls (admin)
  GET      /api/calls/{call_id}        One call with its event log (admin)
  WS       /api/calls/{call_id}/events Live call events (admin, ?token=)

The webhook flow:
  1. The provider hits /yemot with ApiCallId, ApiPhone and ApiExtension
  2. A new call id gets a YemotChannel, a CallSession and a task running
     the MenuRouter; later hits of the same call are fed to that channel
  3. Each response body is the next provider action (read, messages,
     go_to_folder)
  4. ``hangup=yes`` unwinds the call task; the channel is forgotten once
     the task finishes
"""

from __future__ import annotations

# Load .env into os.environ before settings are read
from dotenv import load_dotenv
load_dotenv()

import asyncio
import logging
import re
import time
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import Optional

# Configure root logger early so all jobline loggers have a handler and
# are visible when run via `uvicorn jobline.app:app`.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-20s %(levelname)-7s %(message)s",
)

from fastapi import Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, PlainTextResponse

from jobline.auth import require_admin_token, require_admin_ws
from jobline.channels.yemot_channel import HANGUP_ACTION, YemotChannel
from jobline.config import Settings, settings
from jobline.directory import YemotDirectoryClient
from jobline.events import CLOSED, get_event_sink
from jobline.payment import PaymentProcessor, SimulatedProcessor
from jobline.router import run_call
from jobline.session import CallSession, get_active_sessions, get_session, redact_pii
from jobline.stores import JobBoardStore, create_store

log = logging.getLogger("jobline.app")

_START_TIME = time.time()

_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")

ENDED_CALLS_KEPT = 1000


def _validate_id(value: str) -> str:
    """Raise 400 for call ids that could not have come from the provider."""
    if not _ID_PATTERN.match(value):
        raise HTTPException(status_code=400, detail="Invalid call id")
    return value


def create_app(
    store: Optional[JobBoardStore] = None,
    directory: Optional[YemotDirectoryClient] = None,
    processor: Optional[PaymentProcessor] = None,
    config: Optional[Settings] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators default to what the settings describe; tests pass their
    own (a seeded MemoryStore, a mocked directory).
    """
    config = config or settings
    for warning in config.validate_startup():
        log.warning(warning)

    store = store or create_store(config)
    directory = directory or YemotDirectoryClient(config.yemot_api_token, config.yemot_api_base)
    processor = processor or SimulatedProcessor()

    channels: dict[str, YemotChannel] = {}
    tasks: set[asyncio.Task] = set()
    # Recently finished call ids; late hits for them get a hang-up, not a new call
    ended: OrderedDict[str, None] = OrderedDict()

    def _remember_ended(call_id: str) -> None:
        ended[call_id] = None
        while len(ended) > ENDED_CALLS_KEPT:
            ended.popitem(last=False)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        for task in list(tasks):
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await store.close()

    app = FastAPI(
        title="Jobline",
        description="Telephone front end to the job board (Yemot HaMashiach webhook)",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.channels = channels

    def _start_call(params: dict[str, str], extension: str) -> YemotChannel:
        call_id = params["ApiCallId"]
        channel = YemotChannel(
            params,
            inactivity_timeout=config.session_timeout_seconds,
            response_timeout=config.webhook_response_timeout_seconds,
        )
        session = CallSession(
            channel,
            store,
            call_id=call_id,
            caller_phone=params.get("ApiPhone", ""),
            extension=extension,
            directory=directory,
            payment_processor=processor,
            config=config,
            events=get_event_sink(call_id),
        )
        channels[call_id] = channel
        task = asyncio.create_task(run_call(session), name=f"call-{call_id}")
        tasks.add(task)

        def _finished(done: asyncio.Task) -> None:
            tasks.discard(done)
            if channels.get(call_id) is channel:
                del channels[call_id]
            _remember_ended(call_id)
            if not done.cancelled() and done.exception() is not None:
                log.error("Call task %s failed: %r", call_id, done.exception())

        task.add_done_callback(_finished)
        log.info("New call %s from %s (extension=%r)", call_id, redact_pii(session.caller_phone), extension)
        return channel

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health() -> JSONResponse:
        """Lightweight health check: confirms the event loop is responsive."""
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse({
            "status": "ok",
            "uptime": uptime,
            "active_calls": len(get_active_sessions()),
        })

    # ── Provider webhook ───────────────────────────────────────

    @app.api_route("/yemot", methods=["GET", "POST"])
    @app.api_route("/yemot/{extension:path}", methods=["GET", "POST"])
    async def yemot_webhook(request: Request, extension: str = "") -> PlainTextResponse:
        params = dict(request.query_params)
        if request.method == "POST":
            form = await request.form()
            params.update({key: str(value) for key, value in form.items()})

        call_id = params.get("ApiCallId", "")
        if not call_id:
            log.warning("Webhook hit without ApiCallId")
            return PlainTextResponse(HANGUP_ACTION)

        channel = channels.get(call_id)
        if channel is None:
            if params.get("hangup") == "yes":
                return PlainTextResponse("")
            if call_id in ended:
                return PlainTextResponse(HANGUP_ACTION)
            channel = _start_call(params, extension or params.get("ApiExtension", ""))
        elif params.get("hangup") == "yes":
            channels.pop(call_id, None)

        body = await channel.handle_request(params)
        return PlainTextResponse(body)

    # ── Admin: call inspection ─────────────────────────────────

    @app.get("/api/calls", dependencies=[Depends(require_admin_token)])
    async def list_calls() -> JSONResponse:
        """Return summary of all active calls."""
        sessions = get_active_sessions()
        return JSONResponse({
            "calls": [s.summary() for s in sessions.values()],
            "count": len(sessions),
        })

    @app.get("/api/calls/{call_id}", dependencies=[Depends(require_admin_token)])
    async def get_call(call_id: str) -> JSONResponse:
        session = get_session(_validate_id(call_id))
        if session is None:
            raise HTTPException(status_code=404, detail="Call not found")
        return JSONResponse({**session.summary(), "events": session.events.event_log})

    @app.websocket("/api/calls/{call_id}/events")
    async def call_events(websocket: WebSocket, call_id: str, token: str = "") -> None:
        """WebSocket endpoint that streams a live call's events."""
        try:
            await require_admin_ws(websocket, token)
        except HTTPException:
            return

        session = get_session(call_id)
        if session is None:
            await websocket.close(code=4004, reason="Call not found")
            return

        await websocket.accept()
        queue = session.events.subscribe()
        try:
            while True:
                event = await queue.get()
                await websocket.send_json(event)
                if event["type"] == CLOSED:
                    await websocket.close()
                    break
        except WebSocketDisconnect:
            pass
        except Exception as e:
            log.warning("Event stream error for %s: %s", call_id, e)
        finally:
            session.events.unsubscribe(queue)

    return app


# ── Module-level app instance for uvicorn ──────────────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "jobline.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=log_config,
    )
