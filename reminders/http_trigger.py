"""
HTTP Trigger for the Invoice Reminder Job

An external scheduler calls POST /send-reminders (no payload) once a day.
Preflight OPTIONS requests are answered without running the job.

Responses:
    200 {"success": true, "remindersSent": <int>, "counts": {...}, "stateUpdateFailures": <int>}
    500 {"success": false, "error": "<message>"}

Per-invoice outcomes are logged, never returned to the caller.

Serve with:
    uvicorn reminders.http_trigger:app --host 0.0.0.0 --port 8000
"""

import os
from typing import Callable, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reminders.config import ReminderConfig
from reminders.logger import get_logger
from reminders.models import RunResult
from reminders.orchestrator import run_invoice_reminders

load_dotenv()

logger = get_logger(__name__)

TRIGGER_PATH = "/send-reminders"
CORS_ALLOW_HEADERS = "authorization, x-client-info, apikey, content-type"


def create_app(
    config: Optional[ReminderConfig] = None,
    runner: Optional[Callable[[], RunResult]] = None
) -> FastAPI:
    """
    Build the trigger application.

    Args:
        config: Runtime configuration (default: ReminderConfig.from_env())
        runner: Runs one batch and returns its RunResult
                (default: run_invoice_reminders with `config`)
    """
    if config is None:
        config = ReminderConfig.from_env()
    if runner is None:
        def runner() -> RunResult:
            return run_invoice_reminders(config)

    app = FastAPI(title="Invoice Reminder Trigger", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["*"],
    )

    allow_any_origin = "*" in config.cors_origins

    def allowed_origin(origin: Optional[str]) -> Optional[str]:
        # Access-Control-Allow-Origin takes a single origin; echo it only when listed
        if allow_any_origin:
            return "*"
        if origin and origin in config.cors_origins:
            return origin
        return None

    @app.options(TRIGGER_PATH)
    def preflight(request: Request) -> Response:
        headers = {
            "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
            "Access-Control-Allow-Methods": "POST, OPTIONS",
        }
        origin = allowed_origin(request.headers.get("origin"))
        if origin is not None:
            headers["Access-Control-Allow-Origin"] = origin
        return Response(content="ok", media_type="text/plain", headers=headers)

    @app.post(TRIGGER_PATH)
    def send_reminders() -> JSONResponse:
        logger.info("Reminder run triggered over HTTP")
        try:
            result = runner()
        except Exception as e:
            error_msg = f"Unexpected error in reminder run: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return JSONResponse(status_code=500, content={"success": False, "error": error_msg})

        if not result.success or result.summary is None:
            return JSONResponse(
                status_code=500,
                content={"success": False, "error": result.error or "Reminder run failed"},
            )

        return JSONResponse(status_code=200, content={"success": True, **result.summary.to_dict()})

    return app


app = create_app()


def main() -> None:
    import uvicorn

    host = os.getenv("REMINDER_HTTP_HOST", "0.0.0.0")
    port = int(os.getenv("REMINDER_HTTP_PORT", "8000"))
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
