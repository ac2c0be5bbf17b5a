import azure.functions as func
import logging
import json

from azurefunctions.extensions.http.fastapi import Request, Response

from brand_orc import BrandOrchestrator
from shared import config
from shared.exceptions import MissingRequiredFieldError
from shared.kv_store import get_kv_store
from shared.progress_log import read_progress

app = func.FunctionApp(http_auth_level=func.AuthLevel.FUNCTION)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": config.CORS_ALLOWED_ORIGIN,
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, x-functions-key",
}


def json_response(payload, status_code: int = 200) -> Response:
    return Response(
        json.dumps(payload),
        media_type="application/json",
        status_code=status_code,
        headers=CORS_HEADERS,
    )


def preflight() -> Response:
    return Response(status_code=204, headers=CORS_HEADERS)


@app.route(
    route="brand-assistant", methods=[func.HttpMethod.POST, func.HttpMethod.OPTIONS]
)
async def brand_assistant(req: Request) -> Response:
    """Runs one assistant turn and returns the reply with brands, pitches and comms."""
    if req.method == "OPTIONS":
        return preflight()
    logging.info("[brand-assistant] Python HTTP trigger function processed a request.")

    try:
        req_body = await req.json()
    except json.JSONDecodeError:
        return json_response({"error": "Invalid JSON in request body"}, 400)
    if not isinstance(req_body, dict) or not (req_body.get("userMessage") or "").strip():
        return json_response({"error": "userMessage is required"}, 400)

    try:
        orchestrator = BrandOrchestrator()
        result = await orchestrator.handle_turn(req_body)
        return json_response(result)
    except MissingRequiredFieldError as e:
        return json_response({"error": str(e)}, 400)
    except Exception as e:
        logging.exception(f"[brand-assistant] Error processing turn: {str(e)}")
        return json_response({"error": "Internal server error"}, 500)


@app.route(route="progress", methods=[func.HttpMethod.GET, func.HttpMethod.OPTIONS])
async def progress(req: Request) -> Response:
    """Progress steps for a running or finished turn, for polling clients."""
    if req.method == "OPTIONS":
        return preflight()

    session_id = req.query_params.get("sessionId")
    run_id = req.query_params.get("runId")
    if not session_id or not run_id:
        return json_response(
            {"error": "sessionId and runId query parameters are required"}, 400
        )

    try:
        state = await read_progress(get_kv_store(), session_id, run_id)
        return json_response(state)
    except Exception as e:
        logging.error(f"Error in GET /progress: {str(e)}")
        return json_response({"error": "Internal server error"}, 500)


@app.route(
    route="partnership/refresh",
    methods=[func.HttpMethod.POST, func.HttpMethod.OPTIONS],
)
async def refresh_partnership(req: Request) -> Response:
    """Re-resolves the session's project from the CRM and stores it."""
    if req.method == "OPTIONS":
        return preflight()
    logging.info("[partnership-refresh] Python HTTP trigger function processed a request.")

    try:
        req_body = await req.json()
    except json.JSONDecodeError:
        return json_response({"error": "Invalid JSON in request body"}, 400)
    if not isinstance(req_body, dict):
        return json_response({"error": "Request body must be a JSON object"}, 400)

    try:
        orchestrator = BrandOrchestrator()
        result = await orchestrator.refresh_partnership(
            req_body.get("sessionId"), req_body.get("projectName")
        )
        return json_response(result)
    except MissingRequiredFieldError as e:
        return json_response({"error": str(e)}, 400)
    except Exception as e:
        logging.exception(f"[partnership-refresh] Error refreshing project: {str(e)}")
        return json_response({"error": "Internal server error"}, 500)
