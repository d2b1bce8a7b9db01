"""Cloud Function entry points for the budget engine.

Provides HTTP endpoints for:
- Generating a budget from a narrative (flat or by chapters)
- Resolving a single item into a priced line
- Reading a stored budget
"""

import asyncio
import json
from typing import Dict, Any, Optional, Tuple
from datetime import datetime, date

import structlog
from firebase_functions import https_fn, options
from firebase_admin import initialize_app

from config.errors import BudgetEngineError, ErrorCode, ExtractionError, ValidationError
from services.firestore_service import FirestoreService
from services.generation_events import FirestoreEventSink

# Initialize Firebase Admin SDK
try:
    initialize_app()
except ValueError:
    # Already initialized
    pass

logger = structlog.get_logger()

GENERATION_MODES = ("flat", "chapters")

# ============================================================================
# Helper Functions
# ============================================================================


def success_response(data: Dict[str, Any]) -> Dict[str, Any]:
    """Build success response."""
    return {"success": True, "data": data}


def error_response(code: str, message: str, details: Dict[str, Any] = None) -> Dict[str, Any]:
    """Build error response."""
    return {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": details or {}
        }
    }


def get_request_json(req: https_fn.Request) -> Dict[str, Any]:
    """Extract JSON from request body.

    Raises:
        ValidationError: If JSON is invalid.
    """
    try:
        return req.get_json(force=True) or {}
    except Exception as e:
        raise ValidationError(
            message=f"Invalid JSON in request body: {str(e)}"
        )


CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Max-Age": "3600"
}


def _cors_response() -> https_fn.Response:
    """Return CORS preflight response."""
    return https_fn.Response(
        "",
        status=204,
        headers=CORS_HEADERS
    )


def _json_default(o: Any):
    """JSON serializer for datetimes, including Firestore timestamp types."""
    if isinstance(o, (datetime, date)):
        return o.isoformat()
    return str(o)


def _json_response(data: dict, status: int = 200) -> https_fn.Response:
    """Return JSON response with CORS headers."""
    return https_fn.Response(
        json.dumps(data, default=_json_default),
        status=status,
        mimetype="application/json",
        headers=CORS_HEADERS
    )


def _parse_float(value: Any, field: str) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field=field)


def _build_orchestrator(firestore_service: FirestoreService):
    from agents.factory import create_budget_orchestrator
    from config.settings import settings

    settings.validate()

    return create_budget_orchestrator(
        firestore_service=firestore_service,
        event_sink=FirestoreEventSink(firestore_service)
    )


# ============================================================================
# Request Handlers
# ============================================================================


async def handle_generate_budget(
    data: Dict[str, Any],
    orchestrator=None,
    firestore_service: Optional[FirestoreService] = None
) -> Tuple[Dict[str, Any], int]:
    """Generate and store a budget.

    Request body:
    {
        "narrative": "Reformar baño de 6 m2 ...",
        "leadId": "lead-123",          // optional, enables progress events
        "mode": "flat" | "chapters",   // optional, default "flat"
        "totalArea": 90,               // optional, chapters mode
        "projectContext": "..."        // optional, chapters mode
    }

    Returns:
        (response body, HTTP status).

    Raises:
        ValidationError: If the request is malformed.
    """
    narrative = (data.get("narrative") or data.get("userRequest") or "").strip()
    if not narrative:
        raise ValidationError("Missing narrative in request", field="narrative")

    mode = data.get("mode") or "flat"
    if mode not in GENERATION_MODES:
        raise ValidationError(f"mode must be one of {', '.join(GENERATION_MODES)}", field="mode")

    lead_id = data.get("leadId")
    firestore_service = firestore_service or FirestoreService()
    orchestrator = orchestrator or _build_orchestrator(firestore_service)

    logger.info("generate_budget_request_received", lead_id=lead_id, mode=mode)

    try:
        if mode == "chapters":
            budget = await orchestrator.generate_by_chapters(
                narrative,
                session_id=lead_id,
                total_area=_parse_float(data.get("totalArea"), "totalArea"),
                project_context=data.get("projectContext")
            )
        else:
            budget = await orchestrator.generate(narrative, session_id=lead_id)
    except ExtractionError as e:
        return error_response(e.code, e.message, e.details), 422

    await firestore_service.save_budget(budget)
    return success_response(budget.to_firestore()), 200


async def handle_resolve_item(
    data: Dict[str, Any],
    orchestrator=None
) -> Tuple[Dict[str, Any], int]:
    """Resolve one task into a priced line item.

    Request body:
    {
        "task": "Alicatado con Keraben Bottega",
        "quantity": 12,
        "unit": "m2",
        "context": "..."   // optional
    }
    """
    task = (data.get("task") or "").strip()
    if not task:
        raise ValidationError("Missing task in request", field="task")

    quantity = _parse_float(data.get("quantity"), "quantity")
    if quantity is None:
        quantity = 1.0
    if quantity < 0:
        raise ValidationError("quantity must be >= 0", field="quantity")

    orchestrator = orchestrator or _build_orchestrator(FirestoreService())
    item = await orchestrator.resolver.resolve_item(
        task,
        quantity,
        data.get("unit") or "ud",
        data.get("context")
    )
    return success_response(item.model_dump(by_alias=True, exclude_none=True, mode="json")), 200


async def handle_get_budget(
    data: Dict[str, Any],
    firestore_service: Optional[FirestoreService] = None
) -> Tuple[Dict[str, Any], int]:
    """Read a stored budget by ID."""
    budget_id = data.get("budgetId")
    if not budget_id:
        raise ValidationError("Missing budgetId in request", field="budgetId")

    firestore_service = firestore_service or FirestoreService()
    budget = await firestore_service.get_budget(budget_id)
    if budget is None:
        return error_response(
            ErrorCode.BUDGET_NOT_FOUND,
            "Budget not found",
            {"budgetId": budget_id}
        ), 404
    return success_response(budget.to_firestore()), 200


def _dispatch(req: https_fn.Request, handler, event_name: str) -> https_fn.Response:
    """Run an async handler and map errors to HTTP responses."""
    if req.method == "OPTIONS":
        return _cors_response()

    try:
        data = get_request_json(req)
        body, status = asyncio.run(handler(data))
        return _json_response(body, status=status)

    except ValidationError as e:
        return _json_response(
            error_response(e.code, e.message, e.details),
            status=400
        )
    except BudgetEngineError as e:
        logger.error(f"{event_name}_error", error=e.message, code=e.code)
        return _json_response(
            error_response(e.code, e.message, e.details),
            status=500
        )
    except Exception as e:
        logger.exception(f"{event_name}_exception", error=str(e))
        return _json_response(
            error_response(
                ErrorCode.GENERATION_FAILED,
                f"Request failed: {str(e)}"
            ),
            status=500
        )


# ============================================================================
# HTTP Endpoints
# ============================================================================


@https_fn.on_request(
    timeout_sec=540,
    memory=options.MemoryOption.GB_1,
    region="europe-west1"
)
def generate_budget(req: https_fn.Request) -> https_fn.Response:
    """Generate a budget from a renovation narrative."""
    return _dispatch(req, handle_generate_budget, "generate_budget")


@https_fn.on_request(
    timeout_sec=180,
    memory=options.MemoryOption.MB_512,
    region="europe-west1"
)
def resolve_item(req: https_fn.Request) -> https_fn.Response:
    """Resolve a single task into a priced line item."""
    return _dispatch(req, handle_resolve_item, "resolve_item")


@https_fn.on_request(
    timeout_sec=30,
    memory=options.MemoryOption.MB_256,
    region="europe-west1"
)
def get_budget(req: https_fn.Request) -> https_fn.Response:
    """Read a stored budget."""
    return _dispatch(req, handle_get_budget, "get_budget")
