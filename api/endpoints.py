"""
Remote action endpoint.

A single POST endpoint receives `{action, payload}` and hands it to the
`ActionDispatcher`. Successful results are returned as JSON (including a JSON
`null` when there is nothing to return). Failures come back as a JSON body
with an `error` message and a non-success status, which the client treats as
"no data" everywhere except checkout.
"""

import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from core.exceptions import DataLayerError, to_error_response
from core.models import ActionRequest
from services.remote_store import ActionDispatcher
from .dependencies import get_action_dispatcher

logger = logging.getLogger(__name__)


router = APIRouter(tags=["Remote Actions"])


@router.post("/api")
async def run_action(
    request: ActionRequest,
    dispatcher: ActionDispatcher = Depends(get_action_dispatcher),
):
    """Run one remote action"""
    try:
        result = await dispatcher.dispatch(request.action, request.payload)
    except DataLayerError as e:
        logger.warning(f"Action '{request.action}' failed: {e.message}")
        return to_error_response(e)

    return JSONResponse(content=result)
