"""
Click Callback API Endpoints

POST /prepare and POST /complete, called by the Click gateway.

Click posts application/x-www-form-urlencoded bodies; JSON is accepted too.
Responses are always HTTP 200; the outcome lives in `error`/`error_note`.
"""
from typing import Any, Dict, Type, TypeVar
import logging

from fastapi import APIRouter, Depends, Request
from starlette.exceptions import HTTPException
from pydantic import BaseModel, ValidationError

from ..exceptions import BadRequestError
from ..models.click import (
    PrepareRequest,
    CompleteRequest,
    PrepareResponse,
    CompleteResponse,
)
from ..services.callback_service import (
    CallbackHandler,
    prepare_error_response,
    complete_error_response,
)
from .deps import get_callback_handler

logger = logging.getLogger(__name__)

router = APIRouter()

RequestModel = TypeVar("RequestModel", bound=BaseModel)


async def _read_body(request: Request) -> Dict[str, Any]:
    """Decode a form or JSON callback body into a plain dict."""
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("application/json"):
        data = await request.json()
        if not isinstance(data, dict):
            raise ValueError("JSON body must be an object")
        return data

    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


async def _parse_callback(request: Request, model: Type[RequestModel]) -> RequestModel:
    """
    Parse and validate a callback body.

    Raises:
        BadRequestError: body is not decodable or fails validation
    """
    try:
        data = await _read_body(request)
    except (ValueError, HTTPException) as e:
        logger.warning(f"Undecodable {model.__name__} body: {e}")
        raise BadRequestError() from e

    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Invalid {model.__name__}: {e.error_count()} errors: {e.errors(include_input=False)}")
        raise BadRequestError() from e


@router.post("/prepare", response_model=PrepareResponse)
async def prepare_endpoint(
    request: Request,
    handler: CallbackHandler = Depends(get_callback_handler)
) -> PrepareResponse:
    """
    Click Prepare callback (action=0).

    Returns:
        {
            "click_trans_id": int,
            "merchant_trans_id": str,
            "merchant_prepare_id": int,
            "error": int,
            "error_note": str
        }

    Example:
        POST /prepare
        click_trans_id=2241&service_id=101&merchant_trans_id=1&amount=100000
        &action=0&sign_time=2026-10-19 12:00:00&sign_string=...
    """
    try:
        body = await _parse_callback(request, PrepareRequest)
    except BadRequestError as e:
        return prepare_error_response(e)

    return await handler.prepare(body)


@router.post("/complete", response_model=CompleteResponse)
async def complete_endpoint(
    request: Request,
    handler: CallbackHandler = Depends(get_callback_handler)
) -> CompleteResponse:
    """
    Click Complete callback (action=1).

    Returns:
        {
            "click_trans_id": int,
            "merchant_trans_id": str,
            "merchant_confirm_id": int,
            "error": int,
            "error_note": str
        }
    """
    try:
        body = await _parse_callback(request, CompleteRequest)
    except BadRequestError as e:
        return complete_error_response(e)

    return await handler.complete(body)
