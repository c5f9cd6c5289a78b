from fastapi import HTTPException, Request

from costagolf.services.container import Services
from costagolf.services.hold_store import HoldError, HoldExpiredError, OrderNotFoundError


def get_services(request: Request) -> Services:
    return request.app.state.services


def hold_error_response(error: HoldError) -> HTTPException:
    """Map hold store errors onto HTTP: 404 not found, 410 expired, 400 state conflict."""
    if isinstance(error, OrderNotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, HoldExpiredError):
        return HTTPException(status_code=410, detail=str(error))
    return HTTPException(status_code=400, detail=str(error))
