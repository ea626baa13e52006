"""HTTP route definitions for the ledger service."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from pydantic import BaseModel, Field

from schemas import AccountSummary, IntegrationEvent

from ..domain.errors import (
    ConcurrencyConflict,
    InsufficientFunds,
    InvalidAmount,
    InvariantViolation,
    LedgerError,
    NotFound,
    StorageUnavailable,
    TransportUnavailable,
    Unauthorized,
)
from ..domain.service import AccountService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


class OpenAccountRequest(BaseModel):
    """Payload accepted when opening an account."""

    name: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class OpenAccountResponse(BaseModel):
    account_id: str


class DepositRequest(BaseModel):
    amount: int


class WithdrawRequest(BaseModel):
    amount: int
    password: str


class RemitRequest(BaseModel):
    """Transfer from the path account to ``receiver_id``."""

    receiver_id: str
    amount: int
    password: str


class UpdatePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class CloseAccountRequest(BaseModel):
    password: str


def get_service(request: Request) -> AccountService:
    """Resolve the `AccountService` stored on the FastAPI application state."""
    service: AccountService = request.app.state.account_service
    return service


@router.post("/accounts", response_model=OpenAccountResponse, status_code=status.HTTP_201_CREATED)
def open_account(
    payload: OpenAccountRequest,
    service: AccountService = Depends(get_service),
) -> OpenAccountResponse:
    """Open an account and return its identifier."""
    try:
        account_id = service.open_account(payload.name, payload.password)
    except LedgerError as exc:
        raise _http_error_from_ledger_error(exc) from exc
    return OpenAccountResponse(account_id=account_id)


@router.get("/accounts", response_model=list[AccountSummary])
def find_accounts(
    name: str = Query(..., min_length=1),
    service: AccountService = Depends(get_service),
) -> list[AccountSummary]:
    """List accounts opened under ``name``."""
    try:
        return service.find_accounts(name)
    except LedgerError as exc:
        raise _http_error_from_ledger_error(exc) from exc


@router.get("/accounts/{account_id}", response_model=AccountSummary)
def get_account(
    account_id: str,
    service: AccountService = Depends(get_service),
) -> AccountSummary:
    try:
        return service.get_account(account_id)
    except LedgerError as exc:
        raise _http_error_from_ledger_error(exc) from exc


@router.get("/accounts/{account_id}/events", response_model=list[IntegrationEvent])
def list_account_events(
    account_id: str,
    service: AccountService = Depends(get_service),
) -> list[IntegrationEvent]:
    """Return the integration events recorded for the account, oldest first."""
    try:
        return service.account_events(account_id)
    except LedgerError as exc:
        raise _http_error_from_ledger_error(exc) from exc


@router.post("/accounts/{account_id}/deposit", status_code=status.HTTP_204_NO_CONTENT)
def deposit(
    account_id: str,
    payload: DepositRequest,
    service: AccountService = Depends(get_service),
) -> Response:
    try:
        service.deposit(account_id, payload.amount)
    except LedgerError as exc:
        raise _http_error_from_ledger_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/accounts/{account_id}/withdraw", status_code=status.HTTP_204_NO_CONTENT)
def withdraw(
    account_id: str,
    payload: WithdrawRequest,
    service: AccountService = Depends(get_service),
) -> Response:
    try:
        service.withdraw(account_id, payload.amount, payload.password)
    except LedgerError as exc:
        raise _http_error_from_ledger_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/accounts/{account_id}/remit", status_code=status.HTTP_204_NO_CONTENT)
def remit(
    account_id: str,
    payload: RemitRequest,
    service: AccountService = Depends(get_service),
) -> Response:
    """Move funds to another account; both balances change or neither does."""
    try:
        service.remit(account_id, payload.receiver_id, payload.amount, payload.password)
    except LedgerError as exc:
        raise _http_error_from_ledger_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/accounts/{account_id}/password", status_code=status.HTTP_204_NO_CONTENT)
def update_password(
    account_id: str,
    payload: UpdatePasswordRequest,
    service: AccountService = Depends(get_service),
) -> Response:
    try:
        service.update_password(account_id, payload.current_password, payload.new_password)
    except LedgerError as exc:
        raise _http_error_from_ledger_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/accounts/{account_id}/close", status_code=status.HTTP_204_NO_CONTENT)
def close_account(
    account_id: str,
    payload: CloseAccountRequest,
    service: AccountService = Depends(get_service),
) -> Response:
    try:
        service.close_account(account_id, payload.password)
    except LedgerError as exc:
        raise _http_error_from_ledger_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


_STATUS_BY_ERROR: tuple[tuple[type[LedgerError], int], ...] = (
    (NotFound, status.HTTP_404_NOT_FOUND),
    (Unauthorized, status.HTTP_401_UNAUTHORIZED),
    (InvalidAmount, status.HTTP_400_BAD_REQUEST),
    (InsufficientFunds, 422),
    (InvariantViolation, status.HTTP_409_CONFLICT),
    (ConcurrencyConflict, status.HTTP_409_CONFLICT),
    (StorageUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (TransportUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def _http_error_from_ledger_error(exc: LedgerError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            break
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    if status_code >= 500:
        logger.warning("request failed: %s", exc)
    return HTTPException(status_code=status_code, detail=str(exc))
