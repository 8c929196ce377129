"""HTTP route definitions for the session service."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, EmailStr

from ..domain.account import Account
from ..domain.contracts import ChangePasswordInput, RegisterAccountInput
from ..domain.identity import IdentityService
from ..errors import (
    AlreadyExists,
    AlreadyRedeemed,
    AuthenticationFailed,
    IdentityError,
    InvalidInput,
    NotFound,
    NotifierUnavailable,
    PasswordResetRequired,
    SessionError,
    StoreUnavailable,
)
from ..security.tokens import IssuedToken

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")

SESSION_COOKIE = "token"


class AccountResponse(BaseModel):
    """Serialised representation of an `Account` aggregate."""

    email: EmailStr
    name: str
    surname: str
    status: str
    created_at: str
    must_reset_on_next_login: bool

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        """Build a response model from the domain aggregate."""
        return cls(
            email=account.account_id,
            name=account.name,
            surname=account.surname,
            status=account.status.value,
            created_at=account.created_at.isoformat(),
            must_reset_on_next_login=account.must_reset_on_next_login,
        )


class RegisterRequest(BaseModel):
    """Payload accepted when signing up."""

    email: EmailStr
    name: str
    surname: str = ""
    password: str


class ConfirmationBody(BaseModel):
    """Confirmation code taken from the link mailed to the user."""

    id: str


class AccountReference(BaseModel):
    email: EmailStr


class PasswordResetConfirmRequest(BaseModel):
    id: str
    password: str


class ChangePasswordRequest(BaseModel):
    """Current credentials plus the new password typed twice."""

    email: EmailStr
    current_password: str
    new_password: str
    new_password_confirm: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class SessionResponse(BaseModel):
    """Identity bound to the session cookie and when the cookie lapses."""

    account_id: str
    expires_at: str


class MessageResponse(BaseModel):
    detail: str


def get_service(request: Request) -> IdentityService:
    """Resolve the `IdentityService` stored on the FastAPI application state."""
    service: IdentityService = request.app.state.identity_service
    return service


def cookie_secure(request: Request) -> bool:
    """Whether session cookies carry the ``Secure`` attribute for this app."""
    return bool(request.app.state.cookie_secure)


def _set_session_cookie(response: Response, issued: IssuedToken, secure: bool) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=issued.token,
        path="/",
        expires=issued.expires_at,
        httponly=True,
        secure=secure,
    )


def _expire_session_cookie(response: Response, revoked: IssuedToken, secure: bool) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=revoked.token,
        path="/",
        max_age=-1,
        httponly=True,
        secure=secure,
    )


def _session_cookie(token: str | None = Cookie(default=None, alias=SESSION_COOKIE)) -> str:
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")
    return token


def require_session(
    response: Response,
    service: IdentityService = Depends(get_service),
    token: str = Depends(_session_cookie),
    secure: bool = Depends(cookie_secure),
) -> IssuedToken:
    """Gate for protected routes: validate the cookie and slide its expiry forward."""
    try:
        refreshed = service.refresh_session(token)
    except SessionError as exc:
        raise _http_error_from_identity_error(exc) from exc
    _set_session_cookie(response, refreshed, secure)
    return refreshed


def session_subject(
    refreshed: IssuedToken = Depends(require_session),
    service: IdentityService = Depends(get_service),
) -> str:
    return service.validate_session(refreshed.token)


def session_subject_without_refresh(
    service: IdentityService = Depends(get_service),
    token: str = Depends(_session_cookie),
) -> str:
    """Identify the caller without extending the session."""
    try:
        return service.validate_session(token)
    except SessionError as exc:
        raise _http_error_from_identity_error(exc) from exc


@router.post("/accounts", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    service: IdentityService = Depends(get_service),
) -> AccountResponse:
    """Create an account pending confirmation and mail its confirmation link."""
    try:
        account = service.register(
            RegisterAccountInput(
                account_id=payload.email,
                name=payload.name,
                surname=payload.surname,
                password=payload.password,
            )
        )
    except IdentityError as exc:
        raise _http_error_from_identity_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.post("/accounts/confirmation", response_model=MessageResponse)
def confirm_account(
    payload: ConfirmationBody,
    service: IdentityService = Depends(get_service),
) -> MessageResponse:
    try:
        service.redeem_confirmation(payload.id)
    except IdentityError as exc:
        raise _http_error_from_identity_error(exc) from exc
    return MessageResponse(detail="account confirmed")


@router.post(
    "/accounts/confirmation/resend",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def resend_confirmation(
    payload: AccountReference,
    service: IdentityService = Depends(get_service),
) -> MessageResponse:
    try:
        service.resend_confirmation(payload.email)
    except IdentityError as exc:
        raise _http_error_from_identity_error(exc) from exc
    return MessageResponse(detail="confirmation sent")


@router.get("/accounts/me", response_model=AccountResponse)
def get_current_account(
    account_id: str = Depends(session_subject),
    service: IdentityService = Depends(get_service),
) -> AccountResponse:
    """Return the account owning the session cookie."""
    try:
        account = service.get_account(account_id)
    except IdentityError as exc:
        raise _http_error_from_identity_error(exc) from exc
    return AccountResponse.from_domain(account)


@router.delete("/accounts/me", status_code=status.HTTP_204_NO_CONTENT)
def delete_current_account(
    account_id: str = Depends(session_subject_without_refresh),
    service: IdentityService = Depends(get_service),
    secure: bool = Depends(cookie_secure),
) -> Response:
    """Delete the session owner's account and close the session."""
    try:
        service.delete_account(account_id)
    except IdentityError as exc:
        raise _http_error_from_identity_error(exc) from exc
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    _expire_session_cookie(response, service.logout(), secure)
    return response


@router.post("/password/reset", response_model=MessageResponse, status_code=status.HTTP_202_ACCEPTED)
def request_password_reset(
    payload: AccountReference,
    service: IdentityService = Depends(get_service),
) -> MessageResponse:
    """Mail a password reset link to the account owner."""
    try:
        service.request_password_reset(payload.email)
    except IdentityError as exc:
        raise _http_error_from_identity_error(exc) from exc
    return MessageResponse(detail="password reset requested")


@router.post("/password/reset/confirm", response_model=MessageResponse)
def confirm_password_reset(
    payload: PasswordResetConfirmRequest,
    service: IdentityService = Depends(get_service),
) -> MessageResponse:
    try:
        service.redeem_password_reset(payload.id, payload.password)
    except IdentityError as exc:
        raise _http_error_from_identity_error(exc) from exc
    return MessageResponse(detail="password updated")


@router.post("/password/change", response_model=MessageResponse)
def change_password(
    payload: ChangePasswordRequest,
    service: IdentityService = Depends(get_service),
) -> MessageResponse:
    """Replace a password given the current one; usable when the old one expired."""
    try:
        service.change_password(
            ChangePasswordInput(
                account_id=payload.email,
                current_password=payload.current_password,
                new_password=payload.new_password,
                new_password_confirm=payload.new_password_confirm,
            )
        )
    except IdentityError as exc:
        raise _http_error_from_identity_error(exc) from exc
    return MessageResponse(detail="password updated")


@router.post("/session", response_model=SessionResponse)
def login(
    response: Response,
    payload: LoginRequest,
    service: IdentityService = Depends(get_service),
    secure: bool = Depends(cookie_secure),
) -> SessionResponse:
    """Check credentials and attach a session cookie."""
    try:
        issued = service.login(payload.email, payload.password)
    except IdentityError as exc:
        raise _http_error_from_identity_error(exc) from exc
    _set_session_cookie(response, issued, secure)
    return SessionResponse(account_id=payload.email, expires_at=issued.expires_at.isoformat())


@router.get("/session", response_model=SessionResponse)
def current_session(
    refreshed: IssuedToken = Depends(require_session),
    account_id: str = Depends(session_subject),
) -> SessionResponse:
    return SessionResponse(account_id=account_id, expires_at=refreshed.expires_at.isoformat())


@router.delete("/session", response_model=MessageResponse)
def logout(
    response: Response,
    service: IdentityService = Depends(get_service),
    secure: bool = Depends(cookie_secure),
) -> MessageResponse:
    """Overwrite the client's cookie with an expired token."""
    _expire_session_cookie(response, service.logout(), secure)
    return MessageResponse(detail="logged out")


def _http_error_from_identity_error(exc: IdentityError) -> HTTPException:
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = str(exc)
    if isinstance(exc, InvalidInput):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, SessionError):
        status_code = status.HTTP_401_UNAUTHORIZED
        detail = "unauthorized"
    elif isinstance(exc, AuthenticationFailed):
        status_code = status.HTTP_401_UNAUTHORIZED
    elif isinstance(exc, PasswordResetRequired):
        status_code = status.HTTP_403_FORBIDDEN
    elif isinstance(exc, NotFound):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, (AlreadyExists, AlreadyRedeemed)):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(exc, (StoreUnavailable, NotifierUnavailable)):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    if status_code >= 500:
        logger.error("request failed: %s", exc)
    return HTTPException(status_code=status_code, detail=detail)
