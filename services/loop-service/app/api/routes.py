"""HTTP route definitions for the loop service.

Every operation is a ``POST /v1/<operationName>`` call taking a camelCase JSON
body, mirroring the callable functions the web client already uses.
"""

from __future__ import annotations

import logging

import jwt
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from prometheus_client import Counter
from pydantic import BaseModel, ConfigDict, Field

from loop_schemas import Role

from ..config import get_settings
from ..domain.contracts import (
    AuthContext,
    CreateChainInput,
    CreateUserInput,
    UpdateUserInput,
    UserView,
)
from ..domain.errors import (
    AccountValidationError,
    InvalidTokenError,
    NotFoundError,
    PermissionDeniedError,
)
from ..domain.service import LoopService
from ..security.rate_limiter import InMemoryRateLimiter, build_rate_limiter
from ..security.tokens import auth_context_from_payload, decode_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")

PERMISSION_DENIED = Counter(
    "loop_permission_denied_total",
    "Requests refused by the permission checks.",
    ["operation"],
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateUserRequest(_CamelModel):
    # kept as a plain string so malformed addresses come back as validationError
    email: str
    chain_id: str | None = Field(default=None, alias="chainId")
    name: str
    phone_number: str | None = Field(default=None, alias="phoneNumber")
    newsletter: bool = False
    interested_sizes: list[str] | None = Field(default=None, alias="interestedSizes")
    address: str | None = None


class ValidationErrorBody(BaseModel):
    code: str
    message: str


class CreateUserResponse(_CamelModel):
    """Either the new account id or the identity store's validation error."""

    id: str | None = None
    validation_error: ValidationErrorBody | None = Field(default=None, alias="validationError")


class CreateChainRequest(_CamelModel):
    uid: str
    name: str
    description: str = ""
    address: str = ""
    latitude: float
    longitude: float
    radius: float
    categories: dict[str, list[str]] = Field(default_factory=dict)


class IdResponse(BaseModel):
    id: str


class AddUserToChainRequest(_CamelModel):
    uid: str
    chain_id: str = Field(..., alias="chainId")


class UpdateUserRequest(_CamelModel):
    uid: str
    name: str | None = None
    phone_number: str | None = Field(default=None, alias="phoneNumber")
    newsletter: bool | None = None
    interested_sizes: list[str] | None = Field(default=None, alias="interestedSizes")
    address: str | None = None


class UserByIdRequest(BaseModel):
    uid: str


class UserByEmailRequest(BaseModel):
    email: str


class UserResponse(_CamelModel):
    """Serialised account plus profile, as seen by an authorised caller."""

    uid: str
    email: str
    name: str | None = None
    phone_number: str | None = Field(default=None, alias="phoneNumber")
    email_verified: bool = Field(..., alias="emailVerified")
    chain_id: str | None = Field(default=None, alias="chainId")
    address: str | None = None
    newsletter: bool | None = None
    interested_sizes: list[str] | None = Field(default=None, alias="interestedSizes")
    role: Role | None = None

    @classmethod
    def from_view(cls, view: UserView) -> "UserResponse":
        return cls(
            uid=view.uid,
            email=view.email,
            name=view.name,
            phone_number=view.phone_number,
            email_verified=view.email_verified,
            chain_id=view.chain_id,
            address=view.address,
            newsletter=view.newsletter,
            interested_sizes=view.interested_sizes,
            role=view.role,
        )


class ContactMailRequest(BaseModel):
    name: str
    email: str
    message: str


class SubscribeRequest(BaseModel):
    name: str
    email: str


class VerifyEmailRequest(BaseModel):
    token: str


settings = get_settings()
rate_limiter = build_rate_limiter(settings)
bearer_scheme = HTTPBearer(auto_error=False)


def get_service(request: Request) -> LoopService:
    """Resolve the `LoopService` stored on the FastAPI application state."""
    service: LoopService = request.app.state.loop_service
    return service


def get_auth_context(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    service: LoopService = Depends(get_service),
) -> AuthContext | None:
    """Decode the caller's bearer token; anonymous calls yield ``None``."""
    if credentials is None:
        return None
    try:
        payload = decode_access_token(credentials.credentials, service.settings)
    except jwt.PyJWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    return auth_context_from_payload(payload)


def _enforce_rate_limit(operation: str, request: Request) -> None:
    client = request.client.host if request.client else "unknown"
    if not rate_limiter.allow(f"{operation}:{client}"):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="rate limited")


def _permission_denied(operation: str, exc: PermissionDeniedError) -> HTTPException:
    PERMISSION_DENIED.labels(operation=operation).inc()
    logger.info("%s denied: %s", operation, exc.message)
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"code": exc.code, "message": exc.message},
    )


def _not_found(exc: NotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.post("/createUser", response_model=CreateUserResponse, response_model_exclude_none=True)
def create_user(
    payload: CreateUserRequest,
    request: Request,
    service: LoopService = Depends(get_service),
) -> CreateUserResponse:
    """Register an account; identity validation problems are returned as data."""
    _enforce_rate_limit("createUser", request)
    try:
        uid = service.create_user(
            CreateUserInput(
                email=payload.email,
                name=payload.name,
                phone_number=payload.phone_number,
                chain_id=payload.chain_id,
                newsletter=payload.newsletter,
                interested_sizes=payload.interested_sizes,
                address=payload.address,
            )
        )
    except AccountValidationError as exc:
        logger.warning("Error creating user: %s (%s)", exc.code, exc.message)
        return CreateUserResponse(validation_error=ValidationErrorBody(**exc.as_dict()))
    return CreateUserResponse(id=uid)


@router.post("/verifyEmail")
def verify_email(
    payload: VerifyEmailRequest,
    service: LoopService = Depends(get_service),
) -> dict:
    try:
        service.verify_email(payload.token)
    except InvalidTokenError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return {}


@router.post("/createChain", response_model=IdResponse)
def create_chain(
    payload: CreateChainRequest,
    caller: AuthContext | None = Depends(get_auth_context),
    service: LoopService = Depends(get_service),
) -> IdResponse:
    try:
        chain_id = service.create_chain(
            caller,
            CreateChainInput(
                uid=payload.uid,
                name=payload.name,
                description=payload.description,
                address=payload.address,
                latitude=payload.latitude,
                longitude=payload.longitude,
                radius=payload.radius,
                categories=payload.categories,
            ),
        )
    except PermissionDeniedError as exc:
        raise _permission_denied("createChain", exc) from exc
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    return IdResponse(id=chain_id)


@router.post("/addUserToChain")
def add_user_to_chain(
    payload: AddUserToChainRequest,
    caller: AuthContext | None = Depends(get_auth_context),
    service: LoopService = Depends(get_service),
) -> dict:
    try:
        service.add_user_to_chain(caller, payload.uid, payload.chain_id)
    except PermissionDeniedError as exc:
        raise _permission_denied("addUserToChain", exc) from exc
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    return {}


@router.post("/updateUser")
def update_user(
    payload: UpdateUserRequest,
    caller: AuthContext | None = Depends(get_auth_context),
    service: LoopService = Depends(get_service),
) -> dict:
    try:
        service.update_user(
            caller,
            UpdateUserInput(
                uid=payload.uid,
                name=payload.name,
                phone_number=payload.phone_number,
                newsletter=payload.newsletter,
                interested_sizes=payload.interested_sizes,
                address=payload.address,
            ),
        )
    except PermissionDeniedError as exc:
        raise _permission_denied("updateUser", exc) from exc
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    except AccountValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"validationError": exc.as_dict()},
        ) from exc
    return {}


@router.post("/getUserById", response_model=UserResponse)
def get_user_by_id(
    payload: UserByIdRequest,
    caller: AuthContext | None = Depends(get_auth_context),
    service: LoopService = Depends(get_service),
) -> UserResponse:
    try:
        view = service.get_user_by_id(caller, payload.uid)
    except PermissionDeniedError as exc:
        raise _permission_denied("getUserById", exc) from exc
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    return UserResponse.from_view(view)


@router.post("/getUserByEmail", response_model=UserResponse)
def get_user_by_email(
    payload: UserByEmailRequest,
    caller: AuthContext | None = Depends(get_auth_context),
    service: LoopService = Depends(get_service),
) -> UserResponse:
    try:
        view = service.get_user_by_email(caller, payload.email)
    except PermissionDeniedError as exc:
        raise _permission_denied("getUserByEmail", exc) from exc
    except NotFoundError as exc:
        raise _not_found(exc) from exc
    return UserResponse.from_view(view)


@router.post("/contactMail")
def contact_mail(
    payload: ContactMailRequest,
    request: Request,
    service: LoopService = Depends(get_service),
) -> dict:
    _enforce_rate_limit("contactMail", request)
    service.contact_mail(payload.name, payload.email, payload.message)
    return {}


@router.post("/subscribeToNewsletter")
def subscribe_to_newsletter(
    payload: SubscribeRequest,
    request: Request,
    service: LoopService = Depends(get_service),
) -> dict:
    _enforce_rate_limit("subscribeToNewsletter", request)
    service.subscribe_to_newsletter(payload.name, payload.email)
    return {}
