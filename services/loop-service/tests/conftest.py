from __future__ import annotations

import copy
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from loop_schemas import Claims, Role

from app.api import routes
from app.config import Settings
from app.domain.account import Account
from app.domain.errors import AccountValidationError, NotFoundError
from app.domain.service import LoopService
from app.notifications import MailQueue
from app.security.tokens import issue_access_token


class FakeAccountRepository:
    """In-memory identity store mimicking the Postgres-backed behaviours."""

    def __init__(self) -> None:
        self.accounts: dict[str, Account] = {}

    def create_account(
        self,
        *,
        email: str,
        display_name: str | None,
        phone_number: str | None,
        claims: Claims,
        disabled: bool = False,
    ) -> Account:
        for existing in self.accounts.values():
            if existing.email.lower() == email.lower():
                raise AccountValidationError(
                    "auth/email-already-exists",
                    "The email address is already in use by another account.",
                )
            if phone_number and existing.phone_number == phone_number:
                raise AccountValidationError(
                    "auth/phone-number-already-exists",
                    "The user with the provided phone number already exists.",
                )
        account = Account(
            uid=str(uuid.uuid4()),
            email=email,
            display_name=display_name,
            phone_number=phone_number,
            created_at=datetime.now(timezone.utc),
            disabled=disabled,
            claims=claims,
        )
        self.accounts[account.uid] = account
        return account

    def get_account(self, uid: str) -> Account | None:
        return self.accounts.get(uid)

    def get_account_by_email(self, email: str) -> Account | None:
        for account in self.accounts.values():
            if account.email.lower() == email.lower():
                return account
        return None

    def update_account(
        self,
        uid: str,
        *,
        display_name: str | None = None,
        phone_number: str | None = None,
        disabled: bool | None = None,
    ) -> Account:
        account = self.accounts.get(uid)
        if account is None:
            raise NotFoundError(f"account {uid} not found")
        if display_name is not None:
            account.display_name = display_name
        if phone_number is not None:
            account.phone_number = phone_number
        if disabled is not None:
            account.disabled = disabled
        return account

    def set_claims(self, uid: str, claims: Claims) -> None:
        if uid not in self.accounts:
            raise NotFoundError(f"account {uid} not found")
        self.accounts[uid].claims = claims

    def mark_email_verified(self, uid: str) -> None:
        if uid not in self.accounts:
            raise NotFoundError(f"account {uid} not found")
        self.accounts[uid].email_verified = True

    def seed(
        self,
        uid: str,
        email: str,
        *,
        name: str | None = None,
        phone_number: str | None = None,
        role: Role | None = None,
        chain_id: str | None = None,
    ) -> Account:
        account = Account(
            uid=uid,
            email=email,
            display_name=name,
            phone_number=phone_number,
            created_at=datetime.now(timezone.utc),
            claims=Claims(role=role, chain_id=chain_id),
        )
        self.accounts[uid] = account
        return account


class FakeDocumentRepository:
    """Dictionary-of-collections document store."""

    def __init__(self) -> None:
        self.collections: defaultdict[str, dict[str, dict[str, Any]]] = defaultdict(dict)

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        data = self.collections[collection].get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    def set(self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = False) -> None:
        existing = self.collections[collection].get(doc_id)
        if merge and existing is not None:
            existing.update(copy.deepcopy(data))
        else:
            self.collections[collection][doc_id] = copy.deepcopy(data)

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        existing = self.collections[collection].get(doc_id)
        if existing is None:
            raise NotFoundError(f"{collection}/{doc_id} not found")
        existing.update(copy.deepcopy(fields))

    def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        self.collections[collection][doc_id] = copy.deepcopy(data)
        return doc_id

    def mail(self) -> list[dict[str, Any]]:
        return list(self.collections["mail"].values())


@pytest.fixture
def settings() -> Settings:
    return Settings(
        admin_emails=("admin@clothingloop.org",),
        contact_emails=("team@clothingloop.org", "hello@clothingloop.org"),
        base_domain="https://app.clothingloop.org",
        jwt_secret="test-secret",
        jwt_issuer="clothingloop.test",
    )


@pytest.fixture
def accounts() -> FakeAccountRepository:
    return FakeAccountRepository()


@pytest.fixture
def documents() -> FakeDocumentRepository:
    return FakeDocumentRepository()


@pytest.fixture
def service(accounts, documents, settings) -> LoopService:
    return LoopService(accounts, documents, MailQueue(documents), settings)


@pytest.fixture
def chain_with_admin(accounts, documents):
    """Seed chain ``c1`` administered by ``owner`` and return the owner account."""
    owner = accounts.seed(
        "owner",
        "owner@clothingloop.org",
        name="Olga",
        role=Role.chain_admin,
        chain_id="c1",
    )
    documents.set("users", "owner", {"chainId": "c1"})
    documents.set(
        "chains",
        "c1",
        {
            "name": "Amsterdam Oost",
            "description": "",
            "address": "Amsterdam",
            "latitude": 52.36,
            "longitude": 4.93,
            "radius": 3.0,
            "categories": {"gender": ["women"], "size": ["M"]},
            "published": True,
            "chainAdmin": "owner",
        },
    )
    return owner


@pytest.fixture
def auth_headers(settings):
    """Build an Authorization header for an account's current claims."""

    def _headers(account: Account) -> dict[str, str]:
        token, _ = issue_access_token(subject=account.uid, claims=account.claims, settings=settings)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def api_client(service):
    """Provide a FastAPI test client with isolated state."""
    app = FastAPI()
    app.include_router(routes.router)
    app.state.loop_service = service

    original_limiter = routes.rate_limiter
    routes.rate_limiter = routes.InMemoryRateLimiter(max_requests=2, window_seconds=60)

    with TestClient(app) as client:
        yield client

    routes.rate_limiter = original_limiter
