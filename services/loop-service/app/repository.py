"""Postgres-backed identity and document stores."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from psycopg import errors
from psycopg.rows import tuple_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from loop_schemas import Claims

from .domain.account import Account
from .domain.errors import AccountValidationError, NotFoundError

_ACCOUNT_COLUMNS = (
    "uid, email, display_name, phone_number, created_at, email_verified, disabled, claims"
)

_EMAIL_EXISTS = (
    "auth/email-already-exists",
    "The email address is already in use by another account.",
)

_DUPLICATE_ERRORS = {
    "accounts_email_key": _EMAIL_EXISTS,
    "accounts_email_lower_idx": _EMAIL_EXISTS,
    "accounts_phone_number_key": (
        "auth/phone-number-already-exists",
        "The user with the provided phone number already exists.",
    ),
}


class AccountRepository:
    """Identity store: accounts and their attached claims."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def create_account(
        self,
        *,
        email: str,
        display_name: str | None,
        phone_number: str | None,
        claims: Claims,
        disabled: bool = False,
    ) -> Account:
        """Insert a new account; duplicate email or phone raise :class:`AccountValidationError`."""
        uid = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        f"""
                        INSERT INTO accounts (uid, email, display_name, phone_number, created_at, disabled, claims)
                        VALUES (%s, %s, %s, %s, %s, %s, %s)
                        RETURNING {_ACCOUNT_COLUMNS}
                        """,
                        (uid, email, display_name, phone_number, now, disabled, Json(claims.to_document())),
                    )
                    row = cur.fetchone()
                    conn.commit()
        except errors.UniqueViolation as exc:
            constraint = exc.diag.constraint_name or ""
            code, message = _DUPLICATE_ERRORS.get(
                constraint, ("auth/uid-already-exists", "The account already exists.")
            )
            raise AccountValidationError(code, message) from exc
        return self._map_record(row)

    def get_account(self, uid: str) -> Account | None:
        return self._fetch_one(f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE uid = %s", (uid,))

    def get_account_by_email(self, email: str) -> Account | None:
        return self._fetch_one(
            f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE lower(email) = lower(%s)",
            (email,),
        )

    def update_account(
        self,
        uid: str,
        *,
        display_name: str | None = None,
        phone_number: str | None = None,
        disabled: bool | None = None,
    ) -> Account:
        """Apply the non-``None`` field changes and return the updated account."""
        assignments: list[str] = []
        params: list[Any] = []
        if display_name is not None:
            assignments.append("display_name = %s")
            params.append(display_name)
        if phone_number is not None:
            assignments.append("phone_number = %s")
            params.append(phone_number)
        if disabled is not None:
            assignments.append("disabled = %s")
            params.append(disabled)
        if not assignments:
            account = self.get_account(uid)
            if account is None:
                raise NotFoundError(f"account {uid} not found")
            return account

        params.append(uid)
        query = f"""
            UPDATE accounts
            SET {", ".join(assignments)}
            WHERE uid = %s
            RETURNING {_ACCOUNT_COLUMNS}
        """
        try:
            row = self._execute_returning(query, params)
        except errors.UniqueViolation as exc:
            code, message = _DUPLICATE_ERRORS["accounts_phone_number_key"]
            raise AccountValidationError(code, message) from exc
        if row is None:
            raise NotFoundError(f"account {uid} not found")
        return self._map_record(row)

    def set_claims(self, uid: str, claims: Claims) -> None:
        """Replace the account's claims wholesale."""
        row = self._execute_returning(
            "UPDATE accounts SET claims = %s WHERE uid = %s RETURNING uid",
            (Json(claims.to_document()), uid),
        )
        if row is None:
            raise NotFoundError(f"account {uid} not found")

    def mark_email_verified(self, uid: str) -> None:
        row = self._execute_returning(
            "UPDATE accounts SET email_verified = TRUE WHERE uid = %s RETURNING uid",
            (uid,),
        )
        if row is None:
            raise NotFoundError(f"account {uid} not found")

    def _fetch_one(self, query: str, params: tuple) -> Account | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                row = cur.fetchone()
        if not row:
            return None
        return self._map_record(row)

    def _execute_returning(self, query: str, params) -> tuple | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                row = cur.fetchone()
                conn.commit()
        return row

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            uid=row[0],
            email=row[1],
            display_name=row[2],
            phone_number=row[3],
            created_at=row[4],
            email_verified=row[5],
            disabled=row[6],
            claims=Claims.model_validate(row[7] or {}),
        )


class DocumentRepository:
    """Collection/document store kept in a single JSONB table."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    "SELECT data FROM documents WHERE collection = %s AND doc_id = %s",
                    (collection, doc_id),
                )
                row = cur.fetchone()
        if not row:
            return None
        return dict(row[0])

    def set(self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = False) -> None:
        """Create or overwrite a document; with ``merge`` only the given top-level keys change."""
        merged = "documents.data || EXCLUDED.data" if merge else "EXCLUDED.data"
        now = datetime.now(timezone.utc)
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO documents (collection, doc_id, data, created_at, updated_at)
                    VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (collection, doc_id)
                    DO UPDATE SET data = {merged}, updated_at = EXCLUDED.updated_at
                    """,
                    (collection, doc_id, Json(data), now, now),
                )
                conn.commit()

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Merge ``fields`` into an existing document, failing if it is absent."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE documents
                    SET data = data || %s, updated_at = NOW()
                    WHERE collection = %s AND doc_id = %s
                    """,
                    (Json(fields), collection, doc_id),
                )
                updated = cur.rowcount
                conn.commit()
        if updated == 0:
            raise NotFoundError(f"{collection}/{doc_id} not found")

    def add(self, collection: str, data: dict[str, Any]) -> str:
        """Store ``data`` under a freshly generated id and return that id."""
        doc_id = uuid.uuid4().hex
        self.set(collection, doc_id, data)
        return doc_id
