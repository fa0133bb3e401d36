"""Loop service orchestrating identity, profile documents, and notifications."""

from __future__ import annotations

import logging
import re

import jwt
from email_validator import EmailNotValidError, validate_email

from loop_schemas import Chain, InterestedUser, UserProfile

from . import permissions
from .account import Account
from .contracts import AuthContext, CreateChainInput, CreateUserInput, UpdateUserInput, UserView
from .errors import (
    AccountValidationError,
    InvalidTokenError,
    NotFoundError,
    PermissionDeniedError,
)
from ..config import Settings
from ..notifications import MailQueue, build_verification_link
from ..repository import AccountRepository, DocumentRepository
from ..security.tokens import decode_verification_token, issue_verification_token

logger = logging.getLogger(__name__)

USERS = "users"
CHAINS = "chains"
INTERESTED_USERS = "interested_users"

_E164 = re.compile(r"^\+[1-9]\d{1,14}$")


def validate_phone_number(phone_number: str) -> None:
    if not _E164.match(phone_number):
        raise AccountValidationError(
            "auth/invalid-phone-number",
            "The phone number must be a non-empty E.164 standard compliant identifier string.",
        )


def normalise_email(email: str) -> str:
    """Return the normalised address or raise :class:`AccountValidationError`."""
    try:
        return validate_email(email, check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise AccountValidationError(
            "auth/invalid-email", "The email address is improperly formatted."
        ) from exc


class LoopService:
    """Request handlers for participants and chains.

    Each operation runs its store calls sequentially and does not roll back
    earlier writes when a later one fails.
    """

    def __init__(
        self,
        accounts: AccountRepository,
        documents: DocumentRepository,
        mail: MailQueue,
        settings: Settings,
    ) -> None:
        self._accounts = accounts
        self._documents = documents
        self._mail = mail
        self._settings = settings

    @property
    def settings(self) -> Settings:
        return self._settings

    def create_user(self, payload: CreateUserInput) -> str:
        """Register an account with its profile and queue the verification mail.

        Raises :class:`AccountValidationError` before anything is written when the
        identity fields are rejected.
        """
        logger.debug("createUser parameters %s", payload)
        email = normalise_email(payload.email)
        phone_number = payload.phone_number or None
        if phone_number is not None:
            validate_phone_number(phone_number)

        claims = permissions.claims_for_new_account(
            payload.chain_id, allow_listed=self._settings.is_admin_email(email)
        )
        account = self._accounts.create_account(
            email=email,
            display_name=payload.name,
            phone_number=phone_number,
            claims=claims,
        )
        logger.debug("created user %s", account.uid)
        if claims.role is not None:
            logger.info("registered %s as %s", email, claims.role.value)

        profile = UserProfile(
            chain_id=payload.chain_id,
            address=payload.address,
            newsletter=payload.newsletter,
            interested_sizes=payload.interested_sizes,
        )
        self._documents.set(USERS, account.uid, profile.to_document())

        token = issue_verification_token(uid=account.uid, email=email, settings=self._settings)
        link = build_verification_link(self._settings.base_domain, token)
        self._mail.send_verification(email=email, name=payload.name, link=link)
        return account.uid

    def verify_email(self, token: str) -> None:
        try:
            payload = decode_verification_token(token, self._settings)
        except jwt.PyJWTError as exc:
            raise InvalidTokenError("invalid verification token") from exc

        account = self._accounts.get_account(payload["sub"])
        if account is None or account.email.lower() != str(payload["email"]).lower():
            raise InvalidTokenError("verification token does not match the account")
        self._accounts.mark_email_verified(account.uid)
        logger.info("email verified for user %s", account.uid)

    def create_chain(self, caller: AuthContext | None, payload: CreateChainInput) -> str:
        """Create a chain administered by ``payload.uid`` and return its id."""
        logger.debug("createChain parameters %s", payload)
        target = self._require_account(payload.uid)
        profile = self._get_profile(payload.uid)
        if not permissions.can_create_chain(caller, target, profile):
            raise PermissionDeniedError(permissions.CHANGE_CHAIN_DENIED)

        chain = Chain(
            name=payload.name,
            description=payload.description,
            address=payload.address,
            latitude=payload.latitude,
            longitude=payload.longitude,
            radius=payload.radius,
            categories=payload.categories or {},
            published=False,
            chain_admin=target.uid,
        )
        chain_id = self._documents.add(CHAINS, chain.to_document())
        self._documents.set(USERS, target.uid, {"chainId": chain_id}, merge=True)
        self._accounts.set_claims(
            target.uid, permissions.claims_after_chain_created(target.claims, chain_id)
        )
        logger.info("chain %s created for user %s", chain_id, target.uid)
        return chain_id

    def add_user_to_chain(self, caller: AuthContext | None, uid: str, chain_id: str) -> None:
        """Move ``uid`` into ``chain_id`` and tell that chain's admin."""
        logger.debug("addUserToChain parameters uid=%s chainId=%s", uid, chain_id)
        if not permissions.can_assign_chain(caller, uid):
            raise PermissionDeniedError(permissions.CHANGE_CHAIN_DENIED)

        profile_data = self._documents.get(USERS, uid)
        if profile_data is None:
            raise NotFoundError(f"{USERS}/{uid} not found")
        target = self._require_account(uid)
        profile_chain_id = UserProfile.from_document(profile_data).chain_id
        if profile_chain_id == chain_id and target.claims.chain_id == chain_id:
            logger.warning("user %s is already member of chain %s", uid, chain_id)
            return

        chain = self._require_chain(chain_id)

        if profile_chain_id != chain_id:
            self._documents.update(USERS, uid, {"chainId": chain_id})
        else:
            logger.info("reconciling claims of user %s with chain %s", uid, chain_id)
        self._accounts.set_claims(uid, permissions.claims_after_chain_switch(target.claims, chain_id))

        chain_admin = self._require_account(chain.chain_admin)
        self._mail.send_participant_joined(chain_admin=chain_admin, participant=target)

    def update_user(self, caller: AuthContext | None, payload: UpdateUserInput) -> None:
        logger.debug("updateUser parameters %s", payload)
        if not permissions.can_update_user(caller, payload.uid):
            raise PermissionDeniedError(permissions.UPDATE_USER_DENIED)
        if payload.phone_number:
            validate_phone_number(payload.phone_number)

        account = self._accounts.update_account(
            payload.uid,
            display_name=payload.name,
            phone_number=payload.phone_number or None,
            disabled=False,
        )
        logger.debug("updated user %s", account.uid)

        profile = UserProfile(
            address=payload.address,
            newsletter=payload.newsletter,
            interested_sizes=payload.interested_sizes,
        )
        fields = profile.model_dump(mode="json", by_alias=True, exclude_none=True)
        if fields:
            self._documents.set(USERS, account.uid, fields, merge=True)

    def get_user_by_id(self, caller: AuthContext | None, uid: str) -> UserView:
        logger.debug("getUserById parameters uid=%s", uid)
        return self._view(caller, self._require_account(uid))

    def get_user_by_email(self, caller: AuthContext | None, email: str) -> UserView:
        logger.debug("getUserByEmail parameters email=%s", email)
        account = self._accounts.get_account_by_email(email)
        if account is None:
            raise NotFoundError(f"no account for {email}")
        return self._view(caller, account)

    def contact_mail(self, name: str, email: str, message: str) -> None:
        """Forward a contact-form message to the team and confirm receipt to the sender."""
        logger.debug("contactMail parameters name=%s email=%s", name, email)
        self._mail.send_contact_form(
            recipients=self._settings.contact_emails, name=name, email=email, message=message
        )
        self._mail.send_contact_confirmation(email=email, name=name, message=message)

    def subscribe_to_newsletter(self, name: str, email: str) -> None:
        logger.debug("subscribeToNewsletter parameters name=%s email=%s", name, email)
        self._documents.add(INTERESTED_USERS, InterestedUser(name=name, email=email).model_dump())
        self._mail.send_newsletter_welcome(email=email, name=name)

    def _view(self, caller: AuthContext | None, account: Account) -> UserView:
        if not permissions.can_read_user(caller, account):
            raise PermissionDeniedError(permissions.READ_USER_DENIED)
        profile = self._get_profile(account.uid) or UserProfile()
        return UserView(
            uid=account.uid,
            email=account.email,
            name=account.display_name,
            phone_number=account.phone_number,
            email_verified=account.email_verified,
            chain_id=profile.chain_id,
            address=profile.address,
            newsletter=profile.newsletter,
            interested_sizes=profile.interested_sizes,
            role=account.claims.role,
        )

    def _require_account(self, uid: str) -> Account:
        account = self._accounts.get_account(uid)
        if account is None:
            raise NotFoundError(f"account {uid} not found")
        return account

    def _require_chain(self, chain_id: str) -> Chain:
        data = self._documents.get(CHAINS, chain_id)
        if data is None:
            raise NotFoundError(f"{CHAINS}/{chain_id} not found")
        return Chain.model_validate(data)

    def _get_profile(self, uid: str) -> UserProfile | None:
        data = self._documents.get(USERS, uid)
        return UserProfile.from_document(data) if data is not None else None
