"""Authorization predicates and claims transitions for loop membership.

Every function here is pure: it looks only at the caller's :class:`AuthContext`
and the target state handed in, and never touches a store. A ``None`` caller is
an anonymous request and fails every predicate.
"""

from __future__ import annotations

from loop_schemas import Claims, Role, UserProfile

from .account import Account
from .contracts import AuthContext

CHANGE_CHAIN_DENIED = "You don't have permission to change this user's chain"
UPDATE_USER_DENIED = "You don't have permission to update this user"
READ_USER_DENIED = "You don't have permission to retrieve information about this user"


def is_self(caller: AuthContext | None, target_id: str) -> bool:
    return caller is not None and caller.account_id == target_id


def is_global_admin(caller: AuthContext | None) -> bool:
    return caller is not None and caller.role == Role.admin


def is_scoped_chain_admin(caller: AuthContext | None, chain_id: str | None) -> bool:
    """Return ``True`` when the caller administers exactly ``chain_id``."""
    return (
        caller is not None
        and chain_id is not None
        and caller.role == Role.chain_admin
        and caller.chain_id == chain_id
    )


def has_membership(account: Account, profile: UserProfile | None) -> bool:
    """Return ``True`` if either the profile or the claims already name a chain."""
    return bool((profile is not None and profile.chain_id) or account.claims.chain_id)


def can_create_chain(
    caller: AuthContext | None, target: Account, profile: UserProfile | None
) -> bool:
    """Decide whether ``caller`` may create a chain owned by ``target``.

    Global admins always may. Anyone else may only create a chain for
    themselves, and only while they belong to no chain and hold no
    chain-admin role.
    """
    if is_global_admin(caller):
        return True
    if not is_self(caller, target.uid):
        return False
    return not has_membership(target, profile) and target.claims.role != Role.chain_admin


def can_assign_chain(caller: AuthContext | None, target_id: str) -> bool:
    return is_self(caller, target_id) or is_global_admin(caller)


def can_update_user(caller: AuthContext | None, target_id: str) -> bool:
    return is_self(caller, target_id) or is_global_admin(caller)


def can_read_user(caller: AuthContext | None, target: Account) -> bool:
    return (
        is_self(caller, target.uid)
        or is_global_admin(caller)
        or is_scoped_chain_admin(caller, target.claims.chain_id)
    )


def claims_for_new_account(chain_id: str | None, *, allow_listed: bool) -> Claims:
    """Initial claims for a freshly registered account."""
    role = Role.admin if allow_listed else None
    return Claims(role=role, chain_id=chain_id)


def claims_after_chain_created(claims: Claims, chain_id: str) -> Claims:
    """The creator administers the new chain unless already holding a role."""
    return Claims(role=claims.role or Role.chain_admin, chain_id=chain_id)


def claims_after_chain_switch(claims: Claims, chain_id: str) -> Claims:
    """A chain admin moving to another chain drops the role; others keep theirs."""
    role = None if claims.role == Role.chain_admin else claims.role
    return Claims(role=role, chain_id=chain_id)
