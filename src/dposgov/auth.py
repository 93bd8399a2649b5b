"""
dposgov/auth.py

Action authorization.

The contract asks an authorizer to confirm that the account named by an
action signed it. SignatureAuthorizer checks the action's Evrmore message
signature against the account's address; accounts are Evrmore addresses.
"""

import logging
from typing import Callable, Optional, Protocol

from .errors import AuthorizationError
from .signing import verify_message

logger = logging.getLogger("dposgov.auth")


class Authorizer(Protocol):
    def require_auth(self, action) -> None:
        ...


class SignatureAuthorizer:
    """
    Require every action to carry a valid signature by its account.

    Usage:
        authorizer = SignatureAuthorizer()
        contract = GovernanceContract(state, config, authorizer=authorizer)

    Args:
        resolve_address: Maps an account name to the Evrmore address that
            must have signed. Defaults to the account name itself.
    """

    def __init__(self, resolve_address: Optional[Callable[[str], Optional[str]]] = None):
        self.resolve_address = resolve_address or (lambda account: account)

    def require_auth(self, action) -> None:
        account = action.account
        if not action.signature:
            raise AuthorizationError(f"missing authority of {account}")

        address = self.resolve_address(account)
        if not address:
            raise AuthorizationError(f"no signing address known for {account}")

        try:
            valid = verify_message(
                action.get_signing_message(),
                action.signature,
                address=address,
            )
        except Exception as e:
            logger.warning(f"Signature check failed for {account}: {e}")
            valid = False

        if not valid:
            raise AuthorizationError(f"missing authority of {account}")
        logger.debug(f"Authorized {action.ACTION} by {account}")


class AllowAllAuthorizer:
    """Authorizer for trusted callers that authenticate accounts themselves."""

    def require_auth(self, action) -> None:
        return None
