"""Administrative access gate."""

import logging

from .errors import Unauthorized

logger = logging.getLogger(__name__)


class AccessControl:
    """Single-operator gate for administrative operations."""

    def __init__(self, admin: str):
        self.admin = admin

    def is_admin(self, caller: str) -> bool:
        return caller == self.admin

    def require_admin(self, caller: str):
        if not self.is_admin(caller):
            raise Unauthorized(f"{caller} is not the operator")

    def transfer_admin(self, caller: str, new_admin: str):
        self.require_admin(caller)
        if not new_admin:
            raise ValueError("New operator must be a non-empty identity")
        logger.info(f"Operator changed from {self.admin} to {new_admin}")
        self.admin = new_admin
