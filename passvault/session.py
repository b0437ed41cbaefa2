"""
Per-connection authentication state.

A Session is Anonymous until REGISTER or LOGIN succeeds, then bound to one
username until DISCONNECT or the connection closes. Vault operations always
use the bound username, never one supplied by the client.
"""

import logging
import threading
from typing import Optional, Set

from passvault.common.errors import (
    InvalidCredentials, Unauthorized, UserAlreadyConnected
)
from passvault.crypto.cipher import hash_secret
from passvault.storage.vault import VaultStore

logger = logging.getLogger(__name__)


class ActiveUsers:
    """Usernames currently logged in on any connection of this process."""

    def __init__(self):
        self._lock = threading.Lock()
        self._users: Set[str] = set()

    def acquire(self, username: str) -> bool:
        """Claim a username; False if another session holds it."""
        with self._lock:
            if username in self._users:
                return False
            self._users.add(username)
            return True

    def release(self, username: str) -> None:
        with self._lock:
            self._users.discard(username)

    def __contains__(self, username: str) -> bool:
        with self._lock:
            return username in self._users


class Session:
    """Authentication state machine for a single connection"""

    def __init__(self, store: VaultStore, active_users: Optional[ActiveUsers] = None):
        """
        Args:
            store: Vault storage shared by all sessions
            active_users: Registry enforcing one live login per username;
                None only checks this session
        """
        self.store = store
        self.active_users = active_users
        self.logged_in = False
        self.username: Optional[str] = None

    def _require_login(self) -> str:
        if not self.logged_in:
            raise Unauthorized()
        return self.username

    def register(self, username: str, password: str) -> None:
        """Create the user's vault and log in as that user."""
        if self.logged_in:
            raise UserAlreadyConnected(self.username)
        self.store.register(username, hash_secret(password))
        self.login(username, password)

    def login(self, username: str, password: str) -> None:
        if self.logged_in:
            raise UserAlreadyConnected(self.username)

        if not self.store.verify(username, hash_secret(password)):
            raise InvalidCredentials(username)

        if self.active_users is not None and not self.active_users.acquire(username):
            logger.warning("Rejected second login for %s", username)
            raise UserAlreadyConnected(username)

        self.logged_in = True
        self.username = username
        logger.info("User logged in: %s", username)

    def disconnect(self) -> None:
        """Log out. Safe to call in any state."""
        if self.logged_in:
            logger.info("User logged out: %s", self.username)
            if self.active_users is not None:
                self.active_users.release(self.username)
        self.logged_in = False
        self.username = None

    def add(self, name: str, password: str, overwrite: bool = False) -> None:
        self.store.write(self._require_login(), name, password, overwrite)

    def get(self, name: str) -> str:
        return self.store.read(self._require_login(), name)

    def remove(self, name: str) -> None:
        self.store.remove(self._require_login(), name)
