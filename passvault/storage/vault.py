"""Filesystem vault: one directory per user, one file per entry."""

import logging
import os
import secrets
import shutil
from pathlib import Path

from passvault.common.errors import (
    EntryAlreadyExists, EntryNotFound, InvalidArgument, InvalidCredentials,
    ServerError, Unauthorized, UserAlreadyExists
)

logger = logging.getLogger(__name__)

HASH_EXTENSION = ".hs"
ENTRY_EXTENSION = ".ps"


def _check_name(value: str, argument: str) -> None:
    if not value or "\x00" in value:
        raise InvalidArgument(argument)


def _normalize(path: Path) -> str:
    return os.path.normpath(os.path.abspath(path))


def check_confinement(origin: Path, destination: Path) -> None:
    """
    Make sure destination resolves strictly below origin.

    Raises:
        Unauthorized: destination equals origin or escapes it
    """
    root = _normalize(origin)
    target = _normalize(destination)
    if target == root or not target.startswith(root.rstrip(os.sep) + os.sep):
        raise Unauthorized(f"{destination} escapes {origin}")


class VaultStore:
    """
    Per-user vault directories under a shared root.

    Layout:
        <root>/<username>/<username>.hs   credential hash
        <root>/<username>/<name>.ps       vault entry
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def user_path(self, username: str) -> Path:
        """Confined directory of a user's vault."""
        _check_name(username, "username")
        path = self.root / username
        check_confinement(self.root, path)
        # A username is a single path component
        if any(sep in username for sep in (os.sep, os.altsep, "/") if sep):
            raise InvalidArgument("username")
        return path

    def entry_path(self, username: str, name: str) -> Path:
        """Confined path of a vault entry. Runs before any existence check."""
        _check_name(name, "name")
        user_path = self.user_path(username)
        path = user_path / f"{name}{ENTRY_EXTENSION}"
        check_confinement(user_path, path)
        return path

    def credential_path(self, username: str) -> Path:
        return self.user_path(username) / f"{username}{HASH_EXTENSION}"

    def user_exists(self, username: str) -> bool:
        return self.user_path(username).is_dir()

    def exists(self, username: str, name: str) -> bool:
        return self.entry_path(username, name).is_file()

    def read(self, username: str, name: str) -> str:
        """
        Read a vault entry.

        Returns:
            Stored content (plaintext or encrypted blob)
        """
        path = self.entry_path(username, name)
        if not path.is_file():
            raise EntryNotFound(name)

        try:
            with open(path, 'r', encoding='utf-8') as f:
                return f.read()
        except OSError as e:
            logger.error("Cannot read entry %s of %s: %s", name, username, e)
            raise ServerError() from e

    def write(self, username: str, name: str, content: str, overwrite: bool = False) -> None:
        """
        Store a vault entry.

        Args:
            username: Vault owner
            name: Entry name
            content: Plaintext or encrypted blob
            overwrite: Replace an existing entry instead of failing
        """
        path = self.entry_path(username, name)
        if path.exists() and not overwrite:
            raise EntryAlreadyExists(name)

        try:
            with open(path, 'w', encoding='utf-8') as f:
                f.write(content)
        except OSError as e:
            logger.error("Cannot write entry %s of %s: %s", name, username, e)
            raise ServerError() from e

    def remove(self, username: str, name: str) -> None:
        path = self.entry_path(username, name)
        if not path.is_file():
            raise EntryNotFound(name)

        try:
            path.unlink()
        except FileNotFoundError as e:
            # Lost a race with another session
            raise EntryNotFound(name) from e
        except OSError as e:
            logger.error("Cannot remove entry %s of %s: %s", name, username, e)
            raise ServerError() from e

    def register(self, username: str, password_hash: str) -> None:
        """
        Create a user's vault and credential record.

        Raises:
            UserAlreadyExists: the user directory is already there
            ServerError: the directory or record could not be created
        """
        path = self.user_path(username)
        if path.is_dir():
            raise UserAlreadyExists(username)

        try:
            self.root.mkdir(parents=True, exist_ok=True)
            path.mkdir()
        except FileExistsError as e:
            raise UserAlreadyExists(username) from e
        except OSError as e:
            logger.error("Cannot create vault for %s: %s", username, e)
            raise ServerError() from e

        try:
            with open(self.credential_path(username), 'w', encoding='utf-8') as f:
                f.write(password_hash)
        except OSError as e:
            logger.error("Cannot write credentials for %s: %s", username, e)
            shutil.rmtree(path, ignore_errors=True)
            raise ServerError() from e

        logger.info("User registered: %s", username)

    def verify(self, username: str, password_hash: str) -> bool:
        """
        Compare a password hash with the stored credential record.

        Returns:
            True if the hashes match

        Raises:
            InvalidCredentials: no such user (same error as a wrong password
                once the session layer reports it)
        """
        if not self.user_exists(username):
            raise InvalidCredentials(username)

        path = self.credential_path(username)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                stored_hash = f.read()
        except FileNotFoundError as e:
            raise InvalidCredentials(username) from e
        except OSError as e:
            logger.error("Cannot read credentials for %s: %s", username, e)
            raise ServerError() from e

        # Constant-time comparison
        return secrets.compare_digest(password_hash, stored_hash)
