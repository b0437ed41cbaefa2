"""Line-oriented PassVault protocol: command types and the Command model."""

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field

from passvault.common.errors import (
    CipherError, InvalidArgument, InvalidCommand, PassSecureError
)
from passvault.crypto import cipher

ARGUMENT_PREFIX = "--"
ENCRYPTION_PASSWORD_ARGUMENT = "encryptionPassword"
DECRYPTION_PASSWORD_ARGUMENT = "decryptionPassword"
PASSWORD_ARGUMENT = "password"
MESSAGE_ARGUMENT = "message"

# Local-only arguments, never written to the wire
RESERVED_ARGUMENTS = (ENCRYPTION_PASSWORD_ARGUMENT, DECRYPTION_PASSWORD_ARGUMENT)


class CommandType(str, Enum):
    """Command tokens; the value is the exact wire spelling"""
    PING = "PING"
    REGISTER = "REGISTER"
    LOGIN = "LOGIN"
    ADD = "ADD"
    GENERATE = "GENERATE"
    GET = "GET"
    REMOVE = "REMOVE"
    DISCONNECT = "DISCONNECT"
    QUIT = "QUIT"
    OK = "OK"
    NOK = "NOK"
    HELP = "HELP"

    def __str__(self):
        return self.value


def is_argument_name(token: str) -> bool:
    return token.startswith(ARGUMENT_PREFIX)


class Command(BaseModel):
    """One protocol line: a type and its named arguments"""
    type: CommandType
    arguments: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def parse(cls, line: str) -> "Command":
        """
        Parse a protocol line.

        Args:
            line: Text such as "ADD --name bank --password p4ss --overwrite"

        Returns:
            Command

        Raises:
            InvalidArgument: empty line
            InvalidCommand: unknown command type
        """
        line = line.rstrip("\r\n")
        if not line.strip():
            raise InvalidArgument("empty command line")

        tokens = line.split(" ")
        try:
            command_type = CommandType(tokens[0])
        except ValueError as e:
            raise InvalidCommand(tokens[0]) from e

        arguments = {}
        i = 1
        while i < len(tokens):
            token = tokens[i]
            if not is_argument_name(token):
                i += 1
                continue

            name = token[len(ARGUMENT_PREFIX):]
            if i + 1 < len(tokens) and not is_argument_name(tokens[i + 1]):
                arguments[name] = tokens[i + 1]
                i += 2
            else:
                # Flag shorthand; the next token is looked at again as a name
                arguments[name] = "true"
                i += 1

        return cls(type=command_type, arguments=arguments)

    @classmethod
    def ok(cls) -> "Command":
        return cls(type=CommandType.OK)

    @classmethod
    def nok(cls, error: PassSecureError) -> "Command":
        return cls(type=CommandType.NOK, arguments={MESSAGE_ARGUMENT: error.code})

    def serialize(self) -> str:
        """Return the wire form, without the reserved cipher-password arguments."""
        parts = [self.type.value]
        for name, value in self.arguments.items():
            if name in RESERVED_ARGUMENTS:
                continue
            parts.append(f"{ARGUMENT_PREFIX}{name} {value}")
        return " ".join(parts)

    def __str__(self):
        return self.serialize()

    def encrypt(self) -> None:
        """Replace the password argument with its ciphertext when an encryption password is set."""
        passphrase = self.arguments.get(ENCRYPTION_PASSWORD_ARGUMENT)
        password = self.arguments.get(PASSWORD_ARGUMENT)
        if passphrase is None or password is None:
            return

        try:
            self.arguments[PASSWORD_ARGUMENT] = cipher.encrypt(password, passphrase)
        except InvalidArgument as e:
            raise CipherError(e.detail) from e

    def decrypt(self, cipher_text: str) -> str:
        """Decrypt a payload with the decryption password, or return it unchanged."""
        passphrase = self.arguments.get(DECRYPTION_PASSWORD_ARGUMENT)
        if passphrase is None:
            return cipher_text
        return cipher.decrypt(cipher_text, passphrase)

    def get_string(self, name: str) -> Optional[str]:
        return self.arguments.get(name)

    def get_int(self, name: str) -> int:
        """Integer argument, 0 when missing or not a number"""
        try:
            return int(self.arguments[name])
        except (KeyError, ValueError):
            return 0

    def get_bool(self, name: str) -> bool:
        """Boolean argument, true only for a case-insensitive "true" """
        return self.arguments.get(name, "").lower() == "true"
