"""
PassVault exception classes.

Every failure that can cross the wire is one of the classes below. The
``code`` attribute is the token sent back in ``NOK --message <code>``.
"""


class PassSecureError(Exception):
    """Base exception for vault, session and protocol failures"""
    code = "server_error"

    def __init__(self, detail: str = None):
        super().__init__(detail or self.code)
        self.detail = detail

    def __str__(self):
        return self.code


class InvalidArgument(PassSecureError):
    """Raised when a command argument is missing or malformed"""
    code = "invalid_argument"


class InvalidCommand(PassSecureError):
    """Raised when the first token is not a known command type"""
    code = "invalid_command"


class BadResponse(PassSecureError):
    """Raised when the server rejects a command or answers garbage"""
    code = "bad_response"


class SocketException(PassSecureError):
    """Raised on transport I/O failure"""
    code = "socket_exception"


class CipherError(PassSecureError):
    """Raised when encryption or decryption fails"""
    code = "cipher_error"


class UserAlreadyExists(PassSecureError):
    code = "user_already_exists"


class InvalidCredentials(PassSecureError):
    """Raised for an unknown user or a wrong password (indistinguishable)"""
    code = "invalid_credentials"


class UserAlreadyConnected(PassSecureError):
    code = "user_already_connected"


class ServerError(PassSecureError):
    """Raised when the vault storage fails underneath an operation"""
    code = "server_error"


class Unauthorized(PassSecureError):
    """Raised for anonymous access or a path escaping the vault"""
    code = "unauthorized"


class EntryAlreadyExists(PassSecureError):
    code = "entry_already_exists"


class EntryNotFound(PassSecureError):
    code = "entry_not_found"

