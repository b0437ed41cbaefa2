"""Random password generation for the GENERATE command."""

import secrets
import string

DEFAULT_LENGTH = 15
SPECIAL_CHARACTERS = "!@#$%^&*()-_=+[]{};:,.<>/?\\|'\"`~"


def generate_password(length: int = DEFAULT_LENGTH, special: bool = False) -> str:
    """
    Generate a random password.

    Args:
        length: Number of characters; values <= 0 fall back to 15
        special: Also draw from punctuation characters

    Returns:
        Password string without spaces
    """
    if length <= 0:
        length = DEFAULT_LENGTH

    alphabet = string.ascii_letters + string.digits
    if special:
        alphabet += SPECIAL_CHARACTERS

    while True:
        password = ''.join(secrets.choice(alphabet) for _ in range(length))
        # A leading "--" would be read as an argument name on the wire
        if not password.startswith('--'):
            return password
