"""Helper functions: b64e, b64d, sha512_hex."""

import base64
import binascii
import hashlib

from passvault.common.errors import InvalidArgument


def b64e(b: bytes):
    """Base64 encode bytes and return as string"""
    return base64.b64encode(b).decode('utf-8')


def b64d(s: str):
    """Base64 decode string and return as bytes"""
    try:
        return base64.b64decode(s.encode('utf-8'), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise InvalidArgument() from e


def sha512_hex(data: bytes):
    """Compute SHA-512 hash and return as hex string"""
    return hashlib.sha512(data).hexdigest()
