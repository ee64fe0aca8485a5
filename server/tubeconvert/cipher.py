from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import DecryptionError

IV_SIZE = 16


def decrypt_payload(encoded: str, key_hex: str) -> Any:
    """Decode an IV-prefixed AES-128-CBC blob into its JSON value.

    The blob is base64 text whose first 16 decoded bytes are the IV. Any
    failure raises ``DecryptionError`` chained to the underlying cause.
    """
    try:
        key = bytes.fromhex(key_hex)
        data = base64.b64decode(encoded, validate=True)
    except (TypeError, ValueError, binascii.Error) as exc:
        raise DecryptionError(f"Payload is not valid base64: {exc}") from exc

    iv, content = data[:IV_SIZE], data[IV_SIZE:]
    if len(iv) != IV_SIZE or not content:
        raise DecryptionError(f"Payload too short ({len(data)} bytes)")

    try:
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(content) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()
    except ValueError as exc:
        raise DecryptionError(f"Payload could not be decrypted: {exc}") from exc

    try:
        return json.loads(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecryptionError(f"Decrypted payload is not JSON: {exc}") from exc
