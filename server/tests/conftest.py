import base64
import json
import os
from typing import Any, Dict, List, Optional, Tuple

import pytest
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

TEST_KEY_HEX = "C5D58EF67A7584E4A29F6C35BBC4EB12"
FIXED_IV = bytes(range(16))

os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")


def encrypt_payload(value: Any, key_hex: str = TEST_KEY_HEX, iv: bytes = FIXED_IV) -> str:
    """Encrypt ``value`` the way the provider does: base64(iv + AES-CBC(json))."""
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    plaintext = json.dumps(value).encode("utf-8")
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(bytes.fromhex(key_hex)), modes.CBC(iv)).encryptor()
    content = encryptor.update(padded) + encryptor.finalize()
    return base64.b64encode(iv + content).decode("ascii")


class FakeResponse:
    def __init__(self, body: Any = None, status_code: int = 200, text: Optional[str] = None):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else json.dumps(body)

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("No JSON object could be decoded")
        return self._body


class FakeSession:
    """Scripted stand-in for ``requests.Session``.

    ``routes`` maps ``(method, url)`` to a list of responses or exceptions,
    consumed in order; the last entry repeats once the rest are used up.
    """

    def __init__(self, routes: Dict[Tuple[str, str], List[Any]]):
        self.routes = {key: list(value) for key, value in routes.items()}
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def request(self, method: str, url: str, timeout: Optional[float] = None, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, "timeout": timeout, **kwargs})
        queue = self.routes.get((method, url))
        if not queue:
            raise AssertionError(f"Unexpected request {method} {url}")
        result = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(result, Exception):
            raise result
        return result

    def calls_to(self, url: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["url"] == url]

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def encrypt():
    return encrypt_payload


@pytest.fixture
def fake_session_factory():
    return FakeSession
