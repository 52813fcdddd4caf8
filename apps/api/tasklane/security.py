from __future__ import annotations

import base64
import hashlib
import hmac

from cryptography.fernet import Fernet, InvalidToken

from tasklane.config import settings

GITHUB_SIGNATURE_HEADER = "x-hub-signature-256"


class IntegrationSecretDecryptError(RuntimeError):
  pass


def _fernet() -> Fernet:
  key = settings.fernet_key
  # accept raw bytes/base64 for ergonomics
  try:
    base64.urlsafe_b64decode(key.encode("utf-8"))
    return Fernet(key.encode("utf-8"))
  except Exception:
    b = base64.urlsafe_b64encode(key.encode("utf-8").ljust(32, b"\0")[:32])
    return Fernet(b)


def encrypt_secret(value: str) -> str:
  return _fernet().encrypt(value.encode("utf-8")).decode("utf-8")


def decrypt_secret(value: str) -> str:
  return _fernet().decrypt(value.encode("utf-8")).decode("utf-8")


def decrypt_integration_secret(value: str) -> str:
  try:
    return decrypt_secret(value)
  except InvalidToken as exc:
    raise IntegrationSecretDecryptError(
      "GitHub token cannot be decrypted with the current key; reconnect GitHub for this board and save again."
    ) from exc


def token_hint(value: str) -> str:
  s = (value or "").strip()
  if not s:
    return ""
  if len(s) <= 6:
    return f"…{s}"
  return f"…{s[-6:]}"


def github_signature(secret: str, body: bytes) -> str:
  digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
  return f"sha256={digest}"


def verify_github_signature(secret: str, body: bytes, signature: str | None) -> bool:
  if not signature:
    return False
  return hmac.compare_digest(github_signature(secret, body), signature.strip())
