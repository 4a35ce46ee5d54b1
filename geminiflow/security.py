from __future__ import annotations

import base64
from datetime import datetime, timedelta, timezone
from typing import Any

from cryptography.fernet import Fernet, InvalidToken
from jose import JWTError, jwt
from passlib.context import CryptContext

from geminiflow.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

TOKEN_ALGORITHM = "HS256"
MASKED_SECRET = "********"


class ChannelSecretDecryptError(RuntimeError):
  pass


class TokenError(ValueError):
  pass


def hash_password(password: str) -> str:
  return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
  try:
    return pwd_context.verify(password, password_hash)
  except ValueError:
    return False


def create_access_token(*, user_id: int, role: str, now: datetime | None = None) -> str:
  issued = now or datetime.now(timezone.utc)
  claims: dict[str, Any] = {
    "sub": str(user_id),
    "role": role,
    "iat": int(issued.timestamp()),
    "exp": int((issued + timedelta(days=max(1, int(settings.token_ttl_days)))).timestamp()),
  }
  return jwt.encode(claims, settings.app_secret, algorithm=TOKEN_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
  try:
    claims = jwt.decode(token, settings.app_secret, algorithms=[TOKEN_ALGORITHM])
  except JWTError as exc:
    raise TokenError("Invalid token") from exc
  sub = claims.get("sub")
  if not sub or not str(sub).isdigit():
    raise TokenError("Invalid token")
  return claims


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


def decrypt_channel_secret(value: str) -> str:
  try:
    return decrypt_secret(value)
  except InvalidToken as exc:
    raise ChannelSecretDecryptError(
      "Channel API key cannot be decrypted with the current key; re-enter the key and save this channel again."
    ) from exc
