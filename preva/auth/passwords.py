"""
PBKDF2 password hashing.

Hashes are stored as `pbkdf2_sha256$<iterations>$<salt hex>$<hash hex>`.
"""

import hashlib
import hmac
import secrets

_ALGO = "pbkdf2_sha256"
_ITERATIONS = 210000


def hash_password(raw_password: str, salt: bytes | None = None) -> str:
  salt = salt or secrets.token_bytes(16)
  dk = hashlib.pbkdf2_hmac(
    "sha256",
    (raw_password or "").encode("utf-8"),
    salt,
    _ITERATIONS,
  )
  return f"{_ALGO}${_ITERATIONS}${salt.hex()}${dk.hex()}"


def verify_password(raw_password: str, stored: str) -> bool:
  try:
    algo, iters, salt_hex, hash_hex = (stored or "").split("$", 3)
    if algo != _ALGO:
      return False
    iterations = int(iters)
    salt = bytes.fromhex(salt_hex)
    expected = bytes.fromhex(hash_hex)
  except ValueError:
    return False
  actual = hashlib.pbkdf2_hmac(
    "sha256",
    (raw_password or "").encode("utf-8"),
    salt,
    iterations,
  )
  return hmac.compare_digest(actual, expected)
