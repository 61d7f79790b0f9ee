import base64
import hashlib
import hmac
import secrets
from dataclasses import dataclass


@dataclass(frozen=True)
class ApiKeyParts:
    prefix: str
    plain: str
    hashed: str


def generate_api_key(pepper: str, prefix_len: int = 8) -> ApiKeyParts:
    # Example: mk_<prefix>_<random>
    raw = secrets.token_urlsafe(32)
    prefix = raw[:prefix_len]
    plain = f"mk_{prefix}_{raw}"
    hashed = hash_api_key(plain, pepper)
    return ApiKeyParts(prefix=prefix, plain=plain, hashed=hashed)


def hash_api_key(plain: str, pepper: str) -> str:
    # Pepper protects against rainbow tables if the env file leaks.
    salted = (plain + pepper).encode("utf-8")
    digest = hashlib.sha256(salted).digest()
    return base64.b64encode(digest).decode("utf-8")


def api_key_matches(plain: str, expected_hash: str, pepper: str) -> bool:
    if not expected_hash:
        return False
    return hmac.compare_digest(hash_api_key(plain, pepper), expected_hash)
