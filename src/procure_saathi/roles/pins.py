"""
PIN hashing

PINs are stored as salted PBKDF2-SHA256 hashes in the form
``pbkdf2_sha256$<iterations>$<salt hex>$<hash hex>``. The PIN itself is
never persisted or logged.
"""

import hashlib
import hmac
import secrets

ALGORITHM = "pbkdf2_sha256"
ITERATIONS = 120_000


def hash_secret(secret: str, *, salt: bytes | None = None, iterations: int = ITERATIONS) -> str:
    salt = salt if salt is not None else secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", secret.encode("utf-8"), salt, iterations)
    return f"{ALGORITHM}${iterations}${salt.hex()}${digest.hex()}"


def verify_secret(secret: str, encoded: str) -> bool:
    """Constant-time comparison of a candidate against a stored hash"""
    try:
        algorithm, iterations, salt_hex, digest_hex = encoded.split("$")
    except ValueError:
        return False
    if algorithm != ALGORITHM:
        return False
    candidate = hashlib.pbkdf2_hmac(
        "sha256", secret.encode("utf-8"), bytes.fromhex(salt_hex), int(iterations)
    )
    return hmac.compare_digest(candidate.hex(), digest_hex)


def is_well_formed_pin(pin: str, min_length: int, max_length: int) -> bool:
    return pin.isascii() and pin.isdigit() and min_length <= len(pin) <= max_length
