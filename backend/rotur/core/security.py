# rotur/core/security.py
"""
Security helpers: credential validation, password hashing and opaque tokens.

Clients never send plain passwords. They send a 32-hex-digit hash computed
client side; that hash is what gets argon2-hashed and stored. Account
documents imported from older deployments may still carry the raw client
hash, which `verify_password` accepts and `needs_rehash` reports.
"""
import re
import secrets
import uuid

from passlib.context import CryptContext

# Password hashing context
pwd_context = CryptContext(
    schemes=["argon2"],  # Use Argon2 for password hashing
    deprecated="auto",
)

USERNAME_RE = re.compile(r"^[a-z0-9_]+$")
PASSWORD_HASH_RE = re.compile(r"^[a-fA-F0-9]{32}$")
EMPTY_PASSWORD_HASH = "d41d8cd98f00b204e9800998ecf8427e"  # md5("")
USERNAME_MIN, USERNAME_MAX = 3, 20


def validate_username(username: str) -> str | None:
    """Return an error message for an unusable username, else None."""
    if not username:
        return "Username is required"
    if len(username) < USERNAME_MIN or len(username) > USERNAME_MAX:
        return f"Username must be between {USERNAME_MIN} and {USERNAME_MAX} characters"
    if not USERNAME_RE.match(username.lower()):
        return "Username may only contain letters, numbers and underscores"
    return None


def validate_password_hash(password: str) -> str | None:
    if not password or not PASSWORD_HASH_RE.match(password):
        return "Password must be a valid hash"
    if password.lower() == EMPTY_PASSWORD_HASH:
        return "Password cannot be empty"
    return None


def hash_password(client_hash: str) -> str:
    return pwd_context.hash(client_hash)


def verify_password(client_hash: str, stored: str) -> bool:
    """Check a client hash against the stored value (argon2, or a legacy raw hash)."""
    if not stored:
        return False
    if PASSWORD_HASH_RE.match(stored):
        return secrets.compare_digest(stored.lower(), client_hash.lower())
    return pwd_context.verify(client_hash, stored)


def needs_rehash(stored: str) -> bool:
    return bool(PASSWORD_HASH_RE.match(stored or ""))


def generate_token() -> str:
    """Opaque 32-hex token used for user keys, access keys and post ids."""
    return secrets.token_hex(16)


def generate_id() -> str:
    return str(uuid.uuid4())


def generate_short_token() -> str:
    return secrets.token_hex(6)
