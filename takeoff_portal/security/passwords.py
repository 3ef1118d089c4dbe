from pwdlib import PasswordHash


password_hash = PasswordHash.recommended()


def hash_password(raw_password: str) -> str:
    return password_hash.hash(raw_password)


def verify_password(raw_password: str, hashed_password: str) -> bool:
    return password_hash.verify(raw_password, hashed_password)


def verify_and_upgrade(raw_password: str, hashed_password: str) -> tuple[bool, str | None]:
    """Verify a password and return a replacement hash when the stored one uses outdated parameters."""
    return password_hash.verify_and_update(raw_password, hashed_password)


def validate_new_password(raw_password: str) -> None:
    if len(raw_password) < 8:
        raise ValueError('Password must be at least 8 characters')
    if raw_password.strip() != raw_password:
        raise ValueError('Password cannot start or end with whitespace')
