from pwdlib import PasswordHash


password_hash = PasswordHash.recommended()

MIN_PASSWORD_LENGTH = 8


def hash_password(raw_password: str) -> str:
    if len(raw_password or '') < MIN_PASSWORD_LENGTH:
        raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
    return password_hash.hash(raw_password)


def check_password(raw_password: str, hashed_password: str) -> tuple[bool, str | None]:
    """Returns (valid, new_hash); new_hash is set when the stored hash should be upgraded."""
    if not raw_password or not hashed_password:
        return False, None
    return password_hash.verify_and_update(raw_password, hashed_password)
