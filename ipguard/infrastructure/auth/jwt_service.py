"""Base authenticator -- bcrypt credentials and HS256 JWT access tokens."""
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from ipguard.domain.errors import InvalidCredentialsError, InvalidTokenError, TokenExpiredError
from ipguard.domain.invariant import validate_credentials
from ipguard.domain.user import User
from ipguard.infrastructure.auth import password as passwords

ALGORITHM = "HS256"

_dummy_hash: str | None = None


def _timing_hash() -> str:
    """Hash compared against when the e-mail is unknown, so both paths cost a bcrypt check."""
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = passwords.hash_password("not-a-real-password")
    return _dummy_hash


class JWTAuthService:
    """Looks users up by e-mail and issues signed access tokens."""

    def __init__(self, user_repo, secret_key: str, token_duration: timedelta = timedelta(hours=24)):
        if not secret_key:
            raise RuntimeError("JWT secret key must not be empty.")
        self._users = user_repo
        self._secret = secret_key
        self._duration = token_duration

    def authenticate(self, email: str, password: str) -> tuple[User, str]:
        validate_credentials(email, password)
        user = self._users.find_by_email(email)
        if user is None:
            self.verify_password(password, _timing_hash())
            raise InvalidCredentialsError()
        if not self.verify_password(password, user.password_hash):
            raise InvalidCredentialsError()
        return user, self.generate_token(user, self._duration)

    def generate_token(self, user: User, duration: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user.id,
            "email": user.email,
            "role": user.role.value,
            "type": "access",
            "iat": now,
            "exp": now + duration,
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def validate_token(self, token: str) -> dict:
        """Decode a token; raises TokenExpiredError / InvalidTokenError."""
        try:
            payload = jwt.decode(token, self._secret, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            raise TokenExpiredError() from None
        except JWTError:
            raise InvalidTokenError() from None
        for claim in ("sub", "email", "role", "exp"):
            if payload.get(claim) is None:
                raise InvalidTokenError()
        if payload.get("type") != "access":
            raise InvalidTokenError("access token required")
        return payload

    def verify_password(self, password: str, hashed: str) -> bool:
        return passwords.verify_password(password, hashed)

    def hash_password(self, password: str) -> str:
        return passwords.hash_password(password)
