"""Error taxonomy shared by the stores, the service and the auth guard."""


class IPGuardError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(IPGuardError, ValueError):
    """Malformed input: bad IP, empty credentials, non-future expiry."""


class AlreadyBlockedError(IPGuardError):
    """An active block already exists for the IP in that store."""

    def __init__(self, ip: str):
        super().__init__(f"IP {ip} is already blocked")
        self.ip = ip


class BlockNotFoundError(IPGuardError):
    """No block with the given id."""

    def __init__(self, block_id: str, store: str | None = None):
        where = f" in {store}" if store else ""
        super().__init__(f"IP block with id {block_id} not found{where}")
        self.block_id = block_id
        self.store = store


class StoreUnavailableError(IPGuardError):
    """Network or driver failure from a backing store."""


class IPBlockedError(IPGuardError):
    def __init__(self):
        super().__init__("ip address is blocked")


class TooManyAttemptsError(IPGuardError):
    def __init__(self):
        super().__init__("too many login attempts")


class InvalidCredentialsError(IPGuardError):
    def __init__(self):
        super().__init__("invalid credentials")


class InvalidTokenError(IPGuardError):
    def __init__(self, message: str = "invalid token"):
        super().__init__(message)


class TokenExpiredError(InvalidTokenError):
    def __init__(self):
        super().__init__("token expired")
