"""
Domain errors raised by the auth components.
Each carries the HTTP status and the caller-safe message the error
handlers render; internal detail goes to the log, never to the client.
"""


class AuthError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.message)
        self.detail = detail


class EmailAlreadyRegistered(AuthError):
    status_code = 409
    message = "User already exists"


class InvalidCredentials(AuthError):
    # one message for unknown email, deleted account and wrong password
    status_code = 401
    message = "Invalid credentials"


class TokenError(AuthError):
    status_code = 403
    message = "Invalid or expired token"


class InvalidToken(TokenError):
    pass


class ExpiredToken(TokenError):
    pass


class SessionNotActive(AuthError):
    status_code = 403
    message = "Invalid or expired refresh token"
