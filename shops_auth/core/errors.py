"""Error taxonomy shared by the auth service and its HTTP layer.

Every failure the orchestrator can report is an ``AuthError`` subclass that
carries a stable machine-readable ``code`` and the HTTP status the transport
layer answers with.
"""


class AuthError(Exception):
    code = 'AUTH_ERROR'
    status_code = 400
    message = 'Authentication error'

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class DuplicateUser(AuthError):
    code = 'DUPLICATE_USER'
    status_code = 409
    message = 'User with this email already exists'


class InvalidCredentials(AuthError):
    code = 'INVALID_CREDENTIALS'
    status_code = 401
    message = 'Invalid email or password'


class OAuthAccountRequired(AuthError):
    code = 'OAUTH_ACCOUNT_REQUIRED'
    status_code = 401
    message = 'This account requires Google OAuth login'


class RoleMismatch(AuthError):
    code = 'ROLE_MISMATCH'
    status_code = 403
    message = 'Invalid role for this account'


class EmailNotVerified(AuthError):
    code = 'EMAIL_NOT_VERIFIED'
    status_code = 403
    message = 'Google email must be verified'


class IncompleteProfile(AuthError):
    code = 'INCOMPLETE_PROFILE'
    status_code = 400
    message = 'Incomplete user information from provider'


class InvalidOAuthState(AuthError):
    code = 'INVALID_OAUTH_STATE'
    status_code = 400
    message = 'Invalid or expired OAuth state'


class ProviderAccountConflict(AuthError):
    code = 'PROVIDER_ACCOUNT_CONFLICT'
    status_code = 409
    message = 'This account is linked to a different provider identity'


class InvalidToken(AuthError):
    code = 'INVALID_TOKEN'
    status_code = 401
    message = 'Invalid token'


class TokenRevoked(AuthError):
    code = 'TOKEN_REVOKED'
    status_code = 401
    message = 'Refresh token has been revoked'


class TokenExpired(AuthError):
    code = 'TOKEN_EXPIRED'
    status_code = 401
    message = 'Refresh token expired'


class Unauthorized(AuthError):
    code = 'UNAUTHORIZED'
    status_code = 401
    message = 'Access token is required'


class Forbidden(AuthError):
    code = 'FORBIDDEN'
    status_code = 403
    message = 'Insufficient permissions'


class UserNotFound(AuthError):
    code = 'USER_NOT_FOUND'
    status_code = 404
    message = 'User not found'


class OAuthProviderError(AuthError):
    code = 'OAUTH_PROVIDER_ERROR'
    status_code = 502
    message = 'OAuth provider request failed'


class RateLimited(AuthError):
    status_code = 429
    message = 'Too many requests, please try again later.'

    def __init__(self, code: str, message: str | None = None):
        super().__init__(message)
        self.code = code


class BadRequest(AuthError):
    status_code = 400
    message = 'Bad request'

    def __init__(self, code: str, message: str | None = None):
        super().__init__(message)
        self.code = code
