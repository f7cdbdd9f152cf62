"""Error taxonomy shared by the engine, the reaper and the HTTP layer.

Every error carries an HTTP status and a message that is safe to show to a
client. Anything that is not a ``LinkVaultError`` is treated as an internal
failure and never described to the caller.
"""


class LinkVaultError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def extra(self) -> dict:
        return {}


class ValidationError(LinkVaultError):
    status_code = 400
    default_message = "Invalid request."


class UploadTooLarge(ValidationError):
    default_message = "File too large."


class WrongKind(ValidationError):
    default_message = "This link does not contain a file."


class AlreadyReported(ValidationError):
    default_message = "You already reported this link."


class AuthenticationError(LinkVaultError):
    status_code = 401
    default_message = "Authentication required."


class AuthorizationError(LinkVaultError):
    status_code = 403
    default_message = "Forbidden"


class InvalidLink(LinkVaultError):
    status_code = 403
    default_message = "Invalid link."


class NotFound(LinkVaultError):
    status_code = 404
    default_message = "Not found"


class LinkGone(LinkVaultError):
    status_code = 410


class LinkExpired(LinkGone):
    default_message = "Link expired."


class LinkExhausted(LinkGone):
    default_message = "Link already used."


class PasswordError(LinkVaultError):
    status_code = 401

    def extra(self) -> dict:
        return {"passwordRequired": True}


class PasswordRequired(PasswordError):
    default_message = "Password required."


class PasswordInvalid(PasswordError):
    default_message = "Invalid password."
