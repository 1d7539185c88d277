"""OAuth error taxonomy.

Every error carries a stable ``code`` and the parameters its message needs.
The text shown to users is resolved in two tiers: a caller-supplied override
first, the built-in default second. A code with neither is a configuration
error, so ``ErrorMessages`` checks its table when it is constructed.
"""

from typing import Any, Mapping


class OAuthError(Exception):
    """Base class for errors raised by the OAuth flows."""

    code = "oauthError"

    def __init__(self, **params: Any):
        self.params = params
        super().__init__(DEFAULT_MESSAGES.get(self.code, self.code).format_map(_Defaulting(params)))


class MissingParameterError(OAuthError):
    """The request is missing a required parameter."""

    code = "missingParameter"

    def __init__(self, param: str):
        super().__init__(param=param)


class ConfigurationError(OAuthError):
    """The engine is set up incorrectly. Should never reach a user."""

    code = "configuration"

    def __init__(self, detail: str):
        super().__init__(detail=detail)


class ProviderDisabledError(OAuthError):
    code = "providerNotEnabled"

    def __init__(self, provider: str):
        super().__init__(provider=provider)


class ProviderExchangeError(OAuthError):
    """The provider rejected the code or returned something unusable."""

    code = "providerExchange"

    def __init__(self, provider: str, detail: str = ""):
        super().__init__(provider=provider, detail=detail)


class InsufficientScopeError(OAuthError):
    code = "insufficientScope"

    def __init__(self, provider: str, missing: list[str]):
        super().__init__(provider=provider, missing=", ".join(sorted(missing)))


class AlreadyLoggedInError(OAuthError):
    code = "alreadyLoggedIn"


class NoSuchAccountError(OAuthError):
    code = "noSuchAccount"

    def __init__(self, provider: str):
        super().__init__(provider=provider)


class EmailAlreadyRegisteredError(OAuthError):
    code = "emailAlreadyRegistered"


class ProviderAlreadyLinkedError(OAuthError):
    code = "providerAlreadyLinked"

    def __init__(self, provider: str):
        super().__init__(provider=provider)


class EmailConflictError(OAuthError):
    code = "emailConflict"


class NotLoggedInError(OAuthError):
    code = "notLoggedIn"


class LastCredentialError(OAuthError):
    code = "lastCredential"

    def __init__(self, provider: str):
        super().__init__(provider=provider)


class ConnectionNotFoundError(OAuthError):
    code = "connectionNotFound"

    def __init__(self, provider: str):
        super().__init__(provider=provider)


class NoUserIdError(OAuthError):
    """The host login handler returned a user without an id."""

    code = "noUserId"

    def __init__(self, id_field: str = "id"):
        super().__init__(id_field=id_field)


UNEXPECTED_ERROR_CODE = "unexpected"

DEFAULT_MESSAGES: dict[str, str] = {
    MissingParameterError.code: "Missing required parameter: {param}",
    ConfigurationError.code: "OAuth is not configured correctly: {detail}",
    ProviderDisabledError.code: "Signing in with {provider} is not enabled.",
    ProviderExchangeError.code: "Could not verify your {provider} account. Please try again.",
    InsufficientScopeError.code: "{provider} did not grant the required permissions: {missing}",
    AlreadyLoggedInError.code: "You are already logged in. Log out to create a new account.",
    NoSuchAccountError.code: "No account is connected to this {provider} login. Sign up first, or log in and link it from your settings.",
    EmailAlreadyRegisteredError.code: "An account with this email already exists. Log in and link this provider from your settings instead.",
    ProviderAlreadyLinkedError.code: "This {provider} account is already connected to a user.",
    EmailConflictError.code: "There is already an account using this email.",
    NotLoggedInError.code: "You must be logged in to do that.",
    LastCredentialError.code: "You can't disconnect {provider}: it is your only way to log in. Set a password or connect another account first.",
    ConnectionNotFoundError.code: "No {provider} account is connected.",
    NoUserIdError.code: "loginHandler() must return an object with an `{id_field}` field",
    UNEXPECTED_ERROR_CODE: "Something went wrong. Please try again.",
}

ERROR_CODES = frozenset(DEFAULT_MESSAGES)


class _Defaulting(dict):
    """Leaves unknown placeholders visible instead of raising."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class ErrorMessages:
    """Resolves the user-facing message for an error code."""

    def __init__(
        self,
        overrides: Mapping[str, str] | None = None,
        defaults: Mapping[str, str] = DEFAULT_MESSAGES,
    ):
        self.overrides = dict(overrides or {})
        self.defaults = dict(defaults)

        unknown = set(self.overrides) - set(self.defaults)
        if unknown:
            raise ConfigurationError(f"unknown error message override(s): {', '.join(sorted(unknown))}")
        missing = [code for code in ERROR_CODES if not self._template(code)]
        if missing:
            raise ConfigurationError(f"no message for error code(s): {', '.join(sorted(missing))}")

    def _template(self, code: str) -> str | None:
        return self.overrides.get(code) or self.defaults.get(code)

    def resolve(self, code: str, **params: Any) -> str:
        template = self._template(code)
        if template is None:
            raise ConfigurationError(f"no message for error code: {code}")
        return template.format_map(_Defaulting(params))

    def for_error(self, error: Exception) -> str:
        if isinstance(error, OAuthError):
            return self.resolve(error.code, **error.params)
        return self.resolve(UNEXPECTED_ERROR_CODE)
