"""Error types raised by the DocChat core."""

from __future__ import annotations

from typing import Optional


class DocChatError(Exception):
    """Base error. ``user_message`` is safe to show to end users."""

    default_user_message = "An unexpected error occurred."

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message or message or self.default_user_message


class ValidationError(DocChatError):
    """Input rejected before any external call was made."""


class UnsupportedFormatError(ValidationError):
    pass


class NotFoundError(DocChatError):
    """Referenced document or session does not exist."""


class ConfigurationError(DocChatError):
    default_user_message = "API configuration error. Please contact support."


class ProviderError(DocChatError):
    """Failure reported by the embedding or generation provider."""

    provider = "provider"

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        user_message: Optional[str] = None,
    ) -> None:
        super().__init__(message, user_message=user_message)
        if provider is not None:
            self.provider = provider


class ProviderAuthError(ProviderError):
    default_user_message = ConfigurationError.default_user_message

    def __init__(self, message: str, *, provider: Optional[str] = None) -> None:
        super().__init__(message, provider=provider, user_message=self.default_user_message)


class ProviderRateLimitError(ProviderError):
    default_user_message = "Too many requests. Please wait a moment and try again."

    def __init__(self, message: str, *, provider: Optional[str] = None) -> None:
        super().__init__(message, provider=provider, user_message=self.default_user_message)


class ProviderUnavailableError(ProviderError):
    """Transient outage or overload; the same call may succeed later."""


class ProviderIntegrityError(ProviderError):
    """Provider broke its contract (wrong vector count, malformed payload)."""


class IngestionFailure(DocChatError):
    default_user_message = "Failed to process document chunks. Document has been removed."

    def __init__(self, message: str, *, document_id: Optional[str] = None) -> None:
        super().__init__(message, user_message=self.default_user_message)
        self.document_id = document_id


class ChatProcessingError(DocChatError):
    pass
