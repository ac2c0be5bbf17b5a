class BrandAssistantError(Exception):
    """Base class for errors raised inside the brand assistant."""


class MissingRequiredFieldError(BrandAssistantError):
    """A request is missing a field the operation cannot run without."""

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"Missing required field: {field_name}")


class CollaboratorError(BrandAssistantError):
    """An external service answered with an unusable response."""

    def __init__(self, service: str, message: str, status: int = None):
        self.service = service
        self.status = status
        super().__init__(f"[{service}] {message}")


class TransientCollaboratorError(CollaboratorError):
    """Rate limiting or a server-side failure; safe to retry."""
