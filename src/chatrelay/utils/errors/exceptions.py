"""
Error taxonomy shared by the session orchestrator, the notification sink and
the slash-command endpoint.

Every run failure is a ``RelayError`` subclass with a stable ``kind`` so that
callers branch on the type instead of matching message strings.
"""


class RelayError(Exception):
    """Base class for every failure surfaced to an operator or requester."""
    kind = "RelayError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class LoadTimeout(RelayError):
    """The messaging client did not finish loading within its bound."""
    kind = "LoadTimeout"


class LoginRequired(RelayError):
    """No stored login; an operator must link the device once by hand."""
    kind = "LoginRequired"


class ContactNotFound(RelayError):
    """The contact search produced no matching conversation."""
    kind = "ContactNotFound"


class ExtractionTimeout(RelayError):
    """The conversation view never rendered its messages."""
    kind = "ExtractionTimeout"


class SessionFault(RelayError):
    """The browser failed in a way that is not a bounded wait."""
    kind = "SessionFault"


class DeliveryFailure(RelayError):
    """A chat payload could not be posted. Logged by the sink, never raised past it."""
    kind = "DeliveryFailure"


class Unauthorized(RelayError):
    """An inbound command carried the wrong shared-secret token."""
    kind = "Unauthorized"


class ConfigError(RelayError):
    """Configuration is missing or malformed."""
    kind = "ConfigError"


# Capability-level errors raised by browser drivers. The orchestrator
# translates them into the taxonomy above depending on the step.
class DriverTimeout(Exception):
    """A bounded browser wait elapsed."""


class DriverError(Exception):
    """Any other browser failure."""


def describe_error(exc: BaseException) -> str:
    """Render an error as ``Kind: message`` for chat payloads."""
    if isinstance(exc, RelayError):
        return f"{exc.kind}: {exc.message}"
    return f"{type(exc).__name__}: {exc}"
