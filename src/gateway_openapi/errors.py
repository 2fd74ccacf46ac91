"""Exception hierarchy for gateway-openapi.

Argument contract violations (blank identifiers, empty document lists) raise
plain ``ValueError``. Everything else specific to this package derives from
``GatewayOpenApiError``.
"""


class GatewayOpenApiError(Exception):
    """Base class for all package errors."""


class ConfigurationError(GatewayOpenApiError):
    """The reverse-proxy configuration could not be read."""


class DocumentParseError(GatewayOpenApiError):
    """Text could not be parsed into an OpenAPI 3.x document."""


class OperationCancelled(GatewayOpenApiError):
    """The caller signalled cancellation before the operation finished."""


def raise_if_cancelled(cancel) -> None:
    """Raise ``OperationCancelled`` if the given ``threading.Event`` is set."""
    if cancel is not None and cancel.is_set():
        raise OperationCancelled("operation cancelled by caller")
