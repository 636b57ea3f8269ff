"""
Exception hierarchy for the kserve-infer client.

Callers can branch on the kind of failure: bad caller data
(ShapeMismatchError, TypeMismatchError, InputError), a network problem
(TransportError and its subclasses) or a request the server rejected
(ServerError).
"""

from __future__ import annotations

from typing import Union


class InferenceClientError(Exception):
    """Base class for all errors raised by kserve-infer."""


class ConfigurationError(InferenceClientError, ValueError):
    """Raised when a client is constructed with invalid options."""


class InputError(InferenceClientError, ValueError):
    """Raised when a tensor is built or used incorrectly."""


class ShapeMismatchError(InferenceClientError, ValueError):
    """Raised when an element count does not match a tensor shape."""


class TypeMismatchError(InferenceClientError, TypeError):
    """Raised when values cannot be represented by a tensor datatype."""


class NotFoundError(InferenceClientError, LookupError):
    """Raised when a named output is not present in a response."""


class TransportError(InferenceClientError):
    """Exception raised when a request could not be completed on the wire."""

    def __init__(self, message: str, cancelled: bool = False):
        self.message = message
        self.cancelled = cancelled
        super().__init__(message)


class DeadlineExceededError(TransportError):
    """Raised when a call does not complete before its deadline."""

    def __init__(self, message: str):
        super().__init__(message, cancelled=True)


class MalformedResponseError(TransportError):
    """Raised when a response payload disagrees with its own header."""


class ServerError(InferenceClientError):
    """Exception raised when server returns an error."""

    def __init__(self, status_code: Union[int, str], message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"Server error {status_code}: {message}")
