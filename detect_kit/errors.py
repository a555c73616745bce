from __future__ import annotations


class DecodeError(ValueError):
    """
    Base class for per-frame decode failures.

    Subclasses `ValueError` so callers that already catch `ValueError` around
    post-processing keep working.
    """


class InvalidDimensions(DecodeError):
    """Non-positive frame or input size."""


class UnsupportedTensorShape(DecodeError):
    """An output tensor whose rank/shape cannot be classified."""


class EmptyClassSpace(DecodeError):
    """
    Derived class count is <= 0.

    Raised by the field resolver only; the decoder turns it into an empty
    detection list for the frame.
    """
