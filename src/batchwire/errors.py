"""
Error Module.

Defines the error kinds surfaced by every encode/decode operation. Each kind
also derives from the closest builtin exception, so callers may catch either
the library type or the builtin one.
"""

from typing import Optional, Type


class IpcError(Exception):
    """Root of all errors raised by the codec."""


class FormatInvalid(IpcError, ValueError):
    """
    Malformed or out-of-range metadata, nesting depth exceeded, a tensor that
    is not contiguous, a row count incompatible with the selected write path,
    or a reference to an unregistered dictionary id.
    """


class IOFailure(IpcError, OSError):
    """A read, write, seek or close on the underlying file failed."""


class AllocationFailure(IpcError, MemoryError):
    """A buffer could not be materialized."""


def _make_exception(
    cls: Type[IpcError], msg: str, exc_msg: Optional[BaseException] = None
) -> IpcError:
    """
    Creates a new exception of kind `cls` that chains an inner exception's message.
    Useful for adding context to low-level pyarrow or pydantic errors.

    Args:
        cls (Type[IpcError]): The error kind to build.
        msg (str): The high-level error message.
        exc_msg (Optional[BaseException]): The original exception.

    Returns:
        IpcError: A new exception combining both messages.
    """
    if exc_msg is None:
        return cls(msg)
    else:
        return cls(f"{msg}\nInner err: {exc_msg}")
