"""
Recursion Guard Module.

Nested types (list of list of ..., struct of struct of ...) are walked
recursively by every codec. The walk threads a single integer, the remaining
depth: each descent into a child passes `remaining - 1`, and every visit
checks the budget on entry, before recursing any further. Untrusted nesting
therefore fails with `FormatInvalid` long before the interpreter stack is at
risk.

The limit is a contract between producer and consumer: a reader configured
below the writer's limit rejects well-formed data.
"""

from ...errors import FormatInvalid

DEFAULT_MAX_RECURSION_DEPTH = 64


def check_depth(remaining: int, what: str) -> None:
    """
    Fails fast when the nesting budget is exhausted.

    Args:
        remaining (int): Depth budget left for this visit.
        what (str): The element being visited, for the error message.

    Raises:
        FormatInvalid: If `remaining` is not positive.
    """
    if remaining <= 0:
        raise FormatInvalid(f"Exceeded maximum nesting depth while visiting {what}")


def check_limit(max_recursion_depth: int) -> int:
    """Validates a caller-supplied depth limit."""
    if max_recursion_depth <= 0:
        raise ValueError(
            f"max_recursion_depth must be positive, got {max_recursion_depth}"
        )
    return max_recursion_depth
