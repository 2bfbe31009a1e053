"""
Configuration Module.

This module defines the configuration structures used to control the behavior
of the writing and reading process, including nesting limits and the
large-batch write path.
"""

from dataclasses import dataclass
from typing import Optional

import pyarrow as pa

from ..enum import CURRENT_METADATA_VERSION, MetadataVersion
from .internal.depth import DEFAULT_MAX_RECURSION_DEPTH, check_limit


@dataclass
class IpcWriteOptions:
    """
    Configuration settings for File and Stream writers.

    Attributes:
        max_recursion_depth (int): Nesting budget for schema and array traversal.
        allow_64bit (bool): Default for the large-batch path, accepting row counts
                            beyond the 32-bit ceiling.
        memory_pool (Optional[pa.MemoryPool]): Pool for buffers materialized while
                                               normalizing sliced arrays.
        metadata_version (MetadataVersion): Version tag stamped into every message.
    """

    max_recursion_depth: int = DEFAULT_MAX_RECURSION_DEPTH
    allow_64bit: bool = False
    memory_pool: Optional[pa.MemoryPool] = None
    metadata_version: MetadataVersion = CURRENT_METADATA_VERSION

    def __post_init__(self):
        check_limit(self.max_recursion_depth)


@dataclass
class IpcReadOptions:
    """
    Configuration settings for File and Stream readers.

    Attributes:
        max_recursion_depth (int): Nesting budget; must be at least the writer's.
        validate_full (bool): Run pyarrow's full validation (offsets, union ids, ...)
                              on every decoded array.
    """

    max_recursion_depth: int = DEFAULT_MAX_RECURSION_DEPTH
    validate_full: bool = True

    def __post_init__(self):
        check_limit(self.max_recursion_depth)
