"""
Base Model Module.

This module defines the foundational class for all metadata models of the
wire format. It bridges pydantic (used for validating untrusted metadata on
decode) and the compact JSON representation written into each message.
"""

import pydantic


class BaseModel(pydantic.BaseModel):
    """
    The root base class for wire metadata models.

    Unknown keys are rejected so that a malformed or foreign metadata block
    fails validation instead of being silently accepted. Instances are frozen:
    a decoded message is a value.
    """

    model_config = pydantic.ConfigDict(extra="forbid", frozen=True)

    def to_json_bytes(self) -> bytes:
        """Compact JSON encoding, `None` members omitted."""
        return self.model_dump_json(exclude_none=True).encode("utf-8")
