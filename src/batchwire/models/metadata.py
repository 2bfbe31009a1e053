"""
Wire Metadata Module.

This module defines the metadata block carried by every framed message and
the file footer. All models are validated on decode: any length, offset or
count read from the wire is untrusted until it has passed these models and
the bounds checks of the codecs.

Nested types are never encoded as nested JSON: a schema is a flat, pre-order
list of `FieldNodeMeta` entries, each telling how many children follow it.
A record batch is likewise a flat list of `ArrayNode` and `BufferSpec`
entries. This keeps the metadata shallow no matter how deep the data nests.
"""

from typing import Annotated, List, Literal, Optional, Union

import pydantic

from ..enum import MetadataVersion
from .base_model import BaseModel

NonNegative = Annotated[int, pydantic.Field(ge=0)]


class KeyValueMeta(BaseModel):
    """One entry of schema-level or field-level custom metadata."""

    key: str
    value: str


class TypeMeta(BaseModel):
    """
    Logical type of a field, without its children.

    Attributes:
        name (str): Type tag (e.g. "int32", "timestamp", "list", "sparse_union").
        unit (Optional[str]): Time unit of time/timestamp/duration types.
        timezone (Optional[str]): Timezone of a timestamp type.
        byte_width (Optional[int]): Width of a fixed_size_binary type.
        list_size (Optional[int]): Number of values per fixed_size_list slot.
        precision (Optional[int]): Decimal precision.
        scale (Optional[int]): Decimal scale.
        type_codes (Optional[List[int]]): Union type codes, one per child.
    """

    name: str
    unit: Optional[str] = None
    timezone: Optional[str] = None
    byte_width: Optional[Annotated[int, pydantic.Field(gt=0)]] = None
    list_size: Optional[NonNegative] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    type_codes: Optional[List[NonNegative]] = None


class DictionaryEncodingMeta(BaseModel):
    """Dictionary encoding of a field: which dictionary, and the index type."""

    id: NonNegative
    index_type: TypeMeta
    ordered: bool = False


class FieldNodeMeta(BaseModel):
    """
    One field of a flattened schema.

    For a dictionary-encoded field, `type` is the dictionary's value type and
    `dictionary` carries the id and index type.
    """

    name: str
    nullable: bool = True
    type: TypeMeta
    children: NonNegative = 0
    dictionary: Optional[DictionaryEncodingMeta] = None
    metadata: Optional[List[KeyValueMeta]] = None


class SchemaMeta(BaseModel):
    kind: Literal["schema"] = "schema"
    num_fields: NonNegative
    fields: List[FieldNodeMeta] = pydantic.Field(default_factory=list)
    metadata: Optional[List[KeyValueMeta]] = None


class ArrayNode(BaseModel):
    """Logical length and null count of one array, in pre-order."""

    length: NonNegative
    null_count: NonNegative


class BufferSpec(BaseModel):
    """A buffer's position relative to the start of the message body."""

    offset: NonNegative
    length: NonNegative


class RecordBatchMeta(BaseModel):
    kind: Literal["record_batch"] = "record_batch"
    length: NonNegative
    nodes: List[ArrayNode] = pydantic.Field(default_factory=list)
    buffers: List[BufferSpec] = pydantic.Field(default_factory=list)


class DictionaryBatchMeta(BaseModel):
    kind: Literal["dictionary_batch"] = "dictionary_batch"
    id: NonNegative
    data: RecordBatchMeta


class TensorMeta(BaseModel):
    kind: Literal["tensor"] = "tensor"
    type: TypeMeta
    shape: List[NonNegative]
    strides: List[int]
    dim_names: List[str] = pydantic.Field(default_factory=list)
    data: BufferSpec


HeaderMeta = Annotated[
    Union[SchemaMeta, DictionaryBatchMeta, RecordBatchMeta, TensorMeta],
    pydantic.Field(discriminator="kind"),
]


class MessageMeta(BaseModel):
    """
    The metadata block of a framed message.

    Attributes:
        version (MetadataVersion): Format-version tag.
        body_length (int): Padded size of the body following the metadata.
        header: The kind-specific payload, discriminated by its `kind` tag.
    """

    version: MetadataVersion
    body_length: NonNegative
    header: HeaderMeta


class BlockMeta(BaseModel):
    """Absolute position of one message inside a file."""

    offset: NonNegative
    metadata_length: NonNegative
    body_length: NonNegative


class FooterMeta(BaseModel):
    """
    Trailing structure of the file format, enabling random access to batches.
    """

    version: MetadataVersion
    table_schema: SchemaMeta
    dictionaries: List[BlockMeta] = pydantic.Field(default_factory=list)
    record_batches: List[BlockMeta] = pydantic.Field(default_factory=list)
