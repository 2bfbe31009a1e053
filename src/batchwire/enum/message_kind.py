from enum import IntEnum, StrEnum


class MessageKind(StrEnum):
    """
    Identifies the payload carried by a framed message.

    The value is the tag written in the message metadata, so it must never
    change once data has been written with it.
    """

    Schema = "schema"
    """
    Ordered field list of a stream or file. Carries no body.
    """

    DictionaryBatch = "dictionary_batch"
    """
    Values of one dictionary, identified by its id, laid out as a
    single-column record batch in the body.
    """

    RecordBatch = "record_batch"
    """
    Row count, array nodes and body-relative buffer descriptors of one batch.
    """

    Tensor = "tensor"
    """
    Element type, shape, strides, dimension names and a single data buffer.
    """


class MetadataVersion(IntEnum):
    """
    Format-version tag stamped into every message.
    """

    V1 = 1


CURRENT_METADATA_VERSION = MetadataVersion.V1
