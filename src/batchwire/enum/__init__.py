from .message_kind import (
    MessageKind as MessageKind,
    MetadataVersion as MetadataVersion,
    CURRENT_METADATA_VERSION as CURRENT_METADATA_VERSION,
)
