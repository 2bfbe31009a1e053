from .metadata import (
    ArrayNode as ArrayNode,
    BlockMeta as BlockMeta,
    BufferSpec as BufferSpec,
    DictionaryBatchMeta as DictionaryBatchMeta,
    DictionaryEncodingMeta as DictionaryEncodingMeta,
    FieldNodeMeta as FieldNodeMeta,
    FooterMeta as FooterMeta,
    KeyValueMeta as KeyValueMeta,
    MessageMeta as MessageMeta,
    RecordBatchMeta as RecordBatchMeta,
    SchemaMeta as SchemaMeta,
    TensorMeta as TensorMeta,
    TypeMeta as TypeMeta,
)
