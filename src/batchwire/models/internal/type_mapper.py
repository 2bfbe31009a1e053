import pyarrow as pa
from typing import Callable, Dict, List, Optional

from ...errors import FormatInvalid, _make_exception
from ..metadata import TypeMeta


# -------------------------------------------------------------------------
# Parameter-free types
# This dictionary maps the wire type tags to the corresponding PyArrow data
# types; the reverse map is used on encode.
# -------------------------------------------------------------------------
_SIMPLE_TYPES: Dict[str, pa.DataType] = {
    "null": pa.null(),
    # Boolean types
    "bool": pa.bool_(),
    # Numeric types
    "int8": pa.int8(),
    "int16": pa.int16(),
    "int32": pa.int32(),
    "int64": pa.int64(),
    "uint8": pa.uint8(),
    "uint16": pa.uint16(),
    "uint32": pa.uint32(),
    "uint64": pa.uint64(),
    "float16": pa.float16(),
    "float32": pa.float32(),
    "float64": pa.float64(),
    # Date types
    "date32": pa.date32(),
    "date64": pa.date64(),
    # Variable-length types
    "string": pa.string(),
    "binary": pa.binary(),
    "large_string": pa.large_string(),
    "large_binary": pa.large_binary(),
}

_SIMPLE_TYPE_NAMES: Dict[pa.DataType, str] = {
    ptype: name for name, ptype in _SIMPLE_TYPES.items()
}


def _require(meta: TypeMeta, attr: str):
    value = getattr(meta, attr)
    if value is None:
        raise FormatInvalid(f"Type '{meta.name}' is missing its '{attr}' parameter")
    return value


def _single_child(meta: TypeMeta, children: List[pa.Field]) -> pa.Field:
    if len(children) != 1:
        raise FormatInvalid(
            f"Type '{meta.name}' expects exactly 1 child field, got {len(children)}"
        )
    return children[0]


def _union(mode: str) -> Callable[[TypeMeta, List[pa.Field]], pa.DataType]:
    def factory(meta: TypeMeta, children: List[pa.Field]) -> pa.DataType:
        type_codes = meta.type_codes
        if type_codes is not None and len(type_codes) != len(children):
            raise FormatInvalid(
                f"Union has {len(children)} children but {len(type_codes)} type codes"
            )
        return pa.union(children, mode, type_codes)

    return factory


# Parameterized and nested types: one factory per tag, taking the decoded
# TypeMeta and the already reconstructed child fields.
_TYPE_FACTORIES: Dict[str, Callable[[TypeMeta, List[pa.Field]], pa.DataType]] = {
    "timestamp": lambda m, c: pa.timestamp(_require(m, "unit"), tz=m.timezone),
    "time32": lambda m, c: pa.time32(_require(m, "unit")),
    "time64": lambda m, c: pa.time64(_require(m, "unit")),
    "duration": lambda m, c: pa.duration(_require(m, "unit")),
    "fixed_size_binary": lambda m, c: pa.binary(_require(m, "byte_width")),
    "decimal128": lambda m, c: pa.decimal128(
        _require(m, "precision"), _require(m, "scale")
    ),
    "decimal256": lambda m, c: pa.decimal256(
        _require(m, "precision"), _require(m, "scale")
    ),
    "list": lambda m, c: pa.list_(_single_child(m, c)),
    "large_list": lambda m, c: pa.large_list(_single_child(m, c)),
    "fixed_size_list": lambda m, c: pa.list_(
        _single_child(m, c), _require(m, "list_size")
    ),
    "struct": lambda m, c: pa.struct(c),
    "sparse_union": _union("sparse"),
    "dense_union": _union("dense"),
}


def type_children(ptype: pa.DataType) -> List[pa.Field]:
    """
    Returns the ordered child fields of a (possibly nested) type.

    A dictionary type contributes the children of its value type.
    """
    if pa.types.is_dictionary(ptype):
        return type_children(ptype.value_type)
    if (
        pa.types.is_list(ptype)
        or pa.types.is_large_list(ptype)
        or pa.types.is_fixed_size_list(ptype)
    ):
        return [ptype.value_field]
    if pa.types.is_struct(ptype) or pa.types.is_union(ptype):
        return [ptype.field(i) for i in range(ptype.num_fields)]
    return []


def fixed_byte_width(ptype: pa.DataType) -> Optional[int]:
    """
    Byte width of one value of a fixed-width type, or None for every other
    layout (boolean bits, variable-length, nested).
    """
    if pa.types.is_fixed_size_binary(ptype) or pa.types.is_decimal(ptype):
        return ptype.byte_width
    if (
        pa.types.is_integer(ptype)
        or pa.types.is_floating(ptype)
        or pa.types.is_date(ptype)
        or pa.types.is_time(ptype)
        or pa.types.is_timestamp(ptype)
        or pa.types.is_duration(ptype)
    ):
        return ptype.bit_width // 8
    return None


def type_to_meta(ptype: pa.DataType) -> TypeMeta:
    """
    Encodes a PyArrow type (children excluded) into its wire description.

    Raises:
        FormatInvalid: If the type has no wire representation.
    """
    name = _SIMPLE_TYPE_NAMES.get(ptype)
    if name is not None:
        return TypeMeta(name=name)

    if pa.types.is_timestamp(ptype):
        return TypeMeta(name="timestamp", unit=ptype.unit, timezone=ptype.tz)
    if pa.types.is_time32(ptype):
        return TypeMeta(name="time32", unit=ptype.unit)
    if pa.types.is_time64(ptype):
        return TypeMeta(name="time64", unit=ptype.unit)
    if pa.types.is_duration(ptype):
        return TypeMeta(name="duration", unit=ptype.unit)
    # Decimal types are fixed-size binary subclasses: test them first
    if pa.types.is_decimal128(ptype):
        return TypeMeta(name="decimal128", precision=ptype.precision, scale=ptype.scale)
    if pa.types.is_decimal256(ptype):
        return TypeMeta(name="decimal256", precision=ptype.precision, scale=ptype.scale)
    if pa.types.is_fixed_size_binary(ptype):
        return TypeMeta(name="fixed_size_binary", byte_width=ptype.byte_width)
    if pa.types.is_list(ptype):
        return TypeMeta(name="list")
    if pa.types.is_large_list(ptype):
        return TypeMeta(name="large_list")
    if pa.types.is_fixed_size_list(ptype):
        return TypeMeta(name="fixed_size_list", list_size=ptype.list_size)
    if pa.types.is_struct(ptype):
        return TypeMeta(name="struct")
    if pa.types.is_union(ptype):
        return TypeMeta(name=f"{ptype.mode}_union", type_codes=list(ptype.type_codes))

    raise FormatInvalid(f"Type '{ptype}' cannot be written")


def type_from_meta(meta: TypeMeta, children: List[pa.Field]) -> pa.DataType:
    """
    Rebuilds a PyArrow type from its wire description and decoded children.

    Raises:
        FormatInvalid: On an unknown tag, a missing or invalid parameter, or a
            child count the type does not accept.
    """
    simple = _SIMPLE_TYPES.get(meta.name)
    if simple is not None:
        if children:
            raise FormatInvalid(f"Type '{meta.name}' cannot have child fields")
        return simple

    factory = _TYPE_FACTORIES.get(meta.name)
    if factory is None:
        raise FormatInvalid(f"Unknown type tag '{meta.name}'")
    try:
        return factory(meta, children)
    except FormatInvalid:
        raise
    except (ValueError, TypeError, KeyError) as e:
        # pa.ArrowInvalid is a ValueError
        raise _make_exception(
            FormatInvalid, f"Invalid parameters for type '{meta.name}'", e
        ) from e


def index_type_from_meta(meta: TypeMeta) -> pa.DataType:
    """Decodes the index type of a dictionary encoding: must be an integer type."""
    ptype = _SIMPLE_TYPES.get(meta.name)
    if ptype is None or not pa.types.is_integer(ptype):
        raise FormatInvalid(
            f"Dictionary index type must be an integer, got '{meta.name}'"
        )
    return ptype
