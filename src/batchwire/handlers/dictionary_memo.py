"""
Dictionary Memo Module.

The memo is the sole arbiter of dictionary identity within one writer or
reader session. It maps integer ids to dictionary value arrays and schema
field paths (child indices from the schema root) to ids.

Writer side, ids are assigned per dictionary instance: two columns built on
the same dictionary (even one nested inside a list) share one id, and so one
dictionary message. Reader side, every column bound to an id is rebuilt on
the single registered array, so they share the very same buffers.

The memo is owned by one session and is not safe for concurrent mutation.
"""

from typing import Dict, List, Optional, Tuple

import pyarrow as pa

from ..errors import FormatInvalid
from ..helpers import format_field_path

FieldPath = Tuple[int, ...]


def _identity(dictionary: pa.Array) -> tuple:
    """
    Identity of an array instance: its type, window and the addresses of all
    its buffers. Two views of the same memory compare equal, two copies do not.
    """
    return (
        dictionary.type,
        dictionary.offset,
        len(dictionary),
        tuple(buf.address if buf is not None else 0 for buf in dictionary.buffers()),
    )


class DictionaryMemo:
    """
    Mapping from dictionary id to dictionary values, plus the field bindings.

    Arrays identified by `get_or_assign_id` are retained by the memo, so their
    buffer addresses stay valid identities for the whole session.
    """

    def __init__(self):
        self._dictionaries: Dict[int, pa.Array] = {}
        self._value_types: Dict[int, pa.DataType] = {}
        self._field_ids: Dict[FieldPath, int] = {}
        self._identities: Dict[tuple, int] = {}
        self._next_id: int = 0

    def __len__(self) -> int:
        """Number of dictionaries with registered values."""
        return len(self._dictionaries)

    def __repr__(self) -> str:
        return (
            f"DictionaryMemo(dictionaries={sorted(self._dictionaries)}, "
            f"fields={len(self._field_ids)})"
        )

    @property
    def ids(self) -> List[int]:
        """Every id known to the memo, registered or only bound to a field."""
        return sorted(self._value_types)

    @property
    def field_ids(self) -> Dict[FieldPath, int]:
        return dict(self._field_ids)

    def _take_id(self) -> int:
        dict_id = self._next_id
        self._next_id += 1
        return dict_id

    def _bind_value_type(self, dict_id: int, value_type: pa.DataType) -> None:
        known = self._value_types.get(dict_id)
        if known is not None and not known.equals(value_type):
            raise FormatInvalid(
                f"Dictionary {dict_id} holds '{known}' values, cannot bind '{value_type}'"
            )
        self._value_types[dict_id] = value_type
        self._next_id = max(self._next_id, dict_id + 1)

    # --- Writer side ---

    def get_or_assign_id(self, dictionary: pa.Array) -> int:
        """
        Returns the id of a dictionary instance, assigning a new one on first
        sight. Stable for the lifetime of the memo.
        """
        key = _identity(dictionary)
        dict_id = self._identities.get(key)
        if dict_id is None:
            dict_id = self._take_id()
            self._identities[key] = dict_id
            self._dictionaries[dict_id] = dictionary
            self._value_types[dict_id] = dictionary.type
        return dict_id

    def get_or_assign_field_id(self, path: FieldPath, value_type: pa.DataType) -> int:
        """
        Returns the id bound to a dictionary field, binding a fresh id when the
        field has none yet (schema written before any dictionary was seen).
        """
        dict_id = self._field_ids.get(path)
        if dict_id is None:
            dict_id = self._take_id()
            self.add_field(path, dict_id, value_type)
        return dict_id

    # --- Shared ---

    def add_field(self, path: FieldPath, dict_id: int, value_type: pa.DataType) -> None:
        """
        Binds the dictionary field at `path` to `dict_id`.

        Raises:
            FormatInvalid: If the field is already bound to another id, or the
                id already holds values of another type.
        """
        existing = self._field_ids.get(path)
        if existing is not None and existing != dict_id:
            raise FormatInvalid(
                f"Field {format_field_path(path)} is already bound to dictionary {existing}"
            )
        self._bind_value_type(dict_id, value_type)
        self._field_ids[path] = dict_id

    def get_field_id(self, path: FieldPath) -> int:
        dict_id = self._field_ids.get(path)
        if dict_id is None:
            raise FormatInvalid(
                f"No dictionary bound to field {format_field_path(path)}"
            )
        return dict_id

    def value_type(self, dict_id: int) -> pa.DataType:
        value_type = self._value_types.get(dict_id)
        if value_type is None:
            raise FormatInvalid(f"Unknown dictionary id {dict_id}")
        return value_type

    # --- Reader side ---

    def register_dictionary(self, dict_id: int, dictionary: pa.Array) -> None:
        """
        Registers the values of `dict_id`. Must happen once per id, before the
        first record batch referencing it is decoded.

        Raises:
            FormatInvalid: If the id is already registered.
        """
        if dict_id in self._dictionaries:
            raise FormatInvalid(f"Dictionary {dict_id} is already registered")
        self._bind_value_type(dict_id, dictionary.type)
        self._dictionaries[dict_id] = dictionary

    def replace_dictionary(self, dict_id: int, dictionary: pa.Array) -> None:
        """Swaps the values of an already registered dictionary (stream format)."""
        if dict_id not in self._dictionaries:
            raise FormatInvalid(f"Cannot replace unregistered dictionary {dict_id}")
        self._bind_value_type(dict_id, dictionary.type)
        self._dictionaries[dict_id] = dictionary
        self._identities[_identity(dictionary)] = dict_id

    def has_dictionary(self, dict_id: int) -> bool:
        return dict_id in self._dictionaries

    def holds(self, dict_id: int, dictionary: pa.Array) -> bool:
        """True if `dictionary` is the very instance registered under `dict_id`."""
        known = self._dictionaries.get(dict_id)
        return known is not None and _identity(known) == _identity(dictionary)

    def lookup(self, dict_id: int) -> pa.Array:
        """
        Returns the registered values of `dict_id`.

        Raises:
            FormatInvalid: If the id was never registered.
        """
        dictionary: Optional[pa.Array] = self._dictionaries.get(dict_id)
        if dictionary is None:
            raise FormatInvalid(f"Dictionary id {dict_id} is not registered")
        return dictionary
