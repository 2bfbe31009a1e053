from .helpers import (
    ALIGNMENT as ALIGNMENT,
    align_to as align_to,
    padding_for as padding_for,
    bitmap_slice as bitmap_slice,
    format_field_path as format_field_path,
    to_pool_buffer as to_pool_buffer,
)
