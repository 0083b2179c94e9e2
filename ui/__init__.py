"""UI layer -- Rich dashboard and output formatters."""

from .dashboard import (
    ProgressDisplay,
    console,
    print_error,
    print_final_results,
    print_header,
    print_history,
    state_label,
)
from .output import (
    append_csv,
    format_csv_header,
    format_csv_row,
    format_text_result,
    record_to_json,
    save_json,
)

__all__ = [
    "ProgressDisplay",
    "append_csv",
    "console",
    "format_csv_header",
    "format_csv_row",
    "format_text_result",
    "print_error",
    "print_final_results",
    "print_header",
    "print_history",
    "record_to_json",
    "save_json",
    "state_label",
]
