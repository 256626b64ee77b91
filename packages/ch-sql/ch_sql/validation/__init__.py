"""Syntax validation for raw ClickHouse SQL.

Key components:
- validate: pass/fail check with the location of the first syntax error
- Validation / ValidationError: the result shapes

Example usage:
    from ch_sql.validation import validate

    result = validate("SELECT * FROM logs WHERE $__timeFilter(ts)")
    if not result.valid:
        print(result.error.start_line, result.error.message)
"""

from .sql_validator import Validation, ValidationError, mask_macros, validate

__all__ = ["Validation", "ValidationError", "mask_macros", "validate"]
