"""Pass/fail syntax oracle for raw SQL, backed by sqlglot's ClickHouse dialect."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import sqlglot
from sqlglot.errors import ParseError, TokenError

logger = logging.getLogger(__name__)

DIALECT = "clickhouse"

# ${var}, ${var:csv}, ${var.field}
_BRACED_VARIABLE = re.compile(r"\$\{[^}]*\}")
# $var, $__timeFilter, $__fromTime
_VARIABLE = re.compile(r"\$(\w+)")


@dataclass
class ValidationError:
    """Location of a syntax error; lines and columns are 1-based."""
    start_line: int
    end_line: int
    start_col: int
    end_col: int
    message: str
    expected: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startLine": self.start_line,
            "endLine": self.end_line,
            "startCol": self.start_col,
            "endCol": self.end_col,
            "message": self.message,
            "expected": self.expected,
        }


@dataclass
class Validation:
    valid: bool
    error: Optional[ValidationError] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"valid": self.valid}
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


def mask_macros(sql: str) -> str:
    """Replace macros and template variables with same-length identifiers.

    ``$__timeFilter(ts)`` becomes ``___timeFilter(ts)`` and ``${var:csv}``
    becomes a run of underscores, so offsets in the masked text line up
    with the input text.
    """
    masked = _BRACED_VARIABLE.sub(lambda m: "_" * len(m.group(0)), sql)
    return _VARIABLE.sub(lambda m: "_" + m.group(1), masked)


def validate(sql: str) -> Validation:
    """Check ``sql`` for syntax errors.

    Args:
        sql: Raw SQL, possibly containing macros and template variables.

    Returns:
        Validation with ``valid`` set, and the first error when invalid.
    """
    if not sql or not sql.strip():
        return Validation(valid=True)

    masked = mask_macros(sql)
    try:
        sqlglot.parse(masked, read=DIALECT)
        return Validation(valid=True)
    except ParseError as e:
        logger.debug("SQL failed to parse: %s", e)
        return Validation(valid=False, error=_parse_error_location(masked, e))
    except TokenError as e:
        logger.debug("SQL failed to tokenize: %s", e)
        return Validation(valid=False, error=_token_error_location(masked, e))


def _parse_error_location(sql: str, error: ParseError) -> ValidationError:
    details: List[Dict[str, Any]] = getattr(error, "errors", None) or []
    first = details[0] if details else {}

    line = first.get("line") or 1
    end_col = first.get("col") or 1
    highlight = first.get("highlight") or ""
    start_col = max(1, end_col - len(highlight) + 1) if highlight else end_col
    description = first.get("description") or str(error)

    return ValidationError(
        start_line=line,
        end_line=line + highlight.count("\n"),
        start_col=start_col,
        end_col=end_col,
        message=str(error),
        expected=description,
    )


def _token_error_location(sql: str, error: TokenError) -> ValidationError:
    # Tokenizer errors carry no position; report the end of the input
    lines = sql.split("\n")
    return ValidationError(
        start_line=len(lines),
        end_line=len(lines),
        start_col=1,
        end_col=len(lines[-1]) + 1,
        message=str(error),
    )
