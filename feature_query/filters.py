# ============================================================================
# CLAUDE CONTEXT - CQL FILTER GRAMMAR
# ============================================================================
# STATUS: Engine Module - single-predicate attribute filters
# PURPOSE: Build, escape and parse the CQL_FILTER expressions used by attribute search
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: OPERATORS, OPERATOR_LABELS, effective_operator, format_literal, build_filter,
#          build_prefix_filter, escape_like_prefix, parse_filter, describe_criteria
# DEPENDENCIES: re, feature_query.errors, feature_query.models
# VALIDATION: Operators whitelisted, numbers validated, string literals quoted
# ============================================================================

"""
CQL Filter Grammar

Only one predicate shape is ever sent to the server::

    field<op>literal            e.g.  height>50   name='O''Brien Park'

User input is always a literal. String literals are wrapped in single quotes
with embedded quotes doubled; number literals must parse as numbers and are
sent as typed. Field names come from the layer schema; names that are not
plain identifiers are wrapped in double quotes.

Suggestions use a prefix match::

    field ILIKE 'cent%'

where the user's prefix has the LIKE wildcards ``%`` and ``_`` and the
escape character ``\\`` escaped before quoting, so the only wildcard in the
pattern is the trailing ``%``.
"""

import re
from typing import Optional, Tuple

from .errors import InvalidSearchInput
from .models import SearchCriteria

OPERATORS = ("=", ">", "<", ">=", "<=", "<>")

OPERATOR_LABELS = {
    "=": "equal to",
    ">": "greater than",
    "<": "less than",
    ">=": "greater than or equal to",
    "<=": "less than or equal to",
    "<>": "not equal to",
}

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")
_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_PREDICATE = re.compile(
    r'^\s*(?P<field>"(?:[^"]|"")+"|[A-Za-z_][A-Za-z0-9_.]*)\s*'
    r'(?P<op><>|>=|<=|=|>|<)\s*'
    r'(?P<value>.*?)\s*$',
    re.DOTALL
)

LIKE_ESCAPE = "\\"


def effective_operator(operator: Optional[str], field_type: str) -> str:
    """String fields only support equality; anything else keeps its operator."""
    if field_type == "string":
        return "="
    if operator not in OPERATORS:
        raise InvalidSearchInput(f"Unsupported operator {operator!r}",
                                 user_message="Please choose a valid comparison.")
    return operator


def format_field(field: str) -> str:
    field = (field or "").strip()
    if not field:
        raise InvalidSearchInput("Empty field name")
    if _IDENTIFIER.match(field):
        return field
    return '"' + field.replace('"', '""') + '"'


def quote_string(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def format_literal(value, field_type: str) -> str:
    """
    Render a user value as a CQL literal.

    Raises:
        InvalidSearchInput: If the value is empty or not a number for a number field
    """
    text = "" if value is None else str(value)
    if field_type == "number":
        text = text.strip()
        if not text:
            raise InvalidSearchInput("Empty search value")
        if not _NUMBER.match(text):
            raise InvalidSearchInput(f"Not a numeric literal: {text!r}",
                                     user_message="Please enter a valid number.")
        return text
    if not text.strip():
        raise InvalidSearchInput("Empty search value")
    return quote_string(text)


def build_filter(field: str, operator: Optional[str], value, field_type: str) -> str:
    """
    Build ``field<op>literal``.

    Examples:
        build_filter("height", ">", "50", "number")      -> "height>50"
        build_filter("name", ">", "O'Brien", "string")   -> "name='O''Brien'"
    """
    return f"{format_field(field)}{effective_operator(operator, field_type)}{format_literal(value, field_type)}"


def escape_like_prefix(prefix: str) -> str:
    """Escape LIKE wildcards, the escape character and quotes in a prefix."""
    escaped = (prefix or "").replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
    escaped = escaped.replace("%", LIKE_ESCAPE + "%").replace("_", LIKE_ESCAPE + "_")
    return escaped.replace("'", "''")


def build_prefix_filter(field: str, prefix: str) -> str:
    """``field ILIKE 'prefix%'`` with the prefix escaped."""
    return f"{format_field(field)} ILIKE '{escape_like_prefix(prefix)}%'"


def parse_filter(expression: str) -> Tuple[str, str, str]:
    """
    Split a single-predicate filter back into (field, operator, value).

    Quoted literals are unquoted and their doubled quotes collapsed.

    Raises:
        ValueError: If the expression is not a single predicate
    """
    match = _PREDICATE.match(expression or "")
    if not match or not match.group("value"):
        raise ValueError(f"Not a single-predicate filter: {expression!r}")

    field = match.group("field")
    if field.startswith('"'):
        field = field[1:-1].replace('""', '"')

    value = match.group("value")
    if len(value) >= 2 and value.startswith("'") and value.endswith("'"):
        value = value[1:-1].replace("''", "'")

    return field, match.group("op"), value


def criteria_from_filter(expression: str, layer: str, layer_key: Optional[str] = None) -> SearchCriteria:
    field, operator, value = parse_filter(expression)
    return SearchCriteria(layer=layer, field=field, operator=operator, value=value, layer_key=layer_key)


def describe_criteria(criteria: SearchCriteria) -> str:
    """
    One-line summary shown above search results.

    Example:
        "Search in Buildings: field height greater than 50"
    """
    label = OPERATOR_LABELS.get(criteria.operator, criteria.operator)
    return f"Search in {criteria.layer}: field {criteria.field} {label} {criteria.value}"
