# backend/siem_correlator/services/correlation/conditions.py
"""
Field matching used by rule conditions and thresholds.

Every operator is a pure function of (value, filter_value). Values that
cannot be compared (non-numeric operands, invalid regex, unknown operator)
never raise: the condition simply does not match.
"""
from enum import Enum
from typing import Any, Callable, Dict, Optional
import re


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    IN = "in"
    REGEX = "regex"
    EXISTS = "exists"


def _to_str(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).lower()


def _to_number(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _numeric(compare: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    def op(value: Any, filter_value: Any) -> bool:
        left, right = _to_number(value), _to_number(filter_value)
        if left is None or right is None:
            return False
        return compare(left, right)

    return op


def _equals(value: Any, filter_value: Any) -> bool:
    return _to_str(value) == _to_str(filter_value)


def _contains(value: Any, filter_value: Any) -> bool:
    return _to_str(filter_value) in _to_str(value)


def _in(value: Any, filter_value: Any) -> bool:
    if isinstance(filter_value, (list, tuple, set)):
        options = [_to_str(v).strip() for v in filter_value]
    else:
        options = [v.strip().lower() for v in str(filter_value).split(",")]
    return _to_str(value) in options


def _regex(value: Any, filter_value: Any) -> bool:
    try:
        return re.search(str(filter_value), _to_str(value), re.IGNORECASE) is not None
    except re.error:
        return False


def _exists(value: Any, filter_value: Any) -> bool:
    return True


OPERATORS: Dict[ConditionOperator, Callable[[Any, Any], bool]] = {
    ConditionOperator.EQUALS: _equals,
    ConditionOperator.CONTAINS: _contains,
    ConditionOperator.GT: _numeric(lambda a, b: a > b),
    ConditionOperator.LT: _numeric(lambda a, b: a < b),
    ConditionOperator.GTE: _numeric(lambda a, b: a >= b),
    ConditionOperator.LTE: _numeric(lambda a, b: a <= b),
    ConditionOperator.IN: _in,
    ConditionOperator.REGEX: _regex,
    ConditionOperator.EXISTS: _exists,
}


def match_condition(value: Any, operator: str, filter_value: Any) -> bool:
    # A missing value matches nothing, `exists` included
    if value is None:
        return False
    try:
        op = ConditionOperator(operator)
    except ValueError:
        return False
    return OPERATORS[op](value, filter_value)


def get_nested_value(obj: Any, path: str) -> Any:
    """Resolve a dot path such as "details.auth.result" over dicts and objects."""
    current = obj
    for key in path.split("."):
        if current is None:
            return None
        if isinstance(current, dict):
            current = current.get(key)
        else:
            current = getattr(current, key, None)
    return current
