"""Typed policy conditions.

Policies store conditions as a JSON list of {field, op, value} clauses. They
are validated against the columns of the data type's model and applied as
additional AND filters on the candidate query.
"""

from datetime import datetime
from typing import Any, Iterable, List, Optional

from pydantic import ValidationError
from sqlalchemy import DateTime

from ..errors import RetentionConditionError
from .schemas import ConditionOp, RetentionCondition


def parse_conditions(raw: Optional[Iterable[Any]]) -> List[RetentionCondition]:
    """Parse stored condition dicts.

    Raises:
        RetentionConditionError: If a clause is malformed
    """
    if not raw:
        return []
    if isinstance(raw, dict):
        raise RetentionConditionError(
            "Conditions must be a list of {field, op, value} clauses, not a mapping"
        )
    try:
        return [
            c if isinstance(c, RetentionCondition) else RetentionCondition.model_validate(c)
            for c in raw
        ]
    except ValidationError as e:
        raise RetentionConditionError(f"Invalid retention condition: {e}") from e


def validate_conditions(model, conditions: List[RetentionCondition]) -> None:
    """Raises RetentionConditionError if a clause names an unknown column."""
    columns = model.__table__.columns
    for condition in conditions:
        if condition.field not in columns:
            raise RetentionConditionError(
                f"Unknown field '{condition.field}' for {model.__name__}"
            )


def _coerce(column, value: Any) -> Any:
    # JSON has no datetime type; accept ISO strings for DateTime columns
    if isinstance(column.type, DateTime) and isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError as e:
            raise RetentionConditionError(f"Invalid datetime '{value}' for {column.name}") from e
    return value


def apply_conditions(query, model, conditions: List[RetentionCondition]):
    validate_conditions(model, conditions)

    for condition in conditions:
        column = getattr(model, condition.field)
        table_column = model.__table__.columns[condition.field]
        op = condition.op

        if op == ConditionOp.IS_NULL:
            query = query.filter(column.is_(None))
        elif op == ConditionOp.NOT_NULL:
            query = query.filter(column.isnot(None))
        elif op == ConditionOp.IN:
            query = query.filter(column.in_([_coerce(table_column, v) for v in condition.value]))
        else:
            value = _coerce(table_column, condition.value)
            if op == ConditionOp.EQ:
                query = query.filter(column == value)
            elif op == ConditionOp.NE:
                query = query.filter(column != value)
            elif op == ConditionOp.LT:
                query = query.filter(column < value)
            elif op == ConditionOp.GT:
                query = query.filter(column > value)
            else:
                raise RetentionConditionError(f"Unsupported operator '{op}'")

    return query
