from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from boto3.dynamodb.conditions import ConditionBase, ConditionExpressionBuilder


@dataclass(slots=True)
class UpdateRequest:
    """UpdateItem expression parts with raw (unmarshaled) placeholder values."""

    update_expression: str
    expression_attribute_names: dict[str, str] = field(default_factory=dict)
    expression_attribute_values: dict[str, Any] = field(default_factory=dict)
    condition_expression: str | None = None


@dataclass(slots=True)
class ConditionRequest:
    condition_expression: str
    expression_attribute_names: dict[str, str] = field(default_factory=dict)
    expression_attribute_values: dict[str, Any] = field(default_factory=dict)


def build_condition(condition: ConditionBase) -> ConditionRequest:
    built = ConditionExpressionBuilder().build_expression(condition, is_key_condition=False)
    return ConditionRequest(
        condition_expression=built.condition_expression,
        expression_attribute_names=dict(built.attribute_name_placeholders),
        expression_attribute_values=dict(built.attribute_value_placeholders),
    )


def build_set_update(fields: dict[str, Any], *, condition: ConditionBase | None = None) -> UpdateRequest:
    """
    Build `SET #u0 = :u0, #u1 = :u1, ...` for every field, optionally guarded by
    `condition`.

    Update placeholders use a `u` prefix so they never collide with the
    `#n*` / `:v*` placeholders produced for the condition.
    """
    if not fields:
        raise ValueError("at least one field is required for an update")

    names: dict[str, str] = {}
    values: dict[str, Any] = {}
    clauses: list[str] = []
    for i, (name, value) in enumerate(fields.items()):
        n = f"#u{i}"
        v = f":u{i}"
        names[n] = str(name)
        values[v] = value
        clauses.append(f"{n} = {v}")

    req = UpdateRequest(
        update_expression="SET " + ", ".join(clauses),
        expression_attribute_names=names,
        expression_attribute_values=values,
    )
    if condition is not None:
        cond = build_condition(condition)
        req.condition_expression = cond.condition_expression
        req.expression_attribute_names.update(cond.expression_attribute_names)
        req.expression_attribute_values.update(cond.expression_attribute_values)
    return req
