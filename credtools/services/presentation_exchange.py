"""Convert proof templates into DIF Presentation Exchange definitions."""

from __future__ import annotations

from typing import Any, Mapping

from credtools.models.proof_template import Claim, ProofTemplate

SUPPORTED_ALGORITHMS: tuple[str, ...] = ("ES256", "ES384")

_NUMERIC_OPERATORS: dict[str, str] = {
    "greater_than": "exclusiveMinimum",
    "less_than": "exclusiveMaximum",
    "greater_or_equal": "minimum",
    "less_or_equal": "maximum",
}


def _number(value: Any) -> int | float:
    """Return ``value`` as a JSON number, keeping integers integral."""

    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Predicate value {value!r} is not numeric") from None
    return int(number) if number.is_integer() else number


def build_predicate_filter(config: Mapping[str, Any]) -> dict[str, Any]:
    operator = config.get("operator")
    value = config.get("value")
    result: dict[str, Any] = {}

    if operator == "equals":
        result["const"] = value
    elif operator == "not_equals":
        result["not"] = {"const": value}
    elif operator in _NUMERIC_OPERATORS:
        result[_NUMERIC_OPERATORS[operator]] = _number(value)

    predicate_type = config.get("predicateType")
    if predicate_type == "date":
        result["format"] = "date"
    elif predicate_type == "integer":
        result["type"] = "integer"
    return result


def build_field_constraints(claim: Claim) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for constraint in claim.constraints:
        if constraint.type == "predicate":
            result["predicate"] = "required"
            result["filter"] = build_predicate_filter(constraint.config)
        elif constraint.type == "field_match":
            expected = constraint.config.get("expectedValues") or []
            if len(expected) == 1:
                result["filter"] = {"const": expected[0]}
            elif len(expected) > 1:
                result["filter"] = {"enum": list(expected)}
    return result


def claim_to_input_descriptor(claim: Claim) -> dict[str, Any]:
    fields: list[dict[str, Any]] = [
        {
            "id": claim.id,
            "path": [
                f"$.credentialSubject.{claim.field_path}",
                f"$.vc.credentialSubject.{claim.field_path}",
            ],
            "purpose": claim.purpose,
            **build_field_constraints(claim),
        }
    ]
    if claim.credential_type:
        fields.append(
            {
                "path": ["$.type", "$.vc.type"],
                "filter": {"type": "array", "contains": {"const": claim.credential_type}},
            }
        )

    constraints: dict[str, Any] = {"fields": fields}
    if any(constraint.type == "limit_disclosure" for constraint in claim.constraints):
        constraints["limit_disclosure"] = "required"

    return {
        "id": claim.id,
        "name": claim.display_label,
        "purpose": claim.purpose,
        "constraints": constraints,
    }


def to_presentation_definition(template: ProofTemplate) -> dict[str, Any]:
    """Return the Presentation Exchange definition published for ``template``."""

    algorithms = list(SUPPORTED_ALGORITHMS)
    return {
        "id": template.id,
        "name": template.name,
        "purpose": template.purpose,
        "format": {
            "jwt_vc": {"alg": algorithms},
            "jwt_vp": {"alg": list(algorithms)},
        },
        "input_descriptors": [claim_to_input_descriptor(claim) for claim in template.claims],
    }


__all__ = [
    "build_field_constraints",
    "build_predicate_filter",
    "claim_to_input_descriptor",
    "to_presentation_definition",
]
