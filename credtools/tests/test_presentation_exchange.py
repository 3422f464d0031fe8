"""Tests for converting proof templates into Presentation Exchange definitions."""

from __future__ import annotations

import pytest

from credtools.models.proof_template import Claim, ClaimConstraint, ProofTemplate
from credtools.services.presentation_exchange import (
    build_field_constraints,
    build_predicate_filter,
    claim_to_input_descriptor,
    to_presentation_definition,
)


def _age_claim(*constraints: ClaimConstraint) -> Claim:
    return Claim(
        id="claim-age",
        name="age",
        label="Age",
        purpose="Confirm the holder is an adult",
        credential_type="IdentityCredential",
        field_path="age",
        constraints=list(constraints),
    )


@pytest.mark.parametrize(
    ("operator", "expected"),
    [
        ("greater_than", {"exclusiveMinimum": 18}),
        ("less_than", {"exclusiveMaximum": 18}),
        ("greater_or_equal", {"minimum": 18}),
        ("less_or_equal", {"maximum": 18}),
    ],
)
def test_numeric_predicates_map_to_json_schema_bounds(operator: str, expected: dict[str, int]) -> None:
    assert build_predicate_filter({"operator": operator, "value": "18"}) == expected


def test_equality_predicates_and_typing() -> None:
    assert build_predicate_filter({"operator": "equals", "value": "CA"}) == {"const": "CA"}
    assert build_predicate_filter({"operator": "not_equals", "value": "CA"}) == {"not": {"const": "CA"}}
    assert build_predicate_filter({"operator": "less_than", "value": 2.5, "predicateType": "integer"}) == {
        "exclusiveMaximum": 2.5,
        "type": "integer",
    }
    assert build_predicate_filter({"operator": "equals", "value": "2000-01-01", "predicateType": "date"}) == {
        "const": "2000-01-01",
        "format": "date",
    }


def test_non_numeric_bounds_are_rejected() -> None:
    with pytest.raises(ValueError):
        build_predicate_filter({"operator": "greater_than", "value": "eighteen"})


def test_field_match_uses_const_or_enum() -> None:
    single = _age_claim(ClaimConstraint(type="field_match", config={"expectedValues": ["BC"]}))
    several = _age_claim(ClaimConstraint(type="field_match", config={"expectedValues": ["BC", "ON"]}))
    empty = _age_claim(ClaimConstraint(type="field_match", config={"expectedValues": []}))

    assert build_field_constraints(single) == {"filter": {"const": "BC"}}
    assert build_field_constraints(several) == {"filter": {"enum": ["BC", "ON"]}}
    assert build_field_constraints(empty) == {}


def test_input_descriptor_includes_type_filter_and_disclosure() -> None:
    claim = _age_claim(
        ClaimConstraint(type="predicate", config={"operator": "greater_or_equal", "value": 18}),
        ClaimConstraint(type="limit_disclosure"),
    )

    descriptor = claim_to_input_descriptor(claim)

    assert descriptor == {
        "id": "claim-age",
        "name": "Age",
        "purpose": "Confirm the holder is an adult",
        "constraints": {
            "fields": [
                {
                    "id": "claim-age",
                    "path": ["$.credentialSubject.age", "$.vc.credentialSubject.age"],
                    "purpose": "Confirm the holder is an adult",
                    "predicate": "required",
                    "filter": {"minimum": 18},
                },
                {
                    "path": ["$.type", "$.vc.type"],
                    "filter": {"type": "array", "contains": {"const": "IdentityCredential"}},
                },
            ],
            "limit_disclosure": "required",
        },
    }


def test_descriptor_without_credential_type_has_single_field() -> None:
    claim = Claim(id="c1", name="email", field_path="email")

    descriptor = claim_to_input_descriptor(claim)

    assert len(descriptor["constraints"]["fields"]) == 1
    assert "limit_disclosure" not in descriptor["constraints"]
    assert descriptor["name"] == "email"


def test_definition_lists_formats_and_descriptors() -> None:
    template = ProofTemplate(
        id="tpl-1",
        name="Adult check",
        purpose="Age gate",
        github_user_id="101",
        claims=[_age_claim(), Claim(id="c2", name="province")],
    )

    definition = to_presentation_definition(template)

    assert definition["id"] == "tpl-1"
    assert definition["name"] == "Adult check"
    assert definition["purpose"] == "Age gate"
    assert definition["format"] == {"jwt_vc": {"alg": ["ES256", "ES384"]}, "jwt_vp": {"alg": ["ES256", "ES384"]}}
    assert [descriptor["id"] for descriptor in definition["input_descriptors"]] == ["claim-age", "c2"]
