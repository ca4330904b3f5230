# Overview: Pytest coverage for item-name normalization.

import pytest
from gasdsr.services.normalizer import is_identified, normalize_name


def test_normalization_is_stable_across_spacing_and_case():
    assert normalize_name(" Acme  Gas ") == normalize_name("acme gas")
    assert normalize_name(" Acme  Gas ") == "acme gas"


def test_collapses_tabs_and_newlines():
    assert normalize_name("Cylinder\t12kg\n ") == "cylinder 12kg"


@pytest.mark.parametrize("raw", [None, "", "   ", {"name": "x"}, True, ["gas"]])
def test_unusable_names_are_unidentified(raw):
    key = normalize_name(raw)
    assert key == ""
    assert not is_identified(key)


def test_numbers_are_accepted_as_names():
    assert normalize_name(12) == "12"


def test_normalize_is_idempotent():
    once = normalize_name("  LPG   Refill 45KG ")
    assert normalize_name(once) == once
