import pytest

from src.engines.fusion.validator import find_insane, is_sane, normalize_name, validate_ingredients
from tests.factories import make_ingredient, make_protocol


@pytest.mark.parametrize("raw, expected", [
    ("Tomato", "tomato"),
    ("Tomatoes", "tomato"),
    ("  Basil  ", "basil"),
    ("Pears", "pear"),
    ("Olive   Oil", "olive oil"),
    ("Peaches", "peach"),
    ("Glass", "glass"),
    ("Boxes", "box"),
    ("", ""),
])
def test_normalize_name(raw, expected):
    assert normalize_name(raw) == expected


@pytest.mark.parametrize("raw", [
    "Tomatoes", "Mushrooms", "glass", "s", "ss", "sses", "Lentils", "hummus", "  Pine Nuts ", "es", "oes",
])
def test_normalize_name_is_idempotent(raw):
    once = normalize_name(raw)
    assert normalize_name(once) == once


def test_validate_plural_match_and_hallucination():
    inventory = [make_ingredient("Tomato", mass_grams=150, vitality_score=80)]
    protocol = make_protocol(["Tomatoes", "Basil"])

    result = validate_ingredients(inventory, protocol)

    assert result.validated_used == ["Tomatoes"]
    assert result.identified_hallucinations == ["Basil"]


def test_validate_keeps_protocol_order_and_spelling():
    inventory = [make_ingredient("garlic"), make_ingredient("Lemon"), make_ingredient("Thyme")]
    protocol = make_protocol(["THYME", "Saffron", "lemons", "Garlic", "Truffle"])

    result = validate_ingredients(inventory, protocol)

    assert result.validated_used == ["THYME", "lemons", "Garlic"]
    assert result.identified_hallucinations == ["Saffron", "Truffle"]


def test_validate_partition_law():
    inventory = [make_ingredient("Pear"), make_ingredient("Cheese")]
    protocol = make_protocol(["Pears", "Honey", "cheese", "Walnut", "Honey"])

    result = validate_ingredients(inventory, protocol)

    confirmed = {normalize_name(n) for n in result.validated_used}
    hallucinated = {normalize_name(n) for n in result.identified_hallucinations}
    assert confirmed | hallucinated == {normalize_name(n) for n in protocol.ingredients_used}
    assert not confirmed & hallucinated


def test_validate_empty_inputs():
    assert validate_ingredients([], make_protocol([])).validated_used == []

    result = validate_ingredients([], make_protocol(["Egg"]))
    assert result.identified_hallucinations == ["Egg"]


def test_sanity_gate():
    assert is_sane([])
    assert is_sane([make_ingredient("Apple", mass_grams=1, vitality_score=0)])
    assert not is_sane([make_ingredient("Apple", mass_grams=0)])
    assert not is_sane([make_ingredient("Apple", vitality_score=-1)])

    bad = make_ingredient("Pear", mass_grams=-5)
    assert find_insane([make_ingredient("Apple"), bad]) == [bad]


def test_sanity_gate_rejects_nan_mass():
    assert not is_sane([make_ingredient("Apple", mass_grams=float("nan"))])
