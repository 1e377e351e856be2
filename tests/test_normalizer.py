import pytest

from bidetmap.normalizer import alpha_numeric_only, compact_key, normalize


@pytest.mark.parametrize("raw, expected", [
    ("VivoCity", "vivocity"),
    ("Vivo City", "vivo city"),
    ("The Centrepoint", "centrepoint"),
    ("Plaza Singapura Mall", "plaza singapura"),
    ("Bishan MRT Station", "bishan"),
    ("Tampines Hub (Level 2)", "tampines"),
    ("Jln Besar Food Centre", "jalan besar"),
    ("AMK Hub", "ang mo kio"),
    ("Orchard Rd.", "orchard road"),
    ("  Raffles   City  ", "raffles city"),
])
def test_normalize_known_names(raw, expected):
    assert normalize(raw) == expected


def test_normalize_empty_input():
    assert normalize("") == ""
    assert normalize(None) == ""


def test_normalize_keeps_a_word_when_everything_is_generic():
    # "mall" alone must not normalize to an empty key
    assert normalize("Mall") == "mall"
    assert normalize("Food") == "food"


@pytest.mark.parametrize("raw", [
    "The Shoppes at Marina Bay Sands",
    "the the mall mall",
    "Food Centre Centre",
    "ION Orchard (B4)",
    "Hawker Market Food",
    "St. Andrew's Cathedral",
    "NUS Central Library",
    "  ",
    "!!!",
    "Plaza Plaza Plaza",
])
def test_normalize_is_idempotent(raw):
    once = normalize(raw)
    assert normalize(once) == once


def test_compact_key_ignores_spacing():
    assert compact_key("VivoCity") == compact_key("Vivo City")
    assert compact_key("Suntec City Mall") == compact_key("SuntecCity")


def test_alpha_numeric_only():
    assert alpha_numeric_only("Ngee Ann City #05-01") == "ngeeanncity0501"
    assert alpha_numeric_only("") == ""
