from utils.safe_search import build_safe_search, map_likelihood


def test_known_likelihoods_are_mapped():
    assert map_likelihood("VERY_UNLIKELY") == "Very Unlikely"
    assert map_likelihood("UNLIKELY") == "Unlikely"
    assert map_likelihood("POSSIBLE") == "Possible"
    assert map_likelihood("LIKELY") == "Likely"
    assert map_likelihood("VERY_LIKELY") == "Very Likely"
    assert map_likelihood("UNKNOWN") == "Unknown"


def test_unrecognized_or_missing_values_are_unknown():
    assert map_likelihood(None) == "Unknown"
    assert map_likelihood("") == "Unknown"
    assert map_likelihood("SOMEWHAT") == "Unknown"


def test_build_safe_search_fills_missing_categories():
    safe_search = build_safe_search({"adult": "LIKELY"})

    assert safe_search.adult == "Likely"
    assert safe_search.spoof == "Unknown"
    assert safe_search.racy == "Unknown"


def test_build_safe_search_without_annotation():
    assert build_safe_search(None) is None
