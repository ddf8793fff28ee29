import pytest

from domain.models import Coordinate, SearchText
from services.query_classifier import classify, normalize_text, parse_coordinates


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("40.7128,-74.0060", (40.7128, -74.006)),
        ("40.7128, -74.0060", (40.7128, -74.006)),
        ("  40.7128   -74.0060 ", (40.7128, -74.006)),
        ("+51.5 0", (51.5, 0.0)),
        ("90,180", (90.0, 180.0)),
        ("-90 -180", (-90.0, -180.0)),
        ("40.7128 N, 74.0060 W", (40.7128, -74.006)),
        ("33.86S 151.2E", (-33.86, 151.2)),
        ("33.86s,151.2e", (-33.86, 151.2)),
    ],
)
def test_classify_coordinates(raw, expected):
    result = classify(raw)
    assert isinstance(result, Coordinate)
    assert (result.latitude, result.longitude) == expected


@pytest.mark.parametrize(
    "raw",
    [
        "Eiffel Tower",
        "91,0",
        "0,181",
        "40.7128",
        "40.7128,-74.0060,12",
        "-33.86 S, 151.2 E",
        "40,7128 74,0060",
        "40.7128 E, 74.0060 N",
        "cafe 12 34",
        "",
    ],
)
def test_classify_falls_back_to_text(raw):
    assert isinstance(classify(raw), SearchText)


def test_search_text_is_normalized_and_keyed_lowercase():
    result = classify("  Eiffel \t  Tower ", radius=1500.0)
    assert result == SearchText(text="Eiffel Tower", key="eiffel tower", radius=1500.0)


def test_equivalent_phrasings_share_a_key():
    assert classify("Eiffel  Tower").key == classify("eiffel tower").key


def test_parse_coordinates_rejects_out_of_range():
    assert parse_coordinates("95.0,10.0") is None
    assert parse_coordinates("10.0,-190.0") is None


def test_normalize_text_collapses_whitespace():
    assert normalize_text("a\n b\t\tc ") == "a b c"


def test_coordinate_validates_range():
    with pytest.raises(ValueError):
        Coordinate(latitude=-91.0, longitude=0.0)
    with pytest.raises(ValueError):
        Coordinate(latitude=0.0, longitude=180.5)
