import pytest

from livestats.parsers import parse_observation


def test_bare_number_uses_default_key():
    assert parse_observation("12.5\n") == ("value", 12.5)
    assert parse_observation("3", default_key="lat") == ("lat", 3.0)


def test_key_value_pair():
    assert parse_observation("db.query 1500") == ("db.query", 1500.0)


def test_json_line():
    assert parse_observation('{"key": "rpc", "nanos": 900}') == ("rpc", 900.0)
    assert parse_observation('{"metric": "disk", "latency": 0.25}') == ("disk", 0.25)
    assert parse_observation('{"value": -4}') == ("value", -4.0)


def test_blank_and_comment_lines_are_skipped():
    assert parse_observation("   \n") is None
    assert parse_observation("# header") is None


@pytest.mark.parametrize(
    "line",
    [
        "abc",
        "a b c",
        "nan",
        "key NaN",
        '{"value": "fast"}',
        '{"value": true}',
        '{"key": "x"}',
        '{"value": 1',
        "{not json}",
    ],
)
def test_malformed_lines_raise(line):
    with pytest.raises(ValueError):
        parse_observation(line)


def test_infinity_is_accepted():
    assert parse_observation("inf") == ("value", float("inf"))
