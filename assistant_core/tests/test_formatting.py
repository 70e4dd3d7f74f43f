import math

from assistant_core.responders.formatting import as_number, format_number, numeric_values


def test_format_number():
    assert format_number(700) == "700"
    assert format_number(0.8) == "0,8"
    assert format_number(1234.5) == "1 234,5"
    assert format_number(8500000.0) == "8 500 000"
    assert format_number(3.14159) == "3,14"


def test_as_number():
    assert as_number(2) == 2.0
    assert as_number("2,5") == 2.5
    assert as_number(" 1 200 ") == 1200.0
    assert as_number(True) is None
    assert as_number("abc") is None
    assert as_number(math.nan) is None
    assert as_number(None) is None


def test_numeric_values_keeps_only_numbers():
    assert numeric_values({"surface": "120", "note": "grande", "niveaux": 2}) == {"surface": 120.0, "niveaux": 2.0}
    assert numeric_values(None) == {}
