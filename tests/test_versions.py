import pytest

import versions


@pytest.mark.parametrize("a,b,expected", [
    ("1.2", "1.2.0", 0),
    ("2.3.0", "2.3.1", -1),
    ("2.10.0", "2.9.9", 1),
    # suffixes coerce like parseInt, so a beta equals its release
    ("2.3.0b9", "2.3.0", 0),
    ("2.x.0", "2.0.0", 0),
])
def test_compare(a, b, expected):
    assert versions.compare(a, b) == expected


def test_compare_limited_components():
    assert versions.compare("2.4.1", "2.4.9", 2) == 0
    assert versions.vcmp("2.5.0", ">", "2.4.9", 2)


def test_vcmp_operators():
    assert versions.vcmp("2.1.0", ">=", "2.1")
    assert versions.vcmp("2.0.0", "<", "2.1.0")
    assert versions.vcmp("2.1.0", "=", "2.1.0")
    with pytest.raises(ValueError):
        versions.vcmp("1", "~", "2")


def test_is_release():
    assert versions.is_release("2.4.3")
    assert not versions.is_release("2.4.3b1")
    assert not versions.is_release("2.4")


def test_major():
    assert versions.major("2.4.3b2") == "2.4"
