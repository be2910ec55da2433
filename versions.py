"""Webwrap – version numbers.

Versions are dot-separated and compared component by component as
integers, with missing trailing components treated as 0. Each component is
read the way JavaScript's parseInt reads it: its leading digits, or 0 if it
has none. That means a pre-release suffix is ignored, so "2.3.0b9" compares
equal to "2.3.0". is_release() is the only thing that looks at suffixes.
"""

import operator
import re

_LEADING_DIGITS = re.compile(r"\s*(\d+)")
_RELEASE = re.compile(r"^\d+\.\d+\.\d+$")

_OPS = {
    "<": operator.lt,
    "<=": operator.le,
    "=": operator.eq,
    "==": operator.eq,
    "!=": operator.ne,
    ">=": operator.ge,
    ">": operator.gt,
}


def _component(text):
    match = _LEADING_DIGITS.match(text)
    return int(match.group(1)) if match else 0


def parse(version):
    """Split a version string into a tuple of ints."""
    return tuple(_component(part) for part in (version or "").split("."))


def compare(v1, v2, components=None):
    """Return -1, 0 or 1. If *components* is set, only compare that many."""
    a = parse(v1)
    b = parse(v2)
    length = max(len(a), len(b))
    if components is not None:
        length = min(length, components)
    for i in range(length):
        x = a[i] if i < len(a) else 0
        y = b[i] if i < len(b) else 0
        if x < y:
            return -1
        if x > y:
            return 1
    return 0


def vcmp(v1, op, v2, components=None):
    """Compare with an operator string, e.g. vcmp("2.1", ">=", "2.0.5")."""
    try:
        func = _OPS[op]
    except KeyError:
        raise ValueError(f"Unknown version operator '{op}'") from None
    return func(compare(v1, v2, components), 0)


def is_release(version):
    """True for a final release, i.e. exactly three numeric components."""
    return bool(_RELEASE.match(version or ""))


def major(version):
    """The first two components, e.g. "2.4" for "2.4.3b2"."""
    return ".".join((version or "").split(".")[:2])
