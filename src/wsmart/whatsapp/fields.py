"""Typed field probing over loosely-typed provider JSON.

Provider payloads carry the same datum under different keys depending on
the encoding. Extractors are listed in priority order and the first
non-empty string wins. Non-string values count as absent.
"""

from typing import Any, Callable, Iterable, Mapping

Extractor = Callable[[Mapping[str, Any]], Any]


def as_dict(value: Any) -> dict[str, Any]:
    """Return value if it is a dict, else an empty dict."""
    return value if isinstance(value, dict) else {}


def as_text(value: Any) -> str | None:
    """Return a stripped non-empty string, else None."""
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def as_flag(value: Any) -> bool | None:
    """Interpret provider booleans ("true", 1, True). None when unspecified."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
        return None
    if isinstance(value, int):
        return bool(value)
    return None


def key(name: str) -> Extractor:
    """Extractor reading a top-level key."""
    return lambda obj: obj.get(name)


def path(*names: str) -> Extractor:
    """Extractor reading a nested key through dict-only hops."""

    def _extract(obj: Mapping[str, Any]) -> Any:
        current: Any = obj
        for name in names:
            if not isinstance(current, Mapping):
                return None
            current = current.get(name)
        return current

    return _extract


def first_text(obj: Mapping[str, Any], extractors: Iterable[Extractor]) -> str | None:
    """Apply extractors in order and return the first non-empty string."""
    for extract in extractors:
        value = as_text(extract(obj))
        if value is not None:
            return value
    return None


def first_value(obj: Mapping[str, Any], extractors: Iterable[Extractor]) -> Any:
    """Apply extractors in order and return the first value that is not None."""
    for extract in extractors:
        value = extract(obj)
        if value is not None:
            return value
    return None
