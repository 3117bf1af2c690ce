"""
Entry-level undo helpers.

Components capture only the mapping entries an operation can touch, so a
rollback costs the same no matter how many tokens the contract holds.
"""

from __future__ import annotations

from typing import Any, Callable, Hashable, Iterable, MutableMapping, Optional

_MISSING = object()

Undo = Callable[[], None]


def capture(
    mapping: MutableMapping[Any, Any],
    keys: Iterable[Hashable],
    copy: Optional[Callable[[Any], Any]] = None,
) -> dict[Any, Any]:
    """Remember the current value (or absence) of each key."""
    saved: dict[Any, Any] = {}
    for key in keys:
        value = mapping.get(key, _MISSING)
        if copy is not None and value is not _MISSING:
            value = copy(value)
        saved[key] = value
    return saved


def restore(mapping: MutableMapping[Any, Any], saved: dict[Any, Any]) -> None:
    """Put captured entries back; keys that were absent are removed again."""
    for key, value in saved.items():
        if value is _MISSING:
            mapping.pop(key, None)
        else:
            mapping[key] = value


def normalized(addresses: Iterable[Optional[str]]) -> set[str]:
    return {address.lower() for address in addresses if address}
