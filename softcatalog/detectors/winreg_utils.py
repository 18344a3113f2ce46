"""Thin read-only helpers over ``winreg``; every call yields nothing off Windows."""

from __future__ import annotations

import logging
from typing import Dict, Iterator, Optional, Tuple

try:
    import winreg
except ImportError:  # not a Windows host
    winreg = None

logger = logging.getLogger(__name__)

HKLM = "HKLM"
HKCU = "HKCU"
VIEW_64 = "64"
VIEW_32 = "32"


def registry_available() -> bool:
    return winreg is not None


def _hive(name: str):
    return winreg.HKEY_LOCAL_MACHINE if name == HKLM else winreg.HKEY_CURRENT_USER


def _access(view: Optional[str]) -> int:
    access = winreg.KEY_READ
    if view == VIEW_64:
        access |= winreg.KEY_WOW64_64KEY
    elif view == VIEW_32:
        access |= winreg.KEY_WOW64_32KEY
    return access


def _read_all_values(handle) -> Dict[str, object]:
    values: Dict[str, object] = {}
    index = 0
    while True:
        try:
            name, data, _kind = winreg.EnumValue(handle, index)
        except OSError:
            break
        values[name] = data
        index += 1
    return values


def read_values(hive: str, path: str, view: Optional[str] = None) -> Optional[Dict[str, object]]:
    """Return every value stored directly under ``path`` or None when missing."""
    if winreg is None:
        return None
    try:
        with winreg.OpenKey(_hive(hive), path, 0, _access(view)) as handle:
            return _read_all_values(handle)
    except OSError:
        return None


def iter_subkeys(
    hive: str, path: str, view: Optional[str] = None
) -> Iterator[Tuple[str, Dict[str, object]]]:
    """Yield ``(subkey_name, values)`` for each direct child of ``path``."""
    if winreg is None:
        return
    try:
        base = winreg.OpenKey(_hive(hive), path, 0, _access(view))
    except OSError:
        return
    with base:
        try:
            count = winreg.QueryInfoKey(base)[0]
        except OSError:
            count = 0
        for index in range(count):
            try:
                sub_name = winreg.EnumKey(base, index)
                sub_key = winreg.OpenKey(base, sub_name)
            except OSError as exc:
                logger.debug("Skipping unreadable subkey %d of %s: %s", index, path, exc)
                continue
            with sub_key:
                yield sub_name, _read_all_values(sub_key)


def read_string(hive: str, path: str, value_name: str, view: Optional[str] = None) -> str:
    values = read_values(hive, path, view) or {}
    value = values.get(value_name)
    return str(value).strip() if value is not None else ""
