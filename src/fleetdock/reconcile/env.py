"""
Pure helpers for container environment lists.
"""

from typing import Dict, Iterable, List


def parse_env_list(env: Iterable[str]) -> Dict[str, str]:
    """
    Parse ``KEY=VALUE`` entries into a map.

    Values may contain '='; only the first one splits. Entries without '='
    are dropped.
    """
    result: Dict[str, str] = {}
    for entry in env:
        key, sep, value = entry.partition("=")
        if not sep:
            continue
        result[key] = value
    return result


def compute_env(current: Dict[str, str], desired: Dict[str, str]) -> Dict[str, str]:
    """
    Merge the desired environment over the current one.

    Keys absent from ``desired`` are removed; every desired key is set.
    """
    merged = {key: value for key, value in current.items() if key in desired}
    merged.update(desired)
    return merged


def format_env_list(env: Dict[str, str]) -> List[str]:
    """Render a map as ``KEY=VALUE`` entries sorted by key."""
    return [f"{key}={env[key]}" for key in sorted(env)]
