# aimtrack/fields.py

"""
Header/key label resolution.

Exports never agree on column names ("Score", "Score:", "Final Score",
"Hit Count:"). FIELD_ALIASES lists, per canonical field, the accepted
spellings in priority order. map_fields resolves every field in two phases:

1. exact, case-insensitive match against an alias
2. substring match (label contains an alias), only for fields phase 1 missed

A field resolved in phase 1 is never revisited in phase 2.
"""

from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Tuple

FIELD_ALIASES: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    'scenario': ('scenario', 'scenario name', 'task', 'map', 'name'),
    'score': ('score', 'final score', 'points'),
    'hits': ('hits', 'kills', 'targets destroyed', 'eliminations', 'targets hit', 'hit count', 'hit count:'),
    'misses': ('misses', 'shots missed', 'miss count', 'miss count:'),
    'shots': ('shots', 'shots fired', 'total shots', 'bullets'),
    'accuracy': ('accuracy', 'hit %', 'hit percent', 'hit percentage', 'precision', 'hitrate', 'hit rate'),
    'avg_ttk': ('avg ttk', 'average ttk', 'average time to kill', 'time to kill avg', 'avg ttk:'),
    'overshots': ('overshots', 'overflicks', 'extra shots after kill', 'total overshots', 'total overshots:'),
    'reloads': ('reloads', 'num reloads', 'reloads:'),
    'fps_avg': ('fps avg', 'average fps', 'avg fps', 'avg fps:'),
    'dpi': ('dpi', 'dpi:'),
    'sens_h': ('sensitivity', 'sensitivity h', 'sens', 'horiz sens', 'horiz sens:'),
    'fov': ('fov', 'field of view', 'fov:'),
    'duration': ('duration', 'time played', 'session length', 'time (s)', 'time seconds', 'fight time', 'fight time:'),
    'date': ('date', 'played at', 'time', 'timestamp', 'challenge start', 'challenge start:'),
})


def normalize_label(label: object) -> str:
    return str(label if label is not None else '').strip().lower()


def _has_value(value: Optional[str]) -> bool:
    return value is not None and str(value).strip() != ''


def _match(entries: Tuple[Tuple[str, str], ...], aliases: Tuple[str, ...], exact: bool) -> Optional[str]:
    for alias in aliases:
        for label, value in entries:
            hit = label == alias if exact else alias in label
            if hit and _has_value(value):
                return value
    return None


def map_fields(
    entries: Iterable[Tuple[str, str]],
    aliases: Mapping[str, Tuple[str, ...]] = FIELD_ALIASES,
    substring: bool = True,
) -> Dict[str, str]:
    """
    Resolve raw (label, value) pairs to canonical field names.

    Args:
        entries: Header/cell or summary key/value pairs, in file order
        aliases: Canonical field -> ordered accepted spellings
        substring: Run the substring pass for fields the exact pass missed

    Returns:
        Dict of canonical field -> raw value; unresolved fields are omitted
    """
    normalized = tuple((normalize_label(label), value) for label, value in entries)

    exact: Dict[str, str] = {}
    for field, spellings in aliases.items():
        value = _match(normalized, spellings, exact=True)
        if value is not None:
            exact[field] = value

    resolved = dict(exact)
    if not substring:
        return resolved
    for field, spellings in aliases.items():
        if field in exact:
            continue
        value = _match(normalized, spellings, exact=False)
        if value is not None:
            resolved[field] = value

    return resolved
