# aimtrack/parser.py

import csv
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from aimtrack.fields import FIELD_ALIASES, map_fields, normalize_label
from aimtrack.models import RawRun
from aimtrack.naming import scenario_from_filename
from aimtrack.values import (
    parse_clock_offset,
    parse_date,
    parse_duration,
    parse_integer,
    parse_locale_number,
    parse_percent,
)

logger = logging.getLogger(__name__)


def decode_content(data: bytes) -> str:
    """Decode raw export bytes; a BOM is dropped and bad bytes are replaced."""
    return data.decode('utf-8-sig', errors='replace')


def split_csv_line(line: str) -> List[str]:
    """Split one CSV line, honouring quotes, and trim every cell."""
    try:
        cells = next(csv.reader([line]), [])
    except csv.Error:
        cells = line.split(',')
    return [cell.strip() for cell in cells]


def _unquote(text: str) -> str:
    return text.strip().strip('"').strip()


def fold_colon_keys(summary: Mapping[str, str]) -> Dict[str, str]:
    """
    Merge 'Score:' style keys into their plain spelling.

    The colon spelling wins when both exist and is removed from the result,
    so later label matching only ever sees one key per stat.
    """
    colon_values = {}
    for key, value in summary.items():
        if key.endswith(':') and key[:-1].strip():
            colon_values[key[:-1].strip()] = value

    folded: Dict[str, str] = {}
    for key, value in summary.items():
        base = key[:-1].strip() if key.endswith(':') else key
        if not base:
            continue
        folded[base] = colon_values.get(base, value)
    return folded


def _lookup(summary: Mapping[str, str], label: str) -> Optional[str]:
    for key, value in summary.items():
        if normalize_label(key) == label:
            return value
    return None


def apply_hit_miss_counts(summary: Mapping[str, str]) -> Dict[str, str]:
    """Derive Shots/Hits from 'Hit Count' + 'Miss Count' when both are present."""
    hit_count = parse_integer(_lookup(summary, 'hit count'))
    miss_count = parse_integer(_lookup(summary, 'miss count'))
    updated = dict(summary)
    if hit_count is None or miss_count is None:
        return updated

    for key in list(updated):
        if normalize_label(key) in ('shots', 'hits'):
            del updated[key]
    updated['Shots'] = str(hit_count + miss_count)
    updated['Hits'] = str(hit_count)
    return updated


@dataclass
class EventTotals:
    """Aggregates over the per-kill rows of an export."""

    count: int = 0
    shots: int = 0
    hits: int = 0
    overshots: int = 0
    ttk_total: float = 0.0
    ttk_count: int = 0
    first_timestamp: Optional[str] = None
    last_timestamp: Optional[str] = None

    @property
    def avg_ttk(self) -> Optional[float]:
        if self.ttk_count == 0:
            return None
        return self.ttk_total / self.ttk_count

    @property
    def fight_seconds(self) -> Optional[float]:
        """Seconds between the first and last kill, when positive."""
        start = parse_clock_offset(self.first_timestamp)
        end = parse_clock_offset(self.last_timestamp)
        if start is None or end is None:
            return None
        elapsed = end - start
        return elapsed if elapsed > 0 else None


class StatsCsvParser:
    """
    Parse aim-trainer stat exports into a RawRun.

    Handles the layouts seen in the wild:
    - a row/column table with one row per kill
    - a plain column table (header plus one data row)
    - a flat block of 'Key:,Value' or 'Key: Value' summary lines
    - both in one file (kill table first, summary lines after it)
    """

    KEY_VALUE_COMMA = re.compile(r"^([^,]+),\s*(.+)$")
    KEY_VALUE_COLON = re.compile(r"^([^:]+):\s*(.+)$")
    # Per-kill tables carry an index column ("Kill #"); a "Kills" stat column is not one
    KILL_INDEX_LABEL = re.compile(r"^kill\s*(#|no\.?|num(ber)?)?$")

    def __init__(self, aliases: Mapping[str, Tuple[str, ...]] = FIELD_ALIASES):
        self.aliases = aliases
        # Substrings identifying per-kill columns in the header row
        self.event_columns = {
            'timestamp': 'timestamp',
            'ttk': 'ttk',
            'shots': 'shot',
            'hits': 'hit',
            'overshots': 'overshot',
        }

    def parse_file(self, path: str) -> RawRun:
        with open(path, 'rb') as handle:
            data = handle.read()
        return self.parse_bytes(data, path)

    def parse_bytes(self, data: bytes, filename: str) -> RawRun:
        return self.parse(decode_content(data), filename)

    def parse(self, text: str, filename: str) -> RawRun:
        """
        Parse one export into a normalized run.

        Args:
            text: Full file content
            filename: Source path or name, used for scenario/date fallbacks

        Returns:
            RawRun; fields that cannot be found or parsed are None
        """
        lines = [line for line in re.split(r"\r?\n", text) if line.strip()]
        if len(lines) < 2:
            return self._build_run({}, EventTotals(), filename)

        events = self._scan_events(lines)
        row_pairs = self._scan_row_table(lines)
        if row_pairs:
            # Header and first data row are consumed as a table, not as summary lines
            summary = dict(row_pairs)
            summary.update(self._scan_summary(lines[2:]))
        else:
            summary = self._scan_summary(lines)

        summary = fold_colon_keys(summary)
        summary = apply_hit_miss_counts(summary)
        return self._build_run(summary, events, filename)

    def _scan_summary(self, lines: List[str]) -> Dict[str, str]:
        """Collect every 'key, value' / 'key: value' line; later lines win."""
        summary: Dict[str, str] = {}
        for line in lines:
            match = self.KEY_VALUE_COMMA.match(line) or self.KEY_VALUE_COLON.match(line)
            if not match:
                continue
            key = _unquote(match.group(1))
            value = _unquote(match.group(2))
            if key:
                summary[key] = value
        return summary

    def _scan_row_table(self, lines: List[str]) -> List[Tuple[str, str]]:
        """
        Pair header labels with the first data row of a plain column table.

        Only applies to headers of 3+ plain labels (no 'Key:' cells, no bare
        numbers, no kill column) followed by a row of the same width.
        """
        header = split_csv_line(lines[0])
        if len(header) < 3:
            return []
        for label in header:
            if not label or label.endswith(':') or parse_locale_number(label) is not None:
                return []
        if self._find_columns(header)['kill'] is not None:
            return []

        row = split_csv_line(lines[1])
        if len(row) != len(header):
            return []
        return [(label, value) for label, value in zip(header, row) if value]

    def _find_columns(self, header: List[str]) -> Dict[str, Optional[int]]:
        labels = [normalize_label(cell) for cell in header]
        columns: Dict[str, Optional[int]] = {
            'kill': next((i for i, label in enumerate(labels) if self.KILL_INDEX_LABEL.match(label)), None),
        }
        for name, needle in self.event_columns.items():
            columns[name] = None
            for index, label in enumerate(labels):
                if needle not in label:
                    continue
                if name == 'shots' and 'overshot' in label:
                    continue
                columns[name] = index
                break
        return columns

    @staticmethod
    def _cell(cells: List[str], index: Optional[int]) -> Optional[str]:
        if index is None or index >= len(cells):
            return None
        return cells[index]

    def _scan_events(self, lines: List[str]) -> EventTotals:
        """Rebuild totals from per-kill rows (rows with an integer in the kill column)."""
        totals = EventTotals()
        columns = self._find_columns(split_csv_line(lines[0]))
        logger.debug("Event columns: %s", columns)
        if columns['kill'] is None:
            return totals

        for line in lines[1:]:
            cells = split_csv_line(line)
            if parse_integer(self._cell(cells, columns['kill'])) is None:
                continue
            totals.count += 1

            shots = parse_integer(self._cell(cells, columns['shots']))
            hits = parse_integer(self._cell(cells, columns['hits']))
            overshots = parse_integer(self._cell(cells, columns['overshots']))
            if shots is not None:
                totals.shots += shots
            if hits is not None:
                totals.hits += hits
            if overshots is not None:
                totals.overshots += overshots

            raw_ttk = self._cell(cells, columns['ttk'])
            ttk = parse_locale_number(raw_ttk.rstrip('sS')) if raw_ttk else None
            if ttk is not None and ttk > 0:
                totals.ttk_total += ttk
                totals.ttk_count += 1

            timestamp = self._cell(cells, columns['timestamp'])
            if timestamp:
                if totals.first_timestamp is None:
                    totals.first_timestamp = timestamp
                totals.last_timestamp = timestamp

        return totals

    def _build_run(self, summary: Mapping[str, str], events: EventTotals, filename: str) -> RawRun:
        mapped = map_fields(summary.items(), self.aliases)
        exact = map_fields(summary.items(), self.aliases, substring=False)

        hits = parse_integer(mapped.get('hits'))
        shots = parse_integer(mapped.get('shots'))
        overshots = parse_integer(mapped.get('overshots'))
        avg_ttk = parse_locale_number(mapped.get('avg_ttk'))
        duration = parse_duration(mapped.get('duration'))
        accuracy = parse_percent(mapped.get('accuracy'))

        # Kill rows beat loose label matches ("Total Overshots" for shots),
        # never an exact summary label that parsed
        if events.count:
            if (hits is None or 'hits' not in exact) and events.hits > 0:
                hits = events.hits
            if (shots is None or 'shots' not in exact) and events.shots > 0:
                shots = events.shots
            if (overshots is None or 'overshots' not in exact) and events.overshots > 0:
                overshots = events.overshots
            if (avg_ttk is None or 'avg_ttk' not in exact) and events.avg_ttk is not None:
                avg_ttk = events.avg_ttk
            if (duration is None or 'duration' not in exact) and events.fight_seconds is not None:
                duration = events.fight_seconds

        if (accuracy is None or accuracy > 100) and hits is not None and shots:
            accuracy = max(0.0, min(100.0, hits / shots * 100))

        scenario = (mapped.get('scenario') or '').strip() or scenario_from_filename(filename)

        run = RawRun(
            scenario=scenario,
            score=parse_locale_number(mapped.get('score')),
            hits=hits,
            misses=parse_integer(mapped.get('misses')),
            shots=shots,
            accuracy=accuracy,
            avg_ttk=avg_ttk,
            overshots=overshots,
            reloads=parse_integer(mapped.get('reloads')),
            fps_avg=parse_locale_number(mapped.get('fps_avg')),
            dpi=parse_locale_number(mapped.get('dpi')),
            sens_h=parse_locale_number(mapped.get('sens_h')),
            fov=parse_locale_number(mapped.get('fov')),
            duration=duration,
            played_at=parse_date(mapped.get('date'), filename),
            event_count=events.count or None,
        )
        return run.with_derived_metrics()
