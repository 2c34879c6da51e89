"""Flat-file CSV tables with a fixed header."""
from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Sequence

logger = logging.getLogger(__name__)


class CsvTable:
    """A CSV file with a known header row.

    Values are written with ``csv.QUOTE_MINIMAL`` so delimiters, quotes and
    line breaks inside a field survive a write/read cycle unchanged. Files are
    opened with ``newline=""`` as the ``csv`` module requires for that.
    """

    def __init__(self, path: Path, fieldnames: Sequence[str]) -> None:
        self.path = path
        self.fieldnames = list(fieldnames)

    def ensure(self) -> None:
        """Create the parent directory and header row when missing."""

        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists() or self.path.stat().st_size == 0:
            self.rewrite([])

    def read(self) -> List[Dict[str, str]]:
        """Return every complete row; incomplete rows are skipped."""

        rows: List[Dict[str, str]] = []
        with self.path.open("r", encoding="utf-8", newline="") as stream:
            reader = csv.DictReader(stream)
            for line_number, row in enumerate(reader, start=2):
                if None in row or any(not row.get(name) for name in self.fieldnames):
                    logger.warning("Skipping invalid row %s in %s", line_number, self.path.name)
                    continue
                rows.append({name: row[name] for name in self.fieldnames})
        return rows

    def append(self, row: Dict[str, str]) -> None:
        with self.path.open("a", encoding="utf-8", newline="") as stream:
            csv.DictWriter(stream, fieldnames=self.fieldnames).writerow(row)

    def rewrite(self, rows: Iterable[Dict[str, str]]) -> None:
        """Replace the table contents, header included."""

        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8", newline="") as stream:
            writer = csv.DictWriter(stream, fieldnames=self.fieldnames)
            writer.writeheader()
            writer.writerows(rows)
        tmp_path.replace(self.path)


__all__ = ["CsvTable"]
