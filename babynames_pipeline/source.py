"""Locate the downloaded dataset and stream its rows lazily."""

from __future__ import annotations

import csv
import logging
import zipfile
from pathlib import Path
from typing import Dict, Iterator

from .exceptions import SourceReadError
from .logging_utils import get_logger, log_json

logger = get_logger(__name__)


def find_dataset_file(download_dir: str | Path) -> Path:
    """Return the dataset in ``download_dir``: a ZIP wins over a bare CSV."""
    d = Path(download_dir)
    if not d.is_dir():
        raise SourceReadError(f"Download directory not found: {d}")

    files = sorted(p for p in d.iterdir() if p.is_file())
    for suffix in (".zip", ".csv"):
        for p in files:
            if p.suffix.lower() == suffix:
                return p

    raise SourceReadError(f"No CSV or ZIP file found in {d}")


def extract_csv(zip_path: str | Path, dest_dir: str | Path | None = None) -> Path:
    zp = Path(zip_path)
    dest = Path(dest_dir) if dest_dir is not None else zp.parent
    try:
        with zipfile.ZipFile(zp) as zf:
            member = next(
                (i for i in zf.infolist() if not i.is_dir() and i.filename.lower().endswith(".csv")),
                None,
            )
            if member is None:
                raise SourceReadError(f"No CSV file found inside {zp}")

            # Flatten any directory prefix inside the archive.
            target = dest / Path(member.filename).name
            with zf.open(member) as src, target.open("wb") as out:
                while True:
                    chunk = src.read(1 << 20)
                    if not chunk:
                        break
                    out.write(chunk)
    except (OSError, zipfile.BadZipFile) as e:
        raise SourceReadError(f"Failed to extract {zp}: {e}") from e

    log_json(logger, logging.INFO, "zip_extracted", archive=str(zp), csv=str(target))
    return target


def resolve_csv_path(download_dir: str | Path) -> Path:
    found = find_dataset_file(download_dir)
    if found.suffix.lower() == ".zip":
        return extract_csv(found)
    return found


def iter_csv_rows(path: str | Path, encoding: str = "utf-8") -> Iterator[Dict[str, str]]:
    """Yield each CSV row as a column -> text mapping.

    The file is read one row at a time. I/O and CSV framing errors surface as
    ``SourceReadError`` from the iterator itself.
    """
    p = Path(path)
    try:
        f = p.open("r", encoding=encoding, newline="")
    except OSError as e:
        raise SourceReadError(f"Cannot open {p}: {e}") from e

    with f:
        reader = csv.DictReader(f)
        while True:
            try:
                row = next(reader)
            except StopIteration:
                return
            except (OSError, csv.Error, UnicodeDecodeError) as e:
                raise SourceReadError(f"Failed reading {p} near line {reader.line_num}: {e}") from e
            yield row
