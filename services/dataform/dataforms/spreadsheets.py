"""Read the first sheet of an uploaded workbook into ordered row mappings."""
from __future__ import annotations

import csv
import io
import logging
import zipfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence, Set

import xlrd
from openpyxl import load_workbook
from xlrd.compdoc import CompDocError
from xlrd.xldate import XLDateError

from .exceptions import UnsupportedFileError

logger = logging.getLogger(__name__)

XLSX_EXTENSIONS = {".xlsx", ".xlsm"}
XLS_EXTENSIONS = {".xls"}
CSV_EXTENSIONS = {".csv"}
SUPPORTED_EXTENSIONS = XLSX_EXTENSIONS | XLS_EXTENSIONS | CSV_EXTENSIONS


def _header_keys(raw_headers: Sequence[Any]) -> List[str]:
    keys: List[str] = []
    taken: Set[str] = set()
    suffixes: Dict[str, int] = {}
    for raw in raw_headers:
        base = "" if raw is None else str(raw).strip()
        base = base or "__EMPTY"
        key = base
        suffix = suffixes.get(base, 0)
        while key in taken:
            suffix += 1
            key = f"{base}_{suffix}"
        suffixes[base] = suffix
        taken.add(key)
        keys.append(key)
    return keys


def _rows_from_grid(grid: Iterable[Sequence[Any]]) -> List[Dict[str, Any]]:
    iterator = iter(grid)
    headers = next(iterator, None)
    if headers is None:
        return []
    keys = _header_keys(headers)

    rows: List[Dict[str, Any]] = []
    for values in iterator:
        row: Dict[str, Any] = {}
        has_data = False
        for index, key in enumerate(keys):
            value = values[index] if index < len(values) else None
            if isinstance(value, str):
                value = value.strip()
            if value is None or value == "":
                value = ""
            else:
                has_data = True
            row[key] = value
        if has_data:
            rows.append(row)
    return rows


def read_xlsx(data: bytes) -> List[Dict[str, Any]]:
    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise UnsupportedFileError("The uploaded workbook could not be read.") from exc
    try:
        sheet = workbook.worksheets[0]
        return _rows_from_grid(sheet.iter_rows(values_only=True))
    finally:
        workbook.close()


def _xls_value(cell: Any, datemode: int) -> Any:
    if cell.ctype == xlrd.XL_CELL_DATE:
        try:
            return xlrd.xldate_as_datetime(cell.value, datemode)
        except (XLDateError, OverflowError, ValueError):
            return cell.value
    if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
        return None
    return cell.value


def read_xls(data: bytes) -> List[Dict[str, Any]]:
    try:
        workbook = xlrd.open_workbook(file_contents=data, on_demand=True)
    except (xlrd.XLRDError, CompDocError, OSError, ValueError) as exc:
        raise UnsupportedFileError("The uploaded workbook could not be read.") from exc
    try:
        sheet = workbook.sheet_by_index(0)
        grid = (
            [_xls_value(cell, workbook.datemode) for cell in sheet.row(index)] for index in range(sheet.nrows)
        )
        return _rows_from_grid(grid)
    finally:
        workbook.release_resources()


def read_csv(data: bytes) -> List[Dict[str, Any]]:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = data.decode("latin-1")
    return _rows_from_grid(csv.reader(io.StringIO(text)))


def read_rows(file_name: str, data: bytes) -> List[Dict[str, Any]]:
    """Parse an upload into rows of ``{header: value}``.

    The first row holds the headers, blank cells become ``""`` and rows with
    no data at all are skipped. Only the first worksheet is read.
    """

    extension = Path(file_name or "").suffix.lower()
    if extension not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFileError()
    if extension in CSV_EXTENSIONS:
        rows = read_csv(data)
    elif extension in XLS_EXTENSIONS:
        rows = read_xls(data)
    else:
        rows = read_xlsx(data)
    logger.debug("Parsed %s data rows from %s", len(rows), file_name)
    return rows


def write_csv(rows: Iterable[Sequence[Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\r\n")
    writer.writerows(rows)
    return buffer.getvalue()
