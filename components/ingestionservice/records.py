"""
Flattening of uploaded XML and Excel workbooks into chart-ready records.

XML: each child of the document root is one record. A record is a flat mapping
from dotted path (``order.customer.name``) to a scalar; numeric text becomes
a float so axis selection does not need to re-parse values per chart.

Workbooks: the first sheet is read, its first non-empty row gives the keys and
every following non-empty row is one record.
"""

from __future__ import annotations

import io
import re
import zipfile
from collections import Counter
from datetime import date, datetime, time
from typing import Any, Dict, Iterable, List, Optional
from xml.etree import ElementTree as ET

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .contracts import FieldMap, Scalar
from .errors import ValidationError

_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


def _local_name(tag: str) -> str:
    # "{namespace}tag" -> "tag"
    return tag.rsplit("}", 1)[-1]


def coerce_scalar(text: str) -> Scalar:
    value = text.strip()
    if _NUMBER_RE.match(value):
        return float(value)
    return value


def _flatten_into(elem: ET.Element, path: str, out: Dict[str, Scalar]) -> None:
    for name, value in elem.attrib.items():
        out[f"{path}.{_local_name(name)}"] = coerce_scalar(value)

    children = list(elem)
    if not children:
        text = (elem.text or "").strip()
        if text:
            out[path] = coerce_scalar(text)
        return

    counts = Counter(_local_name(c.tag) for c in children)
    seen: Counter = Counter()
    for child in children:
        name = _local_name(child.tag)
        if counts[name] > 1:
            child_path = f"{path}.{name}.{seen[name]}"
            seen[name] += 1
        else:
            child_path = f"{path}.{name}"
        _flatten_into(child, child_path, out)


def flatten_element(elem: ET.Element) -> FieldMap:
    """Flatten one record element; paths are relative to the record itself."""
    out: Dict[str, Scalar] = {}
    name = _local_name(elem.tag)
    _flatten_into(elem, name, out)
    prefix = name + "."
    return {(k[len(prefix):] if k.startswith(prefix) else k): v for k, v in out.items()}


def parse_xml_records(raw: bytes) -> List[FieldMap]:
    try:
        root = ET.fromstring(raw)
    except ET.ParseError as e:
        raise ValidationError("Failed to parse XML content", {"error": str(e)}) from e

    children = list(root)
    if not children:
        record = flatten_element(root)
        return [record] if record else []
    return [flatten_element(child) for child in children]


def _cell_scalar(value: Any) -> Optional[Scalar]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    text = str(value).strip()
    return coerce_scalar(text) if text else None


def _header_keys(row) -> List[Optional[str]]:
    keys: List[Optional[str]] = []
    seen: Counter = Counter()
    for cell in row:
        name = "" if cell is None else str(cell).strip()
        if not name:
            keys.append(None)
            continue
        # repeated headers become name, name.1, name.2 ...
        keys.append(f"{name}.{seen[name]}" if seen[name] else name)
        seen[name] += 1
    return keys


def parse_spreadsheet_records(raw: bytes) -> List[FieldMap]:
    try:
        wb = load_workbook(io.BytesIO(raw), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as e:
        raise ValidationError("Failed to parse workbook content", {"error": str(e)}) from e

    try:
        if not wb.worksheets:
            return []
        keys: Optional[List[Optional[str]]] = None
        records: List[FieldMap] = []
        for row in wb.worksheets[0].iter_rows(values_only=True):
            if all(v is None or (isinstance(v, str) and not v.strip()) for v in row):
                continue
            if keys is None:
                keys = _header_keys(row)
                continue
            record: Dict[str, Scalar] = {}
            for key, value in zip(keys, row):
                scalar = _cell_scalar(value)
                if key is not None and scalar is not None:
                    record[key] = scalar
            if record:
                records.append(record)
        return records
    finally:
        wb.close()


def field_paths(records: Iterable[FieldMap]) -> List[str]:
    """Union of all paths, in first-seen order."""
    seen: Dict[str, None] = {}
    for record in records:
        for key in record:
            seen.setdefault(key, None)
    return list(seen)
