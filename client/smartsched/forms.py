"""
Builds validated job requests from form-like rows, JSON files or
spreadsheets.
"""
from __future__ import annotations
import math
from pathlib import Path
from typing import Any, Iterable, Mapping

import orjson
import pandas as pd

from .errors import InvalidJobRequest
from .models import JobRequest, SubjectAssignment
from .validation import validate_job_request, validator

DEFAULT_WEEKLY_HOURS = 3
TRUE_STRINGS = {"1", "true", "yes", "y", "x", "si", "sì"}


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def _text(value: Any) -> str:
    if _blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _hours(value: Any, index: int) -> int:
    if _blank(value):
        return DEFAULT_WEEKLY_HOURS
    try:
        as_float = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidJobRequest(f"Subject {index}: invalid hours per week {value!r}") from e
    if not as_float.is_integer():
        raise InvalidJobRequest(f"Subject {index}: hours per week must be a whole number")
    return int(as_float)


def _flag(value: Any) -> bool:
    if _blank(value):
        return False
    if isinstance(value, str):
        return value.strip().lower() in TRUE_STRINGS
    return bool(value)


def build_job_request(section_id: str, rows: Iterable[Mapping[str, Any]]) -> JobRequest:
    section = _text(section_id)
    assignments = []
    for index, row in enumerate(rows, start=1):
        hours = row.get("weeklyHours", row.get("classHoursPerWeek"))
        assignments.append(SubjectAssignment(
            subject_code=_text(row.get("subjectCode")),
            subject_name=_text(row.get("subjectName")),
            teacher_id=_text(row.get("teacherId")) or None,
            weekly_hours=_hours(hours, index),
            is_major=_flag(row.get("isMajor")),
            section_id=section,
        ))
    return validate_job_request(JobRequest(assignments=tuple(assignments)))


def read_rows(path: Path) -> list[dict]:
    path = Path(path)
    ext = path.suffix.lower()
    if ext == ".json":
        data = orjson.loads(path.read_bytes())
        if not isinstance(data, list):
            raise InvalidJobRequest(f"{path.name}: expected a list of subjects")
        return [dict(r) for r in data]
    if ext == ".xlsx":
        is_valid, error_msg = validator.validate(path)
        if not is_valid:
            raise InvalidJobRequest(f"Schema validation failed for {path.name}: {error_msg}")
        df = pd.read_excel(path, sheet_name=0, dtype=object)
        df = df.dropna(how="all")
        return df.to_dict(orient="records")
    raise InvalidJobRequest(f"Unsupported file type: {ext}")


def load_job_request(path: Path, section_id: str) -> JobRequest:
    return build_job_request(section_id, read_rows(path))
