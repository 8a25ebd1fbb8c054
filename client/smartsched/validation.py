"""
Checks that a job request honours its invariants before it is submitted,
plus an optional header check for spreadsheets holding subject rows.
"""
from pathlib import Path
from typing import Optional

import openpyxl

from .errors import InvalidJobRequest
from .models import JobRequest

MAX_ASSIGNMENTS = 10


class SchemaValidator:
    """
    Validates Excel files against a schema.
    Example schema:
    {
        "required_sheets": ["Subjects"],
        "sheets": {
            "Subjects": {"required_headers": ["subjectCode", "subjectName"]}
        }
    }
    An empty "required_sheets" list means the first sheet is checked
    against the "*" entry of "sheets", if any.
    """

    def __init__(self, schema: Optional[dict] = None):
        self.schema = schema or {}

    def validate(self, file_path: Path) -> tuple[bool, str]:
        """
        Validate a file against the schema.
        Returns (is_valid, error_message).
        """
        try:
            wb = openpyxl.load_workbook(file_path, read_only=True, data_only=True)
        except Exception as e:
            return False, f"Cannot open file: {e}"

        try:
            # Check required sheets
            required_sheets = self.schema.get("required_sheets", [])
            missing = set(required_sheets) - set(wb.sheetnames)
            if missing:
                return False, f"Missing sheets: {', '.join(sorted(missing))}"

            # Check sheet headers
            sheets_config = dict(self.schema.get("sheets", {}))
            if "*" in sheets_config and wb.sheetnames:
                sheets_config[wb.sheetnames[0]] = sheets_config.pop("*")
            for sheet_name, config in sheets_config.items():
                if sheet_name not in wb.sheetnames:
                    continue
                ws = wb[sheet_name]
                required_headers = config.get("required_headers", [])
                if required_headers:
                    first_row = next(ws.iter_rows(min_row=1, max_row=1, values_only=True), ())
                    missing_headers = set(required_headers) - {c for c in first_row if c is not None}
                    if missing_headers:
                        return False, f"Sheet '{sheet_name}': missing headers: {', '.join(sorted(missing_headers))}"
        finally:
            wb.close()

        return True, ""


ASSIGNMENT_SCHEMA = {
    "required_sheets": [],
    "sheets": {"*": {"required_headers": ["subjectCode", "subjectName"]}},
}

validator = SchemaValidator(ASSIGNMENT_SCHEMA)


def validate_job_request(request: JobRequest) -> JobRequest:
    items = request.assignments
    if not items:
        raise InvalidJobRequest("At least one subject is required.")
    if len(items) > MAX_ASSIGNMENTS:
        raise InvalidJobRequest(f"At most {MAX_ASSIGNMENTS} subjects can be scheduled at once.")
    section_ids = {a.section_id for a in items}
    if len(section_ids) != 1 or not next(iter(section_ids)):
        raise InvalidJobRequest("Please select a section.")
    for index, a in enumerate(items, start=1):
        if not a.subject_code or not a.subject_name:
            raise InvalidJobRequest(f"Subject {index}: Subject Code and Name are required for all subjects.")
        if isinstance(a.weekly_hours, bool) or not isinstance(a.weekly_hours, int) or a.weekly_hours <= 0:
            raise InvalidJobRequest(f"Subject {index}: hours per week must be a positive integer.")
    return request
