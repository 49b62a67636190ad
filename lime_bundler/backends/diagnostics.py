"""Turn engine stderr into BundleError / BundleWarning records."""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

from ..models import BundleError, BundleWarning

# "error: msg" (deno) and "✘ [ERROR] msg" / "X [ERROR] msg" (esbuild)
_HEADER = re.compile(
    r"^\s*(?:[^\w\s\[]\s*|X\s+)?(?:\[(?P<bracket>ERROR|WARNING)\]|(?P<plain>error|warning):)\s*(?P<message>.*)$",
    re.IGNORECASE,
)
# "    at file:///src/app.ts:3:7" (deno) and "    src/app.ts:3:7:" (esbuild)
_LOCATION = re.compile(r"^\s*(?:at\s+)?(?P<file>(?:file://)?[^\s:]+(?::[\\/][^\s:]*)?):(?P<line>\d+):(?P<column>\d+):?\s*$")
_ANSI = re.compile(r"\x1b\[[0-9;]*m")

_Record = Tuple[str, str, Optional[str], Optional[int], Optional[int]]


def _strip_file_scheme(path: str) -> str:
    return path[len("file://") :] if path.startswith("file://") else path


def parse_diagnostics(stderr: str) -> Tuple[List[BundleError], List[BundleWarning]]:
    """Split stderr into errors and warnings.

    A header line opens a diagnostic; the first location line that follows
    supplies its file, line and column.
    """

    records: List[_Record] = []
    current: Optional[_Record] = None

    for raw_line in _ANSI.sub("", stderr).splitlines():
        header = _HEADER.match(raw_line)
        if header is not None:
            if current is not None:
                records.append(current)
            level = (header.group("bracket") or header.group("plain")).lower()
            current = (level, header.group("message").strip(), None, None, None)
            continue
        if current is None or current[2] is not None:
            continue
        location = _LOCATION.match(raw_line)
        if location is not None:
            current = (
                current[0],
                current[1],
                _strip_file_scheme(location.group("file")),
                int(location.group("line")),
                int(location.group("column")),
            )
    if current is not None:
        records.append(current)

    errors: List[BundleError] = []
    warnings: List[BundleWarning] = []
    for level, message, file, line, column in records:
        if level == "error":
            errors.append(BundleError(message=message or "Unknown error", file=file, line=line, column=column))
        else:
            warnings.append(BundleWarning(message=message, file=file, line=line, column=column))
    return errors, warnings


def failure_errors(stderr: str, returncode: int, engine: str) -> List[BundleError]:
    """Errors for a failed engine run; never empty."""

    errors, _ = parse_diagnostics(stderr)
    if errors:
        return errors
    tail = stderr.strip().splitlines()[-1].strip() if stderr.strip() else ""
    message = tail or f"{engine} exited with code {returncode}"
    return [BundleError(message=message)]
