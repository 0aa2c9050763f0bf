"""CLI I/O helpers for atomic output writing."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from core.render.models import AssemblyOutput


@dataclass(frozen=True)
class OutputPaths:
    """Fixed output artifact paths for a single run."""

    docx: Path
    report: Path


def build_output_paths(out: Path) -> OutputPaths:
    """Place the JSON report beside the generated document."""

    return OutputPaths(docx=out, report=out.with_name(f"{out.stem}.report.json"))


def existing_output_files(paths: OutputPaths) -> list[Path]:
    return [path for path in (paths.docx, paths.report) if path.exists()]


def load_payload(path: Path) -> Any:
    """Read the request payload JSON; shape validation happens in the pipeline."""

    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Payload file must be valid JSON: {path}") from exc


def write_assembly_output_atomic(paths: OutputPaths, output: AssemblyOutput) -> None:
    """Write the document and its report using temporary files + replace."""

    paths.docx.parent.mkdir(parents=True, exist_ok=True)
    _atomic_write_bytes(paths.docx, output.content)
    _atomic_write_json(paths.report, output.model_dump(mode="json", exclude={"content"}))


def write_error_report_atomic(
    paths: OutputPaths,
    *,
    error_code: str,
    error_message: str,
    stage: str,
    detail: dict[str, Any] | None = None,
) -> None:
    """Write a report carrying the failure instead of a document."""

    paths.report.parent.mkdir(parents=True, exist_ok=True)
    _atomic_write_json(
        paths.report,
        {
            "error": {
                "error_code": error_code,
                "error_message": error_message,
                "stage": stage,
                "detail": detail or {},
            }
        },
    )


def _atomic_write_json(path: Path, payload: dict[str, Any]) -> None:
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        delete=False,
        prefix=f"{path.name}.",
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        json.dump(payload, tmp, ensure_ascii=False, sort_keys=True, separators=(",", ":"))

    tmp_path.replace(path)


def _atomic_write_bytes(path: Path, content: bytes) -> None:
    fd, raw_tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f"{path.name}.",
        suffix=".tmp",
    )
    os.close(fd)
    tmp_path = Path(raw_tmp_path)

    try:
        tmp_path.write_bytes(content)
        tmp_path.replace(path)
    except Exception:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
        raise
