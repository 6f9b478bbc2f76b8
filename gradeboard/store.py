"""Read-only access to the per-student JSON files written by the collection scripts."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List

from pydantic import BaseModel

from gradeboard.core.errors import ClientInputError, ParseError

LOGGER = logging.getLogger("gradeboard.store")

STUNO_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,32}$")


class SemesterRank(BaseModel):
    """Overall rank for one semester, keyed the way the grades file spells it."""

    YY: Any = None
    SHTM_CD: Any = None
    SUST_RANK: Any = None


def validate_stuno(stuno: str | None) -> str:
    """Return the trimmed identifier or raise ``ClientInputError``."""

    if stuno is None or not str(stuno).strip():
        raise ClientInputError("학번을 입력해주세요")
    cleaned = str(stuno).strip()
    if not STUNO_PATTERN.match(cleaned):
        raise ClientInputError(f"Invalid student number: {cleaned!r}")
    return cleaned


class AnalysisStore:
    def __init__(self, analysis_dir: Path, grades_dir: Path) -> None:
        self.analysis_dir = analysis_dir
        self.grades_dir = grades_dir

    def analysis_path(self, stuno: str) -> Path:
        return self.analysis_dir / f"analysis_{validate_stuno(stuno)}.json"

    def grades_path(self, stuno: str) -> Path:
        return self.grades_dir / f"grades_{validate_stuno(stuno)}.json"

    def load(self, stuno: str) -> List[Dict[str, Any]] | None:
        """Parsed course records for ``stuno``, or None when the file is absent."""

        return _read_json_array(self.analysis_path(stuno))

    def load_ranks(self, stuno: str) -> List[SemesterRank] | None:
        """Semester ranks for ``stuno`` projected to year/semester/rank, or None."""

        rows = _read_json_array(self.grades_path(stuno))
        if rows is None:
            return None
        ranks: List[SemesterRank] = []
        for row in rows:
            if not isinstance(row, dict):
                raise ParseError(f"Unexpected grades entry in {self.grades_path(stuno)}: {row!r}")
            ranks.append(
                SemesterRank(
                    YY=row.get("YY"),
                    SHTM_CD=row.get("SHTM_CD"),
                    SUST_RANK=row.get("SUST_RANK"),
                )
            )
        return ranks


def _read_json_array(path: Path) -> List[Any] | None:
    if not path.exists():
        LOGGER.debug("No data file at %s", path)
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ParseError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(payload, list):
        raise ParseError(f"Expected array at root of {path}, received {type(payload).__name__}")
    return payload


__all__ = ["AnalysisStore", "STUNO_PATTERN", "SemesterRank", "validate_stuno"]
