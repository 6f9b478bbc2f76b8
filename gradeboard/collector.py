"""Two-stage collection pipeline: scrape a student's grades, then analyze them."""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Sequence

from gradeboard.cache import Records, ResultCache
from gradeboard.core.config import CollectorConfig
from gradeboard.core.errors import DataUnavailableError, ParseError, SubprocessFailureError
from gradeboard.core.history import CollectionEvent, CollectionHistory
from gradeboard.store import AnalysisStore, validate_stuno

LOGGER = logging.getLogger("gradeboard.collector")

DATA_UNAVAILABLE_MESSAGE = "분석 데이터를 로드할 수 없습니다"


@dataclass(frozen=True)
class CollectionStage:
    """External command run with the student number appended as its last argument."""

    name: str
    command: Sequence[str]
    timeout_seconds: float | None = None

    def argv(self, stuno: str) -> List[str]:
        return [*self.command, stuno]

    @property
    def label(self) -> str:
        # "node index.js" -> "index.js"
        return Path(self.command[-1]).name if self.command else self.name


@dataclass
class StageResult:
    stage: str
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass
class CollectionResult:
    cached: bool
    count: int
    stages: List[StageResult] = field(default_factory=list)


@dataclass
class _InFlight:
    lock: threading.Lock = field(default_factory=threading.Lock)
    waiters: int = 0


def load_courses(store: AnalysisStore, cache: ResultCache, stuno: str) -> Records | None:
    """Cached course records for ``stuno``, reading and caching the file on a miss."""

    records = cache.get(stuno)
    if records is not None:
        return records
    records = store.load(stuno)
    if records is not None:
        cache.put(stuno, records)
    return records


def run_stage(stage: CollectionStage, stuno: str, *, cwd: Path | None = None) -> StageResult:
    """Run one stage to completion; raise ``SubprocessFailureError`` unless it exits 0."""

    argv = stage.argv(stuno)
    LOGGER.info("Starting %s stage: %s", stage.name, " ".join(argv))
    started = time.monotonic()
    try:
        proc = subprocess.run(
            argv,
            cwd=cwd,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            timeout=stage.timeout_seconds,
        )
    except subprocess.TimeoutExpired as exc:
        stderr = _as_text(exc.stderr)
        raise SubprocessFailureError(
            f"{stage.label} 실행 실패: timed out after {stage.timeout_seconds}s",
            stage=stage.name,
            stderr=stderr,
        ) from exc
    except OSError as exc:
        raise SubprocessFailureError(
            f"{stage.label} 실행 실패: {exc}",
            stage=stage.name,
            stderr=str(exc),
        ) from exc

    result = StageResult(
        stage=stage.name,
        returncode=proc.returncode,
        stdout=proc.stdout or "",
        stderr=proc.stderr or "",
        duration_seconds=time.monotonic() - started,
    )
    for line in result.stdout.splitlines():
        LOGGER.info("[%s] %s", stage.label, line)
    for line in result.stderr.splitlines():
        LOGGER.warning("[%s ERROR] %s", stage.label, line)

    if not result.ok:
        raise SubprocessFailureError(
            f"{stage.label} 실행 실패: {result.stderr}",
            stage=stage.name,
            returncode=result.returncode,
            stderr=result.stderr,
        )
    LOGGER.info("%s stage finished in %.2fs", stage.name, result.duration_seconds)
    return result


class CollectionOrchestrator:
    """Runs the collect -> analyze pipeline for a student and refreshes the cache."""

    def __init__(
        self,
        store: AnalysisStore,
        cache: ResultCache,
        stages: Sequence[CollectionStage],
        *,
        cwd: Path | None = None,
        history: CollectionHistory | None = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.stages = list(stages)
        self.cwd = cwd
        self.history = history
        self._guard = threading.Lock()
        self._inflight: dict[str, _InFlight] = {}

    @classmethod
    def from_config(
        cls,
        config: CollectorConfig,
        store: AnalysisStore,
        cache: ResultCache,
    ) -> "CollectionOrchestrator":
        stages = [
            CollectionStage("collect", config.collect_command, config.timeout_seconds),
            CollectionStage("analyze", config.analyze_command, config.timeout_seconds),
        ]
        history = CollectionHistory(config.history_path) if config.history_path else None
        return cls(store, cache, stages, cwd=config.workdir, history=history)

    def collect(self, stuno: str) -> CollectionResult:
        stuno = validate_stuno(stuno)
        cached = self.cache.get(stuno)
        if cached is not None:
            self._record(stuno, "cached", count=len(cached))
            return CollectionResult(cached=True, count=len(cached))

        with self._student_slot(stuno):
            # Another request may have finished the pipeline while we waited.
            cached = self.cache.get(stuno)
            if cached is not None:
                self._record(stuno, "cached", count=len(cached))
                return CollectionResult(cached=True, count=len(cached))
            return self._run_pipeline(stuno)

    def _run_pipeline(self, stuno: str) -> CollectionResult:
        started = time.monotonic()
        results: List[StageResult] = []
        try:
            for stage in self.stages:
                results.append(run_stage(stage, stuno, cwd=self.cwd))

            self.cache.invalidate(stuno)
            records = load_courses(self.store, self.cache, stuno)
            if records is None:
                raise DataUnavailableError(DATA_UNAVAILABLE_MESSAGE)
        except SubprocessFailureError as exc:
            LOGGER.error("Collection for %s failed at %s stage (exit=%s)", stuno, exc.stage, exc.returncode)
            self._record(
                stuno,
                "failed",
                stage=exc.stage,
                returncode=exc.returncode,
                duration=time.monotonic() - started,
                message=exc.message,
            )
            raise
        except (DataUnavailableError, ParseError) as exc:
            LOGGER.error("Collection for %s succeeded but analysis data is unusable: %s", stuno, exc.message)
            self._record(stuno, "failed", duration=time.monotonic() - started, message=exc.message)
            raise

        duration = time.monotonic() - started
        LOGGER.info("Collected %d course records for %s in %.2fs", len(records), stuno, duration)
        self._record(stuno, "collected", count=len(records), duration=duration)
        return CollectionResult(cached=False, count=len(records), stages=results)

    @contextmanager
    def _student_slot(self, stuno: str) -> Iterator[None]:
        with self._guard:
            slot = self._inflight.setdefault(stuno, _InFlight())
            slot.waiters += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._guard:
                slot.waiters -= 1
                if slot.waiters == 0:
                    self._inflight.pop(stuno, None)

    def _record(
        self,
        stuno: str,
        outcome: str,
        *,
        stage: str | None = None,
        returncode: int | None = None,
        count: int | None = None,
        duration: float = 0.0,
        message: str | None = None,
    ) -> None:
        if self.history is None:
            return
        try:
            self.history.log(
                CollectionEvent(
                    stuno=stuno,
                    outcome=outcome,
                    stage=stage,
                    returncode=returncode,
                    count=count,
                    duration_seconds=duration,
                    message=message,
                )
            )
        except OSError as exc:
            LOGGER.warning("Unable to append collection history to %s: %s", self.history.output_path, exc)


def _as_text(raw: bytes | str | None) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw


__all__ = [
    "CollectionOrchestrator",
    "CollectionResult",
    "CollectionStage",
    "DATA_UNAVAILABLE_MESSAGE",
    "StageResult",
    "load_courses",
    "run_stage",
]
