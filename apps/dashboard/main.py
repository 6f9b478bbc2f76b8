"""FastAPI app serving the grade dashboard page and its JSON endpoints."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, List

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from gradeboard import get_version
from gradeboard.cache import Records, ResultCache
from gradeboard.collector import CollectionOrchestrator, load_courses
from gradeboard.core.config import CONFIG_ENV_VAR, DashboardConfig, load_dashboard_config
from gradeboard.core.errors import ClientInputError, GradeboardError, NotFoundError, ParseError
from gradeboard.store import AnalysisStore, SemesterRank, validate_stuno

LOGGER = logging.getLogger("gradeboard.api")

REPO_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_PATH = REPO_ROOT / "config" / "dashboard.yaml"
TEMPLATES_DIR = Path(__file__).resolve().with_name("templates")
INDEX_PATTERN = re.compile(r"^-?[0-9]+$")

MISSING_STUNO_MESSAGE = "학번을 입력해주세요"
MISSING_STUDENT_MESSAGE = "학생 데이터를 로드할 수 없습니다"
MISSING_COURSE_MESSAGE = "과목을 찾을 수 없습니다"
MISSING_RANKS_MESSAGE = "석차 데이터를 찾을 수 없습니다"
BROKEN_RANKS_MESSAGE = "석차 데이터 읽기 실패"
BROKEN_ANALYSIS_MESSAGE = "분석 데이터 읽기 실패"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


@lru_cache
def get_settings() -> DashboardConfig:
    override = os.getenv(CONFIG_ENV_VAR)
    if override:
        return load_dashboard_config(Path(override))
    if DEFAULT_CONFIG_PATH.exists():
        return load_dashboard_config(DEFAULT_CONFIG_PATH)
    return load_dashboard_config(base_dir=REPO_ROOT)


@dataclass
class DashboardServices:
    """Process-wide store, cache, and orchestrator shared by every request."""

    store: AnalysisStore
    cache: ResultCache
    collector: CollectionOrchestrator

    @classmethod
    def from_config(cls, settings: DashboardConfig) -> "DashboardServices":
        store = AnalysisStore(settings.data.analysis_dir, settings.data.grades_dir)
        cache = ResultCache(
            max_entries=settings.cache.max_entries,
            ttl_seconds=settings.cache.ttl_seconds,
        )
        collector = CollectionOrchestrator.from_config(settings.collector, store, cache)
        return cls(store=store, cache=cache, collector=collector)

    def load_courses(self, stuno: str) -> Records | None:
        return load_courses(self.store, self.cache, stuno)


@lru_cache
def get_services() -> DashboardServices:
    return DashboardServices.from_config(get_settings())


class CollectResponse(BaseModel):
    success: bool = True
    cached: bool
    count: int


class CourseSummary(BaseModel):
    """List-view projection of one course record, tagged with its array index."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    course_name: Any = Field(default=None, alias="courseName")
    instructor: Any = None
    division: Any = None
    yy: Any = None
    shtm_cd: Any = Field(default=None, alias="shtmCd")
    my_score: Any = Field(default=None, alias="myScore")
    my_rank: Any = Field(default=None, alias="myRank")
    total_students: Any = Field(default=None, alias="totalStudents")


class HealthResponse(BaseModel):
    status: str
    version: str
    cached_students: int


app = FastAPI(title="Grade Dashboard API", version=get_version())


@app.get("/health", response_model=HealthResponse)
def health(services: DashboardServices = Depends(get_services)) -> HealthResponse:
    return HealthResponse(status="ok", version=get_version(), cached_students=len(services.cache))


@app.get("/api/collect/{stuno}", response_model=CollectResponse)
def collect(stuno: str, services: DashboardServices = Depends(get_services)) -> CollectResponse:
    try:
        result = services.collector.collect(stuno)
    except ParseError as exc:
        LOGGER.error("Unreadable analysis file after collecting %s: %s", stuno, exc.message)
        raise ParseError(BROKEN_ANALYSIS_MESSAGE) from exc
    return CollectResponse(cached=result.cached, count=result.count)


@app.get("/api/courses", response_model=List[CourseSummary])
def list_courses(
    stuno: str | None = Query(None, description="Student number; falls back to default_stuno"),
    settings: DashboardConfig = Depends(get_settings),
    services: DashboardServices = Depends(get_services),
) -> List[CourseSummary]:
    records = _require_courses(_resolve_stuno(stuno, settings), services)
    return [summarize_course(index, record) for index, record in enumerate(records)]


@app.get("/api/courses/{course_id}")
def get_course(
    course_id: str,
    stuno: str | None = Query(None, description="Student number; falls back to default_stuno"),
    settings: DashboardConfig = Depends(get_settings),
    services: DashboardServices = Depends(get_services),
) -> Any:
    records = _require_courses(_resolve_stuno(stuno, settings), services)
    index = _parse_index(course_id)
    if index is None or not 0 <= index < len(records):
        raise NotFoundError(MISSING_COURSE_MESSAGE)
    return records[index]


@app.get("/api/grades/{stuno}", response_model=List[SemesterRank])
def list_semester_ranks(stuno: str, services: DashboardServices = Depends(get_services)) -> List[SemesterRank]:
    try:
        ranks = services.store.load_ranks(stuno)
    except ParseError as exc:
        LOGGER.error("Unreadable grades file for %s: %s", stuno, exc.message)
        raise ParseError(BROKEN_RANKS_MESSAGE) from exc
    if ranks is None:
        raise NotFoundError(MISSING_RANKS_MESSAGE)
    return ranks


@app.get("/", response_class=HTMLResponse)
def index(request: Request, settings: DashboardConfig = Depends(get_settings)) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "show_rank_panel": settings.show_rank_panel,
            "default_stuno": settings.default_stuno,
        },
    )


@app.get("/static/{asset_path:path}", response_class=FileResponse)
def static_asset(asset_path: str, settings: DashboardConfig = Depends(get_settings)) -> FileResponse:
    static_root = settings.data.static_dir
    if static_root is None or not static_root.is_dir():
        raise NotFoundError(f"Static asset {asset_path} not found")
    root = static_root.resolve()
    candidate = (root / asset_path).resolve()
    try:
        candidate.relative_to(root)
    except ValueError as exc:
        raise NotFoundError(f"Static asset {asset_path} not found") from exc
    if not candidate.is_file():
        raise NotFoundError(f"Static asset {asset_path} not found")
    return FileResponse(candidate)


def summarize_course(index: int, record: Any) -> CourseSummary:
    if not isinstance(record, dict):
        return CourseSummary(id=index)
    my_data = record.get("myData") if isinstance(record.get("myData"), dict) else {}
    return CourseSummary(
        id=index,
        course_name=record.get("KOR_SBJT_NM"),
        instructor=record.get("STF_NM"),
        division=record.get("CPTN_DIV_NM"),
        yy=record.get("YY"),
        shtm_cd=record.get("SHTM_CD"),
        my_score=my_data.get("totalScore"),
        my_rank=record.get("rank"),
        total_students=record.get("totalStudents"),
    )


def _resolve_stuno(stuno: str | None, settings: DashboardConfig) -> str:
    candidate = stuno.strip() if isinstance(stuno, str) else None
    if not candidate:
        candidate = settings.default_stuno
    if not candidate:
        raise ClientInputError(MISSING_STUNO_MESSAGE)
    return validate_stuno(candidate)


def _require_courses(stuno: str, services: DashboardServices) -> Records:
    try:
        records = services.load_courses(stuno)
    except ParseError as exc:
        LOGGER.error("Unreadable analysis file for %s: %s", stuno, exc.message)
        raise ParseError(BROKEN_ANALYSIS_MESSAGE) from exc
    if records is None:
        raise NotFoundError(MISSING_STUDENT_MESSAGE)
    return records


def _parse_index(raw: str) -> int | None:
    if not INDEX_PATTERN.match(raw.strip()):
        return None
    return int(raw.strip())


@app.exception_handler(GradeboardError)
async def gradeboard_error_handler(request: Request, exc: GradeboardError) -> JSONResponse:
    level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    LOGGER.log(level, "%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(_: Any, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
