"""CLI entry point that runs the grade dashboard under uvicorn."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from gradeboard.core.config import DashboardConfig, load_dashboard_config

REPO_ROOT = Path(__file__).resolve().parents[2]
LOGGER = logging.getLogger("gradeboard.serve")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Serve the grade dashboard.")
    parser.add_argument(
        "--config",
        default="config/dashboard.yaml",
        help="Path to the dashboard YAML (default: config/dashboard.yaml)",
    )
    parser.add_argument(
        "--repo-root",
        default=str(REPO_ROOT),
        help=f"Base directory for relative paths (default: {REPO_ROOT})",
    )
    parser.add_argument("--host", default=None, help="Override server.host from the config.")
    parser.add_argument("--port", type=int, default=None, help="Override server.port from the config.")
    parser.add_argument(
        "--default-stuno",
        default=None,
        help="Student number used when /api/courses is called without ?stuno=.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable DEBUG logging.")
    parser.add_argument(
        "--check",
        action="store_true",
        help="Only validate the config and print the resolved settings.",
    )
    return parser


def _resolve_path(value: str | Path, *, base: Path | None = None) -> Path:
    candidate = Path(value).expanduser()
    if candidate.is_absolute():
        return candidate.resolve()
    anchor = Path(base).expanduser().resolve() if base is not None else Path.cwd()
    return (anchor / candidate).resolve()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings(args)
    except (FileNotFoundError, ValueError) as exc:
        parser.error(str(exc))

    if args.check:
        print(settings.model_dump_json(indent=2))
        return 0

    try:
        import uvicorn

        from apps.dashboard.main import DashboardServices, app, get_services, get_settings

        services = DashboardServices.from_config(settings)
        app.dependency_overrides[get_settings] = lambda: settings
        app.dependency_overrides[get_services] = lambda: services
        host, port = settings.server.host, settings.server.port
        LOGGER.info("Serving grade dashboard on http://%s:%s", host, port)
        uvicorn.run(app, host=host, port=port, log_level="debug" if args.verbose else "info")
    except Exception as exc:  # noqa: BLE001 - surface startup failures as exit code
        print(f"[serve] error: {exc}", file=sys.stderr)
        return 1
    return 0


def load_settings(args: argparse.Namespace) -> DashboardConfig:
    """Resolve the config file and apply CLI overrides on top of it."""

    repo_root = _resolve_path(args.repo_root)
    config_path = _resolve_path(args.config, base=repo_root)
    if config_path.exists():
        settings = load_dashboard_config(config_path)
    else:
        LOGGER.warning("Config %s not found; using defaults under %s", config_path, repo_root)
        settings = load_dashboard_config(base_dir=repo_root)

    server_updates = {}
    if args.host:
        server_updates["host"] = args.host
    if args.port is not None:
        server_updates["port"] = args.port
    updates: dict = {}
    if server_updates:
        updates["server"] = settings.server.model_copy(update=server_updates)
    if args.default_stuno:
        updates["default_stuno"] = args.default_stuno.strip()
    return settings.model_copy(update=updates) if updates else settings


if __name__ == "__main__":
    raise SystemExit(main())
