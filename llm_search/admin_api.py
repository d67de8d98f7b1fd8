# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""Local admin HTTP API for inspecting and maintaining the search index."""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from .config import SearchConfig, get_config
from .engine import SearchEngine
from .errors import ProviderUnavailableError, SearchConfigError, SearchError

logger = logging.getLogger("llm_search_admin")

_ENGINE: Optional[SearchEngine] = None
_ENGINE_LOCK = threading.Lock()


def _get_admin_cfg() -> Dict[str, Any]:
    config = get_config()
    return {
        "enabled": config.admin_enabled,
        "host": config.admin_host,
        "port": config.admin_port,
        "api_key": config.admin_api_key,
        "allowed_ips": config.admin_allowed_ips,
    }


def _get_engine() -> SearchEngine:
    """Return the process-wide engine, building it from config on first use."""
    global _ENGINE
    with _ENGINE_LOCK:
        if _ENGINE is None:
            config = get_config()
            _ENGINE = SearchEngine(SearchConfig.from_config(config), config.repository_root)
        return _ENGINE


def _is_allowed_ip(ip: Optional[str], cfg: Dict[str, Any]) -> bool:
    if not ip:
        return False
    allowed = set(cfg.get("allowed_ips") or ["127.0.0.1", "::1"])
    return ip in allowed


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    return value


def _error_response(exc: Exception, context: str) -> JSONResponse:
    if isinstance(exc, SearchConfigError):
        return JSONResponse({"error": "search_disabled", "detail": str(exc)}, status_code=503)
    if isinstance(exc, ProviderUnavailableError):
        return JSONResponse({"error": "provider_unavailable", "detail": str(exc)}, status_code=503)
    logger.exception("%s failed: %s", context, exc)
    return JSONResponse({"error": "internal_error", "detail": str(exc)}, status_code=500)


async def require_admin(request: Request) -> Optional[JSONResponse]:
    """
    Common gate for all admin endpoints.

    - Enforce local-only IP (admin.allowed_ips)
    - Enforce X-Admin-Key header if admin.api_key is set
    """
    client = request.client
    client_ip = client.host if client else None
    cfg = _get_admin_cfg()

    if not cfg["enabled"]:
        logger.warning("Admin API called but admin.enabled=false")
        return JSONResponse({"error": "admin_disabled"}, status_code=503)

    if not _is_allowed_ip(client_ip, cfg):
        logger.warning("Admin access denied from IP %r", client_ip)
        return JSONResponse(
            {"error": "forbidden", "reason": "ip_not_allowed"},
            status_code=403,
        )

    api_key = cfg.get("api_key")
    if api_key:
        header_key = request.headers.get("x-admin-key")
        if header_key != api_key:
            logger.warning("Admin access denied due to invalid API key")
            return JSONResponse({"error": "unauthorized"}, status_code=401)

    return None


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


async def admin_status(request: Request) -> Response:
    if (resp := await require_admin(request)) is not None:
        return resp

    cfg = _get_admin_cfg()
    payload: Dict[str, Any] = {
        "admin": {
            "host": cfg["host"],
            "port": cfg["port"],
            "enabled": cfg["enabled"],
        },
    }
    try:
        engine = _get_engine()
    except SearchError as exc:
        payload["search"] = {"enabled": False, "detail": str(exc)}
        return JSONResponse(payload)

    payload["search"] = {
        "enabled": True,
        "repository_root": str(engine.repo_root),
        "vector_db_path": str(engine.db_path),
        "provider": engine.provider.name,
        "embedding_dimension": engine.config.embedding_dimension,
        "provider_available": engine.provider.is_available(),
    }
    return JSONResponse(payload)


async def admin_index_stats(request: Request) -> Response:
    if (resp := await require_admin(request)) is not None:
        return resp

    try:
        stats = _get_engine().stats()
    except Exception as exc:
        return _error_response(exc, "admin_index_stats")
    return JSONResponse({k: _jsonable(v) for k, v in stats.items()})


async def admin_index_rebuild(request: Request) -> Response:
    if (resp := await require_admin(request)) is not None:
        return resp

    body = await _json_body(request)
    force = bool(body.get("force", True))
    try:
        stats = _get_engine().index_repository(force_all=force)
    except Exception as exc:
        return _error_response(exc, "admin_index_rebuild")
    return JSONResponse(stats.to_dict())


async def admin_index_update(request: Request) -> Response:
    if (resp := await require_admin(request)) is not None:
        return resp

    try:
        stats = _get_engine().update_index()
    except Exception as exc:
        return _error_response(exc, "admin_index_update")
    return JSONResponse(stats.to_dict())


async def admin_index_cleanup(request: Request) -> Response:
    if (resp := await require_admin(request)) is not None:
        return resp

    try:
        removed = _get_engine().cleanup_index()
    except Exception as exc:
        return _error_response(exc, "admin_index_cleanup")
    return JSONResponse({"removed": removed, "count": len(removed)})


async def admin_index_validate(request: Request) -> Response:
    if (resp := await require_admin(request)) is not None:
        return resp

    try:
        issues = _get_engine().find_issues()
    except Exception as exc:
        return _error_response(exc, "admin_index_validate")
    return JSONResponse(
        {
            "valid": not issues,
            "issue_count": len(issues),
            "issues": [asdict(issue) for issue in issues],
        }
    )


async def admin_search(request: Request) -> Response:
    if (resp := await require_admin(request)) is not None:
        return resp

    body = await _json_body(request)
    query = body.get("query")
    if not isinstance(query, str):
        return JSONResponse(
            {"error": "bad_request", "detail": "'query' must be a string"},
            status_code=400,
        )

    try:
        results = _get_engine().search(query)
    except Exception as exc:
        return _error_response(exc, "admin_search")
    return JSONResponse({"query": query, "results": [asdict(r) for r in results]})


async def admin_logs_tail(request: Request) -> Response:
    if (resp := await require_admin(request)) is not None:
        return resp

    n_param = request.query_params.get("n", "200")
    try:
        n = max(1, min(int(n_param), 2000))
    except ValueError:
        n = 200

    log_file = get_config().log_file
    if log_file is None:
        return JSONResponse(
            {"error": "not_found", "detail": "no log file configured"},
            status_code=404,
        )

    log_path = Path(log_file).expanduser()
    if not log_path.exists():
        return JSONResponse(
            {"error": "not_found", "detail": f"log file not found: {log_path}"},
            status_code=404,
        )

    try:
        with log_path.open("r", encoding="utf-8", errors="ignore") as f:
            lines = f.readlines()
    except OSError as exc:
        logger.exception("Failed to read log file: %s", exc)
        return JSONResponse(
            {"error": "internal_error", "detail": str(exc)},
            status_code=500,
        )

    return JSONResponse({"path": str(log_path), "lines": lines[-n:]})


async def admin_config_view(request: Request) -> Response:
    if (resp := await require_admin(request)) is not None:
        return resp

    raw = dict(get_config().config_data)
    admin = dict(raw.get("admin") or {})
    if admin.get("api_key"):
        admin["api_key"] = "<redacted>"
    raw["admin"] = admin
    return JSONResponse(raw)


routes = [
    Route("/admin/status", admin_status, methods=["GET"]),
    Route("/admin/index/stats", admin_index_stats, methods=["GET"]),
    Route("/admin/index/rebuild", admin_index_rebuild, methods=["POST"]),
    Route("/admin/index/update", admin_index_update, methods=["POST"]),
    Route("/admin/index/cleanup", admin_index_cleanup, methods=["POST"]),
    Route("/admin/index/validate", admin_index_validate, methods=["GET"]),
    Route("/admin/search", admin_search, methods=["POST"]),
    Route("/admin/logs/tail", admin_logs_tail, methods=["GET"]),
    Route("/admin/config", admin_config_view, methods=["GET"]),
]

app = Starlette(debug=False, routes=routes)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)
