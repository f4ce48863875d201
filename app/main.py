"""FastAPI app for the admin CRUD layer."""

from __future__ import annotations

import os
import re
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, Tuple

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, RedirectResponse

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


_load_env_file(ROOT / "app" / ".env")

import logging
import time
import uuid

from app.auth import SupabaseAuthMiddleware, auth_disabled
from app.bootstrap import load_interfaces_file
from app.db import get_db_ms, get_db_queries, reset_db_ms
from app.stores import MemoryEntityGateway, MemoryFlashStore
from app.stores_db import DbEntityGateway, DbFlashStore, ensure_schema
from admin_controller import DEFAULT_LANG, DEFAULT_ROUTER_URL
from admin_errors import AdminConfigError, InterfaceNotConfigured
from edit_controller import INTENT_APPLY, INTENT_SAVE, EditController, intent_from_params
from entity_gateway import GatewayRegistry
from field_registry import FieldRegistry
from flash_channel import FlashChannel
from list_controller import ListController


app = FastAPI(title="Admin CRUD")
logger = logging.getLogger("admin.http")
logging.basicConfig(level=logging.INFO)

USE_DB = os.getenv("USE_DB", "").strip() == "1"
ADMIN_LANG = os.getenv("ADMIN_LANG", "").strip() or DEFAULT_LANG
ADMIN_ROUTER_URL = os.getenv("ADMIN_ROUTER_URL", "").strip() or DEFAULT_ROUTER_URL
ADMIN_INTERFACES_FILE = os.getenv("ADMIN_INTERFACES_FILE", "").strip()
ADMIN_FLASH_SCOPE = os.getenv("ADMIN_FLASH_SCOPE", "").strip() or "admin"
ADMIN_FLASH_TTL_SECONDS = float(os.getenv("ADMIN_FLASH_TTL_SECONDS", "3600"))
REQ_SLOW_MS = float(os.getenv("ADMIN_REQ_SLOW_MS", "250"))
SUPABASE_URL = os.getenv("SUPABASE_URL", "").strip()
SUPABASE_AUD = os.getenv("SUPABASE_JWT_AUD", "").strip() or None
SESSION_COOKIE = "admin_session"
logger.info("auth_disabled=%s supabase_url=%s use_db=%s", auth_disabled(), SUPABASE_URL, USE_DB)

registry = FieldRegistry()
gateways = GatewayRegistry()

if USE_DB:
    ensure_schema()
    flash_store = DbFlashStore(ttl_seconds=ADMIN_FLASH_TTL_SECONDS)
    gateway_factory = DbEntityGateway
else:
    flash_store = MemoryFlashStore(ttl_seconds=ADMIN_FLASH_TTL_SECONDS)
    gateway_factory = MemoryEntityGateway

if ADMIN_INTERFACES_FILE:
    load_interfaces_file(ADMIN_INTERFACES_FILE, registry, gateways, gateway_factory)


@app.middleware("http")
async def session_middleware(request: Request, call_next):
    session_id = request.cookies.get(SESSION_COOKIE)
    is_new = not session_id
    if is_new:
        session_id = uuid.uuid4().hex
    request.state.session_id = session_id
    response = await call_next(request)
    if is_new:
        response.set_cookie(SESSION_COOKIE, session_id, httponly=True, samesite="lax")
    return response


@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    reset_db_ms()
    start = time.perf_counter()
    response = await call_next(request)
    total_ms = (time.perf_counter() - start) * 1000
    auth_ms = getattr(request.state, "auth_ms", 0.0)
    db_ms = get_db_ms()
    logger.info(
        "%s %s %s total_ms=%.1f auth_ms=%.1f db_ms=%.1f db_q=%s",
        request.method,
        request.url.path,
        response.status_code,
        total_ms,
        auth_ms,
        db_ms,
        get_db_queries(),
    )
    if total_ms >= REQ_SLOW_MS:
        logger.warning(
            "slow_request method=%s path=%s total_ms=%.1f db_ms=%.1f status=%s",
            request.method,
            request.url.path,
            total_ms,
            db_ms,
            response.status_code,
        )
    return response


if not auth_disabled():
    if not SUPABASE_URL:
        raise RuntimeError("SUPABASE_URL is required for auth")
    app.add_middleware(SupabaseAuthMiddleware, supabase_url=SUPABASE_URL, audience=SUPABASE_AUD)


def _error_response(code: str, message: str, path: str | None = None, detail: dict | None = None, status: int = 400) -> JSONResponse:
    body = {
        "ok": False,
        "errors": [{"code": code, "message": message, "path": path, "detail": detail}],
        "warnings": [],
    }
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _ok_response(payload: dict, warnings: list | None = None, status: int = 200) -> JSONResponse:
    body = {"ok": True, **payload, "errors": [], "warnings": warnings or []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _page_response(page: dict, errors: list, status: int) -> JSONResponse:
    body = {"ok": not errors, "page": page, "errors": errors, "warnings": []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


@app.exception_handler(AdminConfigError)
async def admin_config_error_handler(request: Request, exc: AdminConfigError):
    if isinstance(exc, InterfaceNotConfigured):
        logger.warning("interface_not_configured path=%s message=%s", exc.path, exc.message)
        return _error_response(exc.code, exc.message, exc.path, status=404)
    logger.exception("admin_config_error code=%s path=%s", exc.code, exc.path)
    return _error_response(exc.code, exc.message, exc.path, status=500)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error path=%s", request.url.path)
    return _error_response("INTERNAL_ERROR", "Unexpected server error", detail={"error": str(exc)}, status=500)


# request parameters

_BRACKET_RE = re.compile(r"\[([^\]]*)\]")


def _key_parts(key: str) -> list[str]:
    if "[" not in key or not key.endswith("]"):
        return [key]
    base = key.split("[", 1)[0]
    return [base] + _BRACKET_RE.findall(key[len(base):])


def _listify(value: Any) -> Any:
    if isinstance(value, dict):
        value = {k: _listify(v) for k, v in value.items()}
        if value and all(isinstance(k, str) and k.isdigit() for k in value):
            return [value[k] for k in sorted(value, key=int)]
    return value


def parse_bracket_params(items: Iterable[Tuple[str, Any]]) -> Dict[str, Any]:
    """Fold ``FIELDS[NAME]=x`` and ``ids[]=1`` style pairs into nested values."""
    out: Dict[str, Any] = {}
    for key, value in items:
        parts = _key_parts(key)
        if not parts[0]:
            continue
        cur: Any = out
        for idx, part in enumerate(parts[:-1]):
            nxt = parts[idx + 1]
            wanted = list if nxt == "" else dict
            if not isinstance(cur.get(part), wanted):
                cur[part] = wanted()
            cur = cur[part]
            if wanted is list:
                break
        last = parts[-1]
        if isinstance(cur, list):
            cur.append(value)
        elif len(parts) == 1 and last in cur:
            existing = cur[last]
            cur[last] = (existing if isinstance(existing, list) else [existing]) + [value]
        else:
            cur[last] = value
    return {k: _listify(v) for k, v in out.items()}


async def _request_params(request: Request) -> Dict[str, Any]:
    params = parse_bracket_params(request.query_params.multi_items())
    if request.method != "POST":
        return params
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            params.update(body)
        return params
    form = await request.form()
    params.update(parse_bracket_params(form.multi_items()))
    return params


def _controller(request: Request, module: str, view: str, params: Dict[str, Any]):
    controller_cls, _ = registry.route(module, view)
    if controller_cls is None:
        raise InterfaceNotConfigured(code="VIEW_NOT_ROUTABLE", message=f"no controller serves view {view!r}", path=f"{module}/{view}")
    flash = FlashChannel(flash_store, request.state.session_id, ADMIN_FLASH_SCOPE)
    lang = params.get("lang") if isinstance(params.get("lang"), str) and params.get("lang") else ADMIN_LANG
    return controller_cls(
        registry,
        gateways,
        flash,
        actor=getattr(request.state, "user", None),
        lang=lang,
        router_url=ADMIN_ROUTER_URL,
    )


def _route_params(params: Dict[str, Any]) -> Tuple[str, str] | JSONResponse:
    module = params.get("module")
    view = params.get("view")
    if not isinstance(module, str) or not module or not isinstance(view, str) or not view:
        return _error_response("MODULE_VIEW_REQUIRED", "module and view are required", "view")
    return module, view


_REASON_STATUS = {"forbidden": 403, "invalid": 400, "persist_failed": 400}


def _respond(controller, outcome: dict, redirect_status: int) -> Any:
    if outcome.get("redirect"):
        return RedirectResponse(outcome["redirect"], status_code=redirect_status)
    page = controller.page(outcome) if isinstance(controller, ListController) else controller.page()
    status = _REASON_STATUS.get(outcome.get("reason"), 200)
    return _page_response(page, outcome.get("errors") or [], status)


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.get("/admin/route")
async def admin_route_get(request: Request):
    params = await _request_params(request)
    routed = _route_params(params)
    if isinstance(routed, JSONResponse):
        return routed
    controller = _controller(request, *routed, params)
    if isinstance(controller, EditController):
        intent = intent_from_params(params)
        if intent.kind in (INTENT_APPLY, INTENT_SAVE):
            return _error_response("METHOD_NOT_ALLOWED", "Submit the form with POST", status=405)
        outcome = controller.handle(intent, params)
    else:
        outcome = controller.handle(params)
    return _respond(controller, outcome, 302)


@app.post("/admin/route")
async def admin_route_post(request: Request):
    params = await _request_params(request)
    routed = _route_params(params)
    if isinstance(routed, JSONResponse):
        return routed
    controller = _controller(request, *routed, params)
    if isinstance(controller, EditController):
        outcome = controller.handle(intent_from_params(params), params)
    else:
        outcome = controller.handle(params)
    return _respond(controller, outcome, 303)


@app.get("/admin/settings/{module}/{view}")
async def admin_settings(module: str, view: str):
    controller_cls, settings = registry.route(module, view)
    return _ok_response(
        {
            "module": module,
            "view": view,
            "controller": getattr(controller_cls, "__name__", None),
            "fingerprint": registry.fingerprint(module, view),
            "settings": settings.to_dict(),
        }
    )
