import asyncio
import logging
import os
import uuid
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional
from urllib.parse import quote

import redis
import uvicorn
from fastapi import Cookie, Depends, FastAPI, Header, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from .config import settings
from .health import BackendHealth
from .redis_session import pop_flashes, push_flash
from .report import (
    EngineFactory,
    WeasyPrintEngine,
    render_report,
    render_specialists_report,
    specialist_rows,
    templates,
)
from .resolver import LearnerNotFound, fetch_or_default, resolve_analytics
from .translations import translate
from .upstream import BackendClient, ProgressSources, create_http_client

# --- Logging Setup ---
logger = logging.getLogger(__name__)
package_logger = logging.getLogger("specialist_portal")
package_logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

if settings.LOG_TO_FILE and not package_logger.handlers:
    if not os.path.exists(settings.LOG_DIR):
        os.makedirs(settings.LOG_DIR)
    log_path = os.path.join(settings.LOG_DIR, settings.LOG_FILE)
    file_handler = RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=3)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    )
    package_logger.addHandler(file_handler)


# --- Lifecycle ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.http = create_http_client()
    logger.info(f"Backend API at {settings.BACKEND_URL}/api")
    yield
    await app.state.http.aclose()


app = FastAPI(
    title=settings.PROJECT_NAME,
    debug=settings.DEBUG,
    lifespan=lifespan,
)

backend_health = BackendHealth()

DEFAULT_DASHBOARD_STATS = {"parents": 0, "children": 0, "pendingRequests": 0}


# --- Dependencies ---
def get_session_id(
    session_id: Optional[str] = Cookie(None, alias=settings.SESSION_COOKIE_NAME),
) -> Optional[str]:
    return session_id


def get_lang(
    lang: Optional[str] = Cookie(None, alias=settings.LANG_COOKIE_NAME),
) -> str:
    return lang or settings.DEFAULT_LANG


def get_api_token(
    authorization: Optional[str] = Header(None),
    token: Optional[str] = Cookie(None, alias=settings.TOKEN_COOKIE_NAME),
) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return token


def get_backend(
    request: Request, token: Optional[str] = Depends(get_api_token)
) -> BackendClient:
    return BackendClient(request.app.state.http, token)


def get_sources(backend: BackendClient = Depends(get_backend)) -> ProgressSources:
    return ProgressSources(backend)


def get_engine_factory() -> EngineFactory:
    return WeasyPrintEngine


# --- Helpers ---
def failure(message: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse({"success": False, "message": message}, status_code=status_code)


def error_message(exc: Exception, lang: str) -> str:
    if isinstance(exc, LearnerNotFound):
        return translate(lang, "not_found")
    return str(exc) if settings.verbose_errors else translate(lang, "errorOccurred")


def flash_redirect(session_id: Optional[str], message: str, url: str) -> RedirectResponse:
    redirect = RedirectResponse(url=url, status_code=303)
    if not session_id:
        session_id = str(uuid.uuid4())
        redirect.set_cookie(
            key=settings.SESSION_COOKIE_NAME,
            value=session_id,
            httponly=True,
            samesite="Lax",
        )
    try:
        push_flash(session_id, "error_msg", message)
    except redis.RedisError as exc:
        logger.warning(f"Flash notice dropped, redis unavailable: {exc}")
    return redirect


# --- Middleware ---
@app.middleware("http")
async def require_backend(request: Request, call_next):
    path = request.url.path
    if backend_health.should_check(path) and not await backend_health.check():
        lang = request.cookies.get(settings.LANG_COOKIE_NAME) or settings.DEFAULT_LANG
        wants_json = "json" in request.headers.get("accept", "") or (
            request.headers.get("x-requested-with", "").lower() == "xmlhttprequest"
        )
        if wants_json:
            return failure(translate(lang, "serverDown"), status_code=503)
        return templates.TemplateResponse(
            request,
            "service_unavailable.html",
            {
                "lang": lang,
                "title": translate(lang, "serviceUnavailable"),
                "message": translate(lang, "serverDown"),
            },
            status_code=503,
        )
    return await call_next(request)


# --- Routes ---
@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/flash")
def get_flash_messages(session_id: Optional[str] = Depends(get_session_id)):
    if not session_id:
        return {"success": True, "messages": []}
    try:
        messages = [notice.to_wire() for notice in pop_flashes(session_id)]
    except redis.RedisError as exc:
        logger.warning(f"Could not read flash notices: {exc}")
        messages = []
    return {"success": True, "messages": messages}


@app.get("/specialist/children/{child_id}", response_class=RedirectResponse)
async def child_details(child_id: str):
    return RedirectResponse(url=f"/specialist/child/{child_id}/analytics", status_code=302)


@app.get("/specialist/child/{child_id}/analytics", response_class=HTMLResponse)
async def child_analytics_page(
    request: Request,
    child_id: str,
    limit: Optional[str] = Query(None),
    sources: ProgressSources = Depends(get_sources),
    session_id: Optional[str] = Depends(get_session_id),
    lang: str = Depends(get_lang),
):
    try:
        analytics = await resolve_analytics(sources, child_id, limit)
    except LearnerNotFound:
        return flash_redirect(session_id, translate(lang, "not_found"), "/specialist/children")
    except Exception:
        logger.exception(f"Analytics view for {child_id} failed")
        return flash_redirect(session_id, translate(lang, "errorOccurred"), "/specialist/children")

    payload = analytics.view_payload()
    name = payload["learner"].get("name") or child_id
    return templates.TemplateResponse(
        request,
        "child_analytics.html",
        {
            "lang": lang,
            "title": translate(lang, "analyticsTitle").format(name=name),
            **payload,
        },
    )


@app.get("/specialist/child/{child_id}/analytics/data")
async def child_analytics_data(
    child_id: str,
    limit: Optional[str] = Query(None),
    sources: ProgressSources = Depends(get_sources),
    lang: str = Depends(get_lang),
):
    try:
        analytics = await resolve_analytics(sources, child_id, limit)
    except Exception as exc:
        if not isinstance(exc, LearnerNotFound):
            logger.exception(f"Analytics data for {child_id} failed")
        return failure(error_message(exc, lang))
    return analytics.data_payload()


@app.get("/specialist/child/{child_id}/analytics/report")
async def child_analytics_report(
    child_id: str,
    sources: ProgressSources = Depends(get_sources),
    engine_factory: EngineFactory = Depends(get_engine_factory),
    lang: str = Depends(get_lang),
):
    try:
        analytics = await resolve_analytics(sources, child_id)
        pdf = await run_in_threadpool(
            render_report, analytics, engine_factory, settings.verbose_errors
        )
    except Exception as exc:
        logger.error(f"Report export for {child_id} failed: {exc}")
        return failure(error_message(exc, lang))

    filename = f"child-report-{quote(child_id, safe='')}.pdf"
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Content-Length": str(len(pdf)),
        },
    )


@app.get("/specialist/api/dashboard")
async def specialist_dashboard(backend: BackendClient = Depends(get_backend)):
    dashboard, profile = await asyncio.gather(
        fetch_or_default(backend.get_success("/specialist/dashboard"), {}, "dashboard"),
        fetch_or_default(backend.get_success("/specialist/profile"), {}, "profile"),
    )
    return {
        "success": True,
        "stats": dashboard.get("stats") or dict(DEFAULT_DASHBOARD_STATS),
        "recentChildren": dashboard.get("recentChildren") or [],
        "user": profile.get("user"),
        "profileStats": profile.get("stats") or {},
    }


@app.get("/specialist/api/parents")
async def specialist_parents(backend: BackendClient = Depends(get_backend)):
    linked, directory = await asyncio.gather(
        fetch_or_default(backend.get_success("/specialist/parents"), {}, "linked parents"),
        fetch_or_default(
            backend.get_success("/specialist/account/parents-directory"), {}, "parents directory"
        ),
    )
    linked_parents = [
        {**parent, "isLinked": True}
        for parent in linked.get("parents") or []
        if isinstance(parent, dict)
    ]
    return {
        "success": True,
        "parents": linked_parents,
        "allParents": directory.get("parents") or [],
    }


@app.get("/export/specialists")
async def export_specialists(
    format: Optional[str] = Query(None),
    backend: BackendClient = Depends(get_backend),
    engine_factory: EngineFactory = Depends(get_engine_factory),
    lang: str = Depends(get_lang),
):
    if format != "pdf":
        return failure(translate(lang, "pdfOnly"), status_code=400)

    try:
        body: Dict[str, Any] = await backend.get_json("/admin/specialists", params={"limit": 1000})
        rows = specialist_rows(body.get("specialists") if body.get("success") else [])
        pdf = await run_in_threadpool(
            render_specialists_report, rows, engine_factory, settings.verbose_errors
        )
    except Exception as exc:
        logger.error(f"Specialists export failed: {exc}")
        return failure(translate(lang, "exportFailed"))

    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={
            "Content-Disposition": 'attachment; filename="specialists.pdf"',
            "Content-Length": str(len(pdf)),
        },
    )


if __name__ == "__main__":
    uvicorn.run("specialist_portal.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
