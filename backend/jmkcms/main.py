"""FastAPI application entrypoint and HTTP controllers.

Controllers are intentionally thin: they accept requests, delegate to the
handlers in `services` and return JSON. Every mutating endpoint returns
the uniform `ActionResult` body `{success, message, id?}`.

Public endpoints:
- GET /api/apps, /api/apps/{bundle_id}
- GET /api/apps/{bundle_id}/concepts, /api/apps/{bundle_id}/lectures
- GET /api/ads, POST /api/ads/{ad_id}/impression, POST /api/ads/{ad_id}/click
- POST /api/contact

Admin endpoints (cookie session, see `auth`):
- POST /admin/login, POST /admin/logout, GET /admin/session
- CRUD under /admin/apps, /admin/concepts, /admin/lectures, /admin/ads
- GET /admin/contact, PATCH /admin/contact/{sub_id}
"""

import json
import logging
import time
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import schemas, services
from .auth import SessionGate, get_session_gate, require_admin
from .config import settings
from .database import DocumentStore, get_document_store
from .errors import StoreError
from .schemas import ActionResult
from .utils.formatting import lecture_preview, youtube_embed_url
from .utils.rate_limit import InMemoryRateLimiter

app = FastAPI(title="JMK Contents CMS API")
logger = logging.getLogger("jmkcms.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

_login_limiter = InMemoryRateLimiter(settings.LOGIN_RATE_LIMIT_PER_MIN, settings.RATE_LIMIT_WINDOW_SECONDS)
_contact_limiter = InMemoryRateLimiter(settings.CONTACT_RATE_LIMIT_PER_MIN, settings.RATE_LIMIT_WINDOW_SECONDS)
_LOGGED_PREFIXES = ("/admin", "/api/contact")

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    logged = request.url.path.startswith(_LOGGED_PREFIXES)
    summary = {
        "request_id": req_id,
        "path": request.url.path,
        "method": request.method,
        "client": request.client.host if request.client else "unknown",
    }
    try:
        response: Response = await call_next(request)
    except Exception:
        if logged:
            summary["duration_ms"] = round((time.perf_counter() - started) * 1000.0, 2)
            logger.exception("request_failed %s", json.dumps(summary, ensure_ascii=True))
        raise
    response.headers["X-Request-ID"] = req_id
    if logged:
        summary["status_code"] = response.status_code
        summary["duration_ms"] = round((time.perf_counter() - started) * 1000.0, 2)
        logger.info("request_done %s", json.dumps(summary, ensure_ascii=True))
    return response


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    """Reads that hit a store failure answer 503 instead of a raw traceback."""
    logger.error("store error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": "document store unavailable"})


def _enforce_rate_limit(limiter: InMemoryRateLimiter, request: Request) -> None:
    key = request.client.host if request.client else "unknown"
    allowed, retry_after = limiter.allow(key)
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail=f"rate limit exceeded; retry after {retry_after}s",
            headers={"Retry-After": str(retry_after)},
        )


def _lecture_payload(lecture: schemas.Lecture) -> dict:
    out = lecture.model_dump(mode="json")
    out["embed_url"] = youtube_embed_url(lecture.youtube_video_id)
    out["preview"] = lecture_preview(lecture.description, lecture.transcript)
    return out


# ----------------------------- Public -----------------------------
@app.get("/")
def read_root():
    return {"message": "JMK Contents API running"}


@app.get("/api/apps")
def list_apps(app_category: Optional[str] = None, store: DocumentStore = Depends(get_document_store)):
    """Published apps (featured first) with per-category counts."""
    return services.CatalogService(store).published_apps(app_category)


@app.get("/api/apps/{bundle_id}", response_model=schemas.App)
def get_app(bundle_id: str, store: DocumentStore = Depends(get_document_store)):
    found = services.CatalogService(store).get_published_app(bundle_id)
    if not found:
        raise HTTPException(status_code=404, detail="app not found")
    return found


@app.get("/api/apps/{bundle_id}/concepts")
def list_concepts(
    bundle_id: str,
    q: Optional[str] = None,
    importance: Optional[int] = None,
    category: Optional[str] = None,
    store: DocumentStore = Depends(get_document_store),
):
    """Concepts of a published app, filterable by search text, importance and category."""
    catalog = services.CatalogService(store)
    found = catalog.get_published_app(bundle_id)
    if not found:
        raise HTTPException(status_code=404, detail="app not found")
    out = catalog.concepts_for_app(bundle_id, q=q, importance=importance, category=category)
    out["app"] = found
    return out


@app.get("/api/apps/{bundle_id}/lectures")
def list_lectures(
    bundle_id: str,
    q: Optional[str] = None,
    category: Optional[str] = None,
    store: DocumentStore = Depends(get_document_store),
):
    catalog = services.CatalogService(store)
    found = catalog.get_published_app(bundle_id)
    if not found:
        raise HTTPException(status_code=404, detail="app not found")
    out = catalog.lectures_for_app(bundle_id, q=q, category=category)
    out["lectures"] = [_lecture_payload(l) for l in out["lectures"]]
    out["app"] = found
    return out


@app.get("/api/ads", response_model=List[schemas.AffiliateAd])
def list_active_ads(
    app_id: str,
    type: Optional[schemas.AdType] = None,
    experiment_group: Optional[str] = None,
    store: DocumentStore = Depends(get_document_store),
):
    """Ads the given app should show now, highest priority first."""
    return services.AffiliateAdService(store).active_ads_for_app(app_id, ad_type=type, experiment_group=experiment_group)


@app.post("/api/ads/{ad_id}/impression", response_model=ActionResult)
def record_impression(ad_id: str, store: DocumentStore = Depends(get_document_store)):
    return services.AffiliateAdService(store).record_event(ad_id, "impressions")


@app.post("/api/ads/{ad_id}/click", response_model=ActionResult)
def record_click(ad_id: str, store: DocumentStore = Depends(get_document_store)):
    return services.AffiliateAdService(store).record_event(ad_id, "clicks")


@app.post("/api/contact", response_model=ActionResult)
def submit_contact(payload: schemas.ContactIn, request: Request, store: DocumentStore = Depends(get_document_store)):
    """Public contact form. Validation failures come back as `success: false`."""
    _enforce_rate_limit(_contact_limiter, request)
    return services.ContactService(store).submit_contact_form(payload)


# ----------------------------- Admin session -----------------------------
@app.post("/admin/login", response_model=ActionResult)
def admin_login(payload: schemas.LoginIn, request: Request, response: Response, gate: SessionGate = Depends(get_session_gate)):
    _enforce_rate_limit(_login_limiter, request)
    return gate.login(response, payload.password)


@app.post("/admin/logout", response_model=ActionResult)
def admin_logout(response: Response, gate: SessionGate = Depends(get_session_gate)):
    gate.logout(response)
    return ActionResult.ok("로그아웃되었습니다.")


@app.get("/admin/session")
def admin_session(request: Request, gate: SessionGate = Depends(get_session_gate)):
    return {"authenticated": gate.is_authenticated(request.cookies)}


# ----------------------------- Admin CRUD -----------------------------
admin = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


@admin.get("/apps", response_model=List[schemas.App])
def admin_list_apps(store: DocumentStore = Depends(get_document_store)):
    """All apps, drafts included."""
    return services.AppService(store).list_all()


@admin.post("/apps", response_model=ActionResult)
def admin_create_app(payload: schemas.AppIn, store: DocumentStore = Depends(get_document_store)):
    return services.AppService(store).create_app(payload)


@admin.get("/apps/{bundle_id}", response_model=schemas.App)
def admin_get_app(bundle_id: str, store: DocumentStore = Depends(get_document_store)):
    found = services.AppService(store).repo.get(bundle_id)
    if not found:
        raise HTTPException(status_code=404, detail="app not found")
    return found


@admin.put("/apps/{bundle_id}", response_model=ActionResult)
def admin_update_app(bundle_id: str, payload: schemas.AppUpdate, store: DocumentStore = Depends(get_document_store)):
    return services.AppService(store).update_app(bundle_id, payload)


@admin.delete("/apps/{bundle_id}", response_model=ActionResult)
def admin_delete_app(bundle_id: str, store: DocumentStore = Depends(get_document_store)):
    return services.AppService(store).delete_app(bundle_id)


@admin.get("/concepts")
def admin_list_concepts(limit: int = 50, store: DocumentStore = Depends(get_document_store)):
    """Newest concepts with importance counts for the dashboard."""
    return services.ConceptService(store).admin_overview(limit)


@admin.post("/concepts", response_model=ActionResult)
def admin_create_concept(payload: schemas.ConceptIn, store: DocumentStore = Depends(get_document_store)):
    return services.ConceptService(store).create_concept(payload)


@admin.get("/concepts/{concept_id}", response_model=schemas.Concept)
def admin_get_concept(concept_id: str, store: DocumentStore = Depends(get_document_store)):
    found = services.ConceptService(store).repo.get(concept_id)
    if not found:
        raise HTTPException(status_code=404, detail="concept not found")
    return found


@admin.put("/concepts/{concept_id}", response_model=ActionResult)
def admin_update_concept(concept_id: str, payload: schemas.ConceptUpdate, store: DocumentStore = Depends(get_document_store)):
    return services.ConceptService(store).update_concept(concept_id, payload)


@admin.delete("/concepts/{concept_id}", response_model=ActionResult)
def admin_delete_concept(concept_id: str, store: DocumentStore = Depends(get_document_store)):
    return services.ConceptService(store).delete_concept(concept_id)


@admin.get("/lectures", response_model=List[schemas.Lecture])
def admin_list_lectures(limit: int = 50, store: DocumentStore = Depends(get_document_store)):
    return services.LectureService(store).list_recent(limit)


@admin.post("/lectures", response_model=ActionResult)
def admin_create_lecture(payload: schemas.LectureIn, store: DocumentStore = Depends(get_document_store)):
    return services.LectureService(store).create_lecture(payload)


@admin.get("/lectures/{lecture_id}", response_model=schemas.Lecture)
def admin_get_lecture(lecture_id: str, store: DocumentStore = Depends(get_document_store)):
    found = services.LectureService(store).repo.get(lecture_id)
    if not found:
        raise HTTPException(status_code=404, detail="lecture not found")
    return found


@admin.put("/lectures/{lecture_id}", response_model=ActionResult)
def admin_update_lecture(lecture_id: str, payload: schemas.LectureUpdate, store: DocumentStore = Depends(get_document_store)):
    return services.LectureService(store).update_lecture(lecture_id, payload)


@admin.delete("/lectures/{lecture_id}", response_model=ActionResult)
def admin_delete_lecture(lecture_id: str, store: DocumentStore = Depends(get_document_store)):
    return services.LectureService(store).delete_lecture(lecture_id)


@admin.get("/ads", response_model=List[schemas.AffiliateAd])
def admin_list_ads(store: DocumentStore = Depends(get_document_store)):
    return services.AffiliateAdService(store).list_all()


@admin.post("/ads", response_model=ActionResult)
def admin_create_ad(payload: schemas.AffiliateAdIn, store: DocumentStore = Depends(get_document_store)):
    return services.AffiliateAdService(store).create_affiliate_ad(payload)


@admin.put("/ads/{ad_id}", response_model=ActionResult)
def admin_update_ad(ad_id: str, payload: schemas.AffiliateAdUpdate, store: DocumentStore = Depends(get_document_store)):
    return services.AffiliateAdService(store).update_affiliate_ad(ad_id, payload)


@admin.delete("/ads/{ad_id}", response_model=ActionResult)
def admin_delete_ad(ad_id: str, store: DocumentStore = Depends(get_document_store)):
    return services.AffiliateAdService(store).delete_affiliate_ad(ad_id)


@admin.post("/ads/{ad_id}/toggle", response_model=ActionResult)
def admin_toggle_ad(ad_id: str, store: DocumentStore = Depends(get_document_store)):
    return services.AffiliateAdService(store).toggle_affiliate_ad_status(ad_id)


@admin.get("/contact", response_model=List[schemas.ContactSubmission])
def admin_list_contact(status: Optional[schemas.ContactStatus] = None, store: DocumentStore = Depends(get_document_store)):
    return services.ContactService(store).list_submissions(status=status)


@admin.patch("/contact/{sub_id}", response_model=ActionResult)
def admin_update_contact(sub_id: str, payload: schemas.ContactStatusIn, store: DocumentStore = Depends(get_document_store)):
    return services.ContactService(store).update_status(sub_id, payload.status)


app.include_router(admin)


if __name__ == "__main__":
    import os

    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
