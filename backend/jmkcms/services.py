"""Form submission handlers and catalog read services.

Handlers are the boundary between the HTTP layer and the repositories:
they validate input where input is untrusted, delegate to a repository
and return an `ActionResult`. Store failures are logged here and turned
into a generic localized failure; they are never raised to callers.

App, concept, lecture and affiliate ad content is entered by the admin
and is not validated beyond the schema types. Only the public contact
form checks its fields.
"""

import logging
import re
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from . import repositories, schemas
from .database import DocumentStore
from .errors import DocumentNotFound, FormValidationError, StoreError
from .schemas import ActionResult
from .utils.formatting import parse_timestamp, split_keywords

logger = logging.getLogger("jmkcms.services")

EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
MESSAGE_MIN_LENGTH = 10
MESSAGE_MAX_LENGTH = 5000
DEFAULT_CONTACT_NAME = "익명"
DEFAULT_CONTACT_SUBJECT = "(제목 없음)"


class _EntityService:
    """Create/update/delete plumbing shared by the admin entity handlers.

    `label` and `particle` build the localized messages, e.g. "개념이
    생성되었습니다." Each message carries the marker word of its action
    (생성, 수정, 삭제) so callers and tests can match on it.
    """
    label: str
    particle: str
    repo_class = repositories.DocumentRepository

    def __init__(self, store: DocumentStore):
        self.store = store
        self.repo = self.repo_class(store)

    def _done(self, action: str) -> str:
        return f"{self.label}{self.particle} {action}되었습니다."

    def _error(self, action: str) -> str:
        return f"{self.label} {action} 중 오류가 발생했습니다."

    def _missing(self) -> str:
        return f"존재하지 않는 {self.label}입니다."

    def _update(self, doc_id: str, fields: Dict[str, Any]) -> ActionResult:
        try:
            if not self.repo.exists(doc_id):
                return ActionResult.fail(self._missing())
            self.repo.update(doc_id, fields)
        except DocumentNotFound:
            # deleted between the check and the write
            return ActionResult.fail(self._missing())
        except StoreError:
            logger.exception("%s update failed: %s", self.repo.collection, doc_id)
            return ActionResult.fail(self._error("수정"))
        logger.info("%s updated: %s (%s)", self.repo.collection, doc_id, ", ".join(sorted(fields)))
        return ActionResult.ok(self._done("수정"), id=doc_id)

    def _delete(self, doc_id: str) -> ActionResult:
        try:
            self.repo.delete(doc_id)
        except StoreError:
            logger.exception("%s delete failed: %s", self.repo.collection, doc_id)
            return ActionResult.fail(self._error("삭제"))
        logger.info("%s deleted: %s", self.repo.collection, doc_id)
        return ActionResult.ok(self._done("삭제"), id=doc_id)

    def _app_exists(self, app_id: str) -> bool:
        return repositories.AppRepository(self.store).exists(app_id)


class AppService(_EntityService):
    label = "앱"
    particle = "이"
    repo_class = repositories.AppRepository

    def create_app(self, payload: schemas.AppIn) -> ActionResult:
        """Create an app document keyed by its bundle id.

        An empty bundle id, one containing `/`, or one already in use is
        rejected; the bundle id cannot be changed afterwards.
        """
        bundle_id = payload.bundle_id.strip()
        if not bundle_id:
            return ActionResult.fail("Bundle ID는 필수 항목입니다.")
        if "/" in bundle_id:
            return ActionResult.fail("Bundle ID에는 '/'를 사용할 수 없습니다.")
        payload = payload.model_copy(update={"bundle_id": bundle_id})
        try:
            if self.repo.exists(bundle_id):
                return ActionResult.fail(f"이미 존재하는 Bundle ID입니다: {bundle_id}")
            self.repo.create(payload)
        except StoreError:
            logger.exception("app create failed: %s", bundle_id)
            return ActionResult.fail(self._error("생성"))
        logger.info("apps created: %s", bundle_id)
        return ActionResult.ok(self._done("생성"), id=bundle_id)

    def update_app(self, bundle_id: str, payload: schemas.AppUpdate) -> ActionResult:
        return self._update(bundle_id, payload.model_dump(exclude_unset=True))

    def delete_app(self, bundle_id: str) -> ActionResult:
        """Delete an app. Its concepts and lectures are left in place."""
        return self._delete(bundle_id)

    def list_all(self) -> List[schemas.App]:
        return self.repo.list_all()


class ConceptService(_EntityService):
    label = "개념"
    particle = "이"
    repo_class = repositories.ConceptRepository

    def create_concept(self, payload: schemas.ConceptIn) -> ActionResult:
        try:
            if not self._app_exists(payload.app_id):
                return ActionResult.fail("존재하지 않는 앱입니다.")
            concept_id = self.repo.create(payload)
        except StoreError:
            logger.exception("concept create failed for app %s", payload.app_id)
            return ActionResult.fail(self._error("생성"))
        logger.info("concepts created: %s (app %s)", concept_id, payload.app_id)
        return ActionResult.ok(self._done("생성"), id=concept_id)

    def update_concept(self, concept_id: str, payload: schemas.ConceptUpdate) -> ActionResult:
        return self._update(concept_id, payload.model_dump(exclude_unset=True))

    def delete_concept(self, concept_id: str) -> ActionResult:
        return self._delete(concept_id)

    def admin_overview(self, limit: int = 50) -> dict:
        """Newest concepts with counts for the top three importance levels."""
        concepts = self.repo.list_recent(limit)
        counts = Counter(c.importance for c in concepts)
        return {
            "concepts": concepts,
            "total": len(concepts),
            "by_importance": {level: counts.get(level, 0) for level in (5, 4, 3)},
        }


class LectureService(_EntityService):
    label = "강의"
    particle = "가"
    repo_class = repositories.LectureRepository

    def create_lecture(self, payload: schemas.LectureIn) -> ActionResult:
        try:
            if not self._app_exists(payload.app_id):
                return ActionResult.fail("존재하지 않는 앱입니다.")
            lecture_id = self.repo.create(payload)
        except StoreError:
            logger.exception("lecture create failed for app %s", payload.app_id)
            return ActionResult.fail(self._error("생성"))
        logger.info("lectures created: %s (app %s)", lecture_id, payload.app_id)
        return ActionResult.ok(self._done("생성"), id=lecture_id)

    def update_lecture(self, lecture_id: str, payload: schemas.LectureUpdate) -> ActionResult:
        return self._update(lecture_id, payload.model_dump(exclude_unset=True))

    def delete_lecture(self, lecture_id: str) -> ActionResult:
        return self._delete(lecture_id)

    def list_recent(self, limit: int = 50) -> List[schemas.Lecture]:
        return self.repo.list_recent(limit)


class AffiliateAdService(_EntityService):
    label = "광고"
    particle = "가"
    repo_class = repositories.AffiliateAdRepository

    def create_affiliate_ad(self, payload: schemas.AffiliateAdIn) -> ActionResult:
        """Create an ad with zeroed counters. Content fields may be empty."""
        try:
            ad_id = self.repo.create(payload)
        except StoreError:
            logger.exception("affiliate ad create failed: %s", payload.title)
            return ActionResult.fail(self._error("생성"))
        logger.info("affiliate_ads created: %s", ad_id)
        return ActionResult.ok(self._done("생성"), id=ad_id)

    def update_affiliate_ad(self, ad_id: str, payload: schemas.AffiliateAdUpdate) -> ActionResult:
        return self._update(ad_id, payload.model_dump(by_alias=True, exclude_unset=True))

    def delete_affiliate_ad(self, ad_id: str) -> ActionResult:
        return self._delete(ad_id)

    def toggle_affiliate_ad_status(self, ad_id: str) -> ActionResult:
        """Flip `isActive`. Missing ads fail without any write.

        Not idempotent: every call flips the flag again.
        """
        try:
            current = self.repo.is_active(ad_id)
            if current is None:
                return ActionResult.fail(self._missing())
            self.repo.update(ad_id, {"isActive": not current})
        except DocumentNotFound:
            return ActionResult.fail(self._missing())
        except StoreError:
            logger.exception("affiliate ad toggle failed: %s", ad_id)
            return ActionResult.fail(self._error("상태 변경"))
        state = "비활성화" if current else "활성화"
        logger.info("affiliate_ads toggled: %s -> %s", ad_id, not current)
        return ActionResult.ok(f"광고가 {state}되었습니다.", id=ad_id)

    def list_all(self) -> List[schemas.AffiliateAd]:
        return self.repo.list_all()

    def active_ads_for_app(
        self,
        app_id: str,
        ad_type: Optional[str] = None,
        experiment_group: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[schemas.AffiliateAd]:
        """Ads an app should show right now, highest priority first.

        An ad matches when its `appIds` hold the app or `all`, today falls
        within its start/end dates (inclusive, by day) and its experiment
        group is unset or equal to `experiment_group`.
        """
        today = (now or datetime.now(timezone.utc)).date()
        out = []
        for ad in self.repo.list_active():
            if app_id not in ad.app_ids and "all" not in ad.app_ids:
                continue
            if ad_type and ad.type != ad_type:
                continue
            if ad.experiment_group and ad.experiment_group != experiment_group:
                continue
            if not _within_dates(ad, today):
                continue
            out.append(ad)
        return out

    def record_event(self, ad_id: str, counter: str) -> ActionResult:
        """Bump the `impressions` or `clicks` counter of an ad."""
        if counter not in ("impressions", "clicks"):
            raise ValueError(f"unknown counter: {counter}")
        try:
            self.repo.increment(ad_id, counter)
        except DocumentNotFound:
            return ActionResult.fail(self._missing())
        except StoreError:
            logger.exception("affiliate ad %s increment failed: %s", counter, ad_id)
            return ActionResult.fail("광고 통계 기록 중 오류가 발생했습니다.")
        return ActionResult.ok("기록되었습니다.", id=ad_id)


def _date_bound(value: Optional[str]) -> Optional[datetime]:
    try:
        return parse_timestamp(value)
    except ValueError:
        # unparseable dates were stored verbatim; they do not restrict the ad
        return None


def _within_dates(ad: schemas.AffiliateAd, today) -> bool:
    start = _date_bound(ad.start_date)
    end = _date_bound(ad.end_date)
    if start and today < start.date():
        return False
    if end and today > end.date():
        return False
    return True


class ContactService:
    """Public contact form handling and the admin inbox."""
    def __init__(self, store: DocumentStore):
        self.repo = repositories.ContactSubmissionRepository(store)

    @staticmethod
    def validate(form: schemas.ContactIn) -> None:
        """Check the form in order, raising on the first failed rule."""
        if not form.email or not form.message:
            raise FormValidationError("이메일과 메시지는 필수 항목입니다.")
        if not EMAIL_PATTERN.fullmatch(form.email):
            raise FormValidationError("올바른 이메일 주소를 입력해주세요.")
        if len(form.message) < MESSAGE_MIN_LENGTH:
            raise FormValidationError(f"메시지는 최소 {MESSAGE_MIN_LENGTH}자 이상 입력해주세요.")
        if len(form.message) > MESSAGE_MAX_LENGTH:
            raise FormValidationError(f"메시지는 최대 {MESSAGE_MAX_LENGTH}자까지 입력 가능합니다.")

    def submit_contact_form(self, form: schemas.ContactIn) -> ActionResult:
        """Validate and persist a submission with status `pending`.

        Persistence failures are not retried.
        """
        try:
            self.validate(form)
        except FormValidationError as e:
            return ActionResult.fail(e.message)
        try:
            sub_id = self.repo.create(
                name=(form.name or "").strip() or DEFAULT_CONTACT_NAME,
                email=form.email,
                subject=(form.subject or "").strip() or DEFAULT_CONTACT_SUBJECT,
                message=form.message,
            )
        except StoreError:
            logger.exception("contact form submission error")
            return ActionResult.fail("문의 접수 중 오류가 발생했습니다. 잠시 후 다시 시도해주세요.")
        logger.info("contact_submissions created: %s", sub_id)
        return ActionResult.ok("문의가 성공적으로 접수되었습니다. 빠른 시일 내에 답변 드리겠습니다.", id=sub_id)

    def update_status(self, sub_id: str, status: str) -> ActionResult:
        try:
            if not self.repo.exists(sub_id):
                return ActionResult.fail("존재하지 않는 문의입니다.")
            self.repo.update(sub_id, {"status": status})
        except DocumentNotFound:
            return ActionResult.fail("존재하지 않는 문의입니다.")
        except StoreError:
            logger.exception("contact status update failed: %s", sub_id)
            return ActionResult.fail("문의 상태 수정 중 오류가 발생했습니다.")
        return ActionResult.ok("문의 상태가 수정되었습니다.", id=sub_id)

    def list_submissions(self, status: Optional[str] = None, limit: int = 100) -> List[schemas.ContactSubmission]:
        return self.repo.list_recent(status=status, limit=limit)


class CatalogService:
    """Read side of the public pages: published apps and their content."""
    def __init__(self, store: DocumentStore):
        self.apps = repositories.AppRepository(store)
        self.concepts = repositories.ConceptRepository(store)
        self.lectures = repositories.LectureRepository(store)

    def published_apps(self, app_category: Optional[str] = None) -> dict:
        """Published apps, optionally narrowed to one category.

        `category_counts` always counts every published app.
        """
        apps = self.apps.list_published()
        counts = Counter(a.app_category for a in apps if a.app_category)
        if app_category:
            apps = [a for a in apps if a.app_category == app_category]
        return {"apps": apps, "total": len(apps), "category_counts": dict(counts)}

    def get_published_app(self, bundle_id: str) -> Optional[schemas.App]:
        """Return the app only if it exists and is published."""
        app = self.apps.get(bundle_id)
        if app is None or app.status != "published":
            return None
        return app

    def concepts_for_app(
        self,
        bundle_id: str,
        q: Optional[str] = None,
        importance: Optional[int] = None,
        category: Optional[str] = None,
    ) -> dict:
        concepts = self.concepts.list_by_app(bundle_id)
        categories = sorted({c.category for c in concepts if c.category})
        filtered = filter_concepts(concepts, q=q, importance=importance, category=category)
        return {"concepts": filtered, "total": len(filtered), "categories": categories}

    def lectures_for_app(self, bundle_id: str, q: Optional[str] = None, category: Optional[str] = None) -> dict:
        lectures = self.lectures.list_by_app(bundle_id)
        categories = sorted({l.category for l in lectures if l.category})
        filtered = filter_lectures(lectures, q=q, category=category)
        return {"lectures": filtered, "total": len(filtered), "categories": categories}


def filter_concepts(concepts, q=None, importance=None, category=None):
    """Case-insensitive search over title, content and keywords plus exact filters."""
    out = list(concepts)
    if q:
        needle = q.strip().lower()
        out = [
            c for c in out
            if needle in c.title.lower()
            or needle in c.content.lower()
            or any(needle in k.lower() for k in split_keywords(c.keywords))
        ]
    if importance:
        out = [c for c in out if c.importance == importance]
    if category:
        out = [c for c in out if c.category == category]
    return out


def filter_lectures(lectures, q=None, category=None):
    """Case-insensitive search over title, description and transcript."""
    out = list(lectures)
    if q:
        needle = q.strip().lower()
        out = [
            l for l in out
            if needle in l.title.lower()
            or needle in (l.description or "").lower()
            or needle in (l.transcript or "").lower()
        ]
    if category:
        out = [l for l in out if l.category == category]
    return out


class CatalogImportService:
    """Bulk-load apps, concepts and lectures through the normal handlers."""
    def __init__(self, store: DocumentStore):
        self.apps = AppService(store)
        self.concepts = ConceptService(store)
        self.lectures = LectureService(store)

    def import_catalog(self, payload: dict, dry_run: bool = False) -> dict:
        """Import a `{apps, concepts, lectures}` mapping of item lists.

        Apps are created first so concepts and lectures can reference them.
        Returns created counts per section and a list of per-item `errors`;
        one bad item never stops the rest.
        """
        sections = (
            ("apps", schemas.AppIn, self.apps.create_app),
            ("concepts", schemas.ConceptIn, self.concepts.create_concept),
            ("lectures", schemas.LectureIn, self.lectures.create_lecture),
        )
        created = {name: 0 for name, _, _ in sections}
        errors = []
        for name, model, handler in sections:
            for idx, item in enumerate(payload.get(name) or []):
                try:
                    data = model.model_validate(item)
                except ValidationError as e:
                    errors.append({"section": name, "index": idx, "error": str(e)})
                    continue
                if dry_run:
                    continue
                result = handler(data)
                if result.success:
                    created[name] += 1
                else:
                    errors.append({"section": name, "index": idx, "error": result.message})
        return {"created": created, "errors": errors}
