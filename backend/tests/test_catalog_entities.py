from unittest.mock import MagicMock

import pytest

from jmkcms.database import DocumentSnapshot, DocumentStore
from jmkcms.errors import StoreError
from jmkcms.schemas import AppIn, AppUpdate, ConceptIn, ConceptUpdate, LectureIn, LectureUpdate
from jmkcms.services import AppService, ConceptService, LectureService

INDSAFETY = {
    "bundle_id": "indsafety",
    "app_name": "산업안전기사",
    "app_name_full": "산업안전기사 필기 CBT",
    "description": "산업안전기사 필기 시험 대비 앱",
    "description_full": "",
    "app_store_url": "https://apps.apple.com/app/id000",
    "icon_url": "https://example.com/icon.png",
    "categories": ["산업안전관리론", "인간공학"],
    "app_category": "안전",
    "status": "draft",
    "is_featured": False,
    "rating": 4.5,
    "download_count": 1200,
}


def _seed_app(store, **overrides):
    data = {**INDSAFETY, **overrides}
    result = AppService(store).create_app(AppIn(**data))
    assert result.success, result.message
    return data["bundle_id"]


def test_app_round_trip_over_http(admin_client):
    r = admin_client.post("/admin/apps", json=INDSAFETY)
    assert r.status_code == 200
    assert r.json() == {"success": True, "message": r.json()["message"], "id": "indsafety"}
    assert "생성" in r.json()["message"]
    got = admin_client.get("/admin/apps/indsafety").json()
    for key, value in INDSAFETY.items():
        assert got[key] == value
    assert got["created_at"] is not None
    assert got["updated_at"] is not None


def test_draft_apps_are_not_public(admin_client):
    admin_client.post("/admin/apps", json=INDSAFETY)
    assert admin_client.get("/api/apps/indsafety").status_code == 404
    assert admin_client.get("/api/apps").json()["apps"] == []
    r = admin_client.put("/admin/apps/indsafety", json={"status": "published"})
    assert r.json()["success"] is True
    assert "수정" in r.json()["message"]
    public = admin_client.get("/api/apps/indsafety")
    assert public.status_code == 200
    assert public.json()["app_name"] == "산업안전기사"


def test_duplicate_bundle_id_rejected(store):
    _seed_app(store)
    result = AppService(store).create_app(AppIn(**{**INDSAFETY, "app_name": "other"}))
    assert result.success is False
    assert AppService(store).repo.get("indsafety").app_name == "산업안전기사"


@pytest.mark.parametrize("bundle_id", ["", "   ", "a/b"])
def test_unusable_bundle_ids_rejected(store, bundle_id):
    result = AppService(store).create_app(AppIn(**{**INDSAFETY, "bundle_id": bundle_id}))
    assert result.success is False
    assert "Bundle ID" in result.message


def test_app_update_is_partial_and_keeps_bundle_id(store):
    _seed_app(store)
    AppService(store).update_app("indsafety", AppUpdate(is_featured=True, rating=4.9))
    app = AppService(store).repo.get("indsafety")
    assert app.is_featured is True
    assert app.rating == 4.9
    assert app.app_name == "산업안전기사"
    assert app.bundle_id == "indsafety"


def test_update_missing_app_fails(store):
    result = AppService(store).update_app("ghost", AppUpdate(app_name="x"))
    assert result.success is False
    assert "존재하지 않는" in result.message
    assert AppService(store).repo.get("ghost") is None


def test_app_delete_does_not_cascade(store):
    _seed_app(store)
    concept_id = ConceptService(store).create_concept(ConceptIn(app_id="indsafety", title="재해율")).id
    assert AppService(store).delete_app("indsafety").success is True
    assert AppService(store).repo.get("indsafety") is None
    assert ConceptService(store).repo.get(concept_id) is not None


def test_published_apps_sorted_and_counted(store):
    _seed_app(store, bundle_id="b", app_name="B앱", status="published")
    _seed_app(store, bundle_id="a", app_name="A앱", status="published", app_category="전기")
    _seed_app(store, bundle_id="f", app_name="Z앱", status="published", is_featured=True)
    _seed_app(store, bundle_id="d", app_name="D앱")
    from jmkcms.services import CatalogService

    out = CatalogService(store).published_apps()
    assert [a.bundle_id for a in out["apps"]] == ["f", "a", "b"]
    assert out["category_counts"] == {"안전": 2, "전기": 1}
    only_elec = CatalogService(store).published_apps("전기")
    assert [a.bundle_id for a in only_elec["apps"]] == ["a"]


def test_concept_requires_existing_app(store):
    result = ConceptService(store).create_concept(ConceptIn(app_id="nope", title="t"))
    assert result.success is False
    assert "존재하지 않는" in result.message


def test_concept_defaults_and_partial_update(store):
    _seed_app(store)
    svc = ConceptService(store)
    result = svc.create_concept(ConceptIn(app_id="indsafety", title="하인리히 법칙", keywords="재해, 1:29:300"))
    assert result.success is True
    assert "생성" in result.message
    concept = svc.repo.get(result.id)
    assert concept.importance == 3
    assert concept.keywords == "재해, 1:29:300"
    assert concept.related_question_ids == []
    assert concept.created_at is not None
    svc.update_concept(result.id, ConceptUpdate(importance=5, study_note="암기"))
    updated = svc.repo.get(result.id)
    assert (updated.importance, updated.study_note, updated.title) == (5, "암기", "하인리히 법칙")


def test_concept_importance_bounds():
    with pytest.raises(ValueError):
        ConceptIn(app_id="a", title="t", importance=6)
    with pytest.raises(ValueError):
        ConceptUpdate(importance=0)


@pytest.mark.parametrize("service_cls, method", [
    (ConceptService, "delete_concept"),
    (LectureService, "delete_lecture"),
])
def test_delete_store_error_is_reported(service_cls, method):
    store = MagicMock(spec=DocumentStore)
    store.delete.side_effect = StoreError("Delete failed")
    result = getattr(service_cls(store), method)("some-id")
    assert result.success is False
    assert "삭제" in result.message


def test_create_store_error_is_reported():
    store = MagicMock(spec=DocumentStore)
    store.get.return_value = DocumentSnapshot("indsafety", True, dict(INDSAFETY))
    store.add.side_effect = StoreError("quota")
    result = LectureService(store).create_lecture(LectureIn(app_id="indsafety", title="t"))
    assert result.success is False
    assert "생성" in result.message


def test_lecture_media_type_prefers_youtube(store):
    _seed_app(store)
    svc = LectureService(store)
    both = svc.create_lecture(LectureIn(app_id="indsafety", title="both", audio_url="https://x/a.mp3", youtube_video_id="abc123", duration_seconds=125)).id
    audio = svc.create_lecture(LectureIn(app_id="indsafety", title="audio", audio_url="https://x/a.mp3")).id
    assert svc.repo.get(both).media_type == "youtube"
    assert svc.repo.get(both).duration_label == "2:05"
    assert svc.repo.get(audio).media_type == "audio"
    with pytest.raises(ValueError):
        LectureIn(app_id="indsafety", title="neg", duration_seconds=-1)


def test_public_concepts_filtering(admin_client, store):
    _seed_app(store, status="published")
    svc = ConceptService(store)
    svc.create_concept(ConceptIn(app_id="indsafety", title="하인리히 법칙", category="안전관리", importance=5, keywords="재해,비율"))
    svc.create_concept(ConceptIn(app_id="indsafety", title="버드 이론", category="안전관리", importance=4, content="손실 제어"))
    svc.create_concept(ConceptIn(app_id="indsafety", title="인체 측정", category="인간공학", importance=3))

    body = admin_client.get("/api/apps/indsafety/concepts").json()
    assert [c["title"] for c in body["concepts"]] == ["하인리히 법칙", "버드 이론", "인체 측정"]
    assert body["categories"] == ["안전관리", "인간공학"]
    assert body["app"]["bundle_id"] == "indsafety"

    assert [c["title"] for c in admin_client.get("/api/apps/indsafety/concepts", params={"q": "재해"}).json()["concepts"]] == ["하인리히 법칙"]
    assert [c["title"] for c in admin_client.get("/api/apps/indsafety/concepts", params={"q": "손실"}).json()["concepts"]] == ["버드 이론"]
    assert admin_client.get("/api/apps/indsafety/concepts", params={"importance": 3}).json()["total"] == 1
    assert admin_client.get("/api/apps/indsafety/concepts", params={"category": "안전관리"}).json()["total"] == 2
    assert admin_client.get("/api/apps/missing/concepts").status_code == 404


def test_public_lectures_payload(admin_client, store):
    _seed_app(store, status="published")
    LectureService(store).create_lecture(LectureIn(app_id="indsafety", title="1강", youtube_video_id="vid1", duration_seconds=600, description="x" * 150))
    LectureService(store).create_lecture(LectureIn(app_id="indsafety", title="2강", transcript="오늘은 보호구에 대해", category="보호구"))
    body = admin_client.get("/api/apps/indsafety/lectures").json()
    first, second = body["lectures"]
    assert first["embed_url"] == "https://www.youtube.com/embed/vid1"
    assert first["duration_label"] == "10:00"
    assert first["preview"] == "x" * 100 + "..."
    assert second["media_type"] is None
    assert second["preview"] == "오늘은 보호구에 대해"
    filtered = admin_client.get("/api/apps/indsafety/lectures", params={"q": "보호구"}).json()
    assert [l["title"] for l in filtered["lectures"]] == ["2강"]


def test_admin_concept_overview(admin_client, store):
    _seed_app(store)
    for importance in (5, 5, 4, 1):
        ConceptService(store).create_concept(ConceptIn(app_id="indsafety", title=f"c{importance}", importance=importance))
    body = admin_client.get("/admin/concepts").json()
    assert body["total"] == 4
    assert body["by_importance"] == {"5": 2, "4": 1, "3": 0}


def test_admin_lecture_crud_over_http(admin_client, store):
    _seed_app(store)
    r = admin_client.post("/admin/lectures", json={"app_id": "indsafety", "title": "1강"})
    lecture_id = r.json()["id"]
    assert admin_client.put(f"/admin/lectures/{lecture_id}", json={"duration_seconds": 90}).json()["success"] is True
    assert admin_client.get(f"/admin/lectures/{lecture_id}").json()["duration_label"] == "1:30"
    assert admin_client.delete(f"/admin/lectures/{lecture_id}").json()["success"] is True
    assert admin_client.get(f"/admin/lectures/{lecture_id}").status_code == 404
    # already deleted ids are not distinguished from never-existing ones
    assert admin_client.delete(f"/admin/lectures/{lecture_id}").json()["success"] is True


def test_store_failure_on_read_is_503(admin_client, monkeypatch):
    from jmkcms import main
    from jmkcms.database import get_document_store

    broken = MagicMock(spec=DocumentStore)
    broken.query.side_effect = StoreError("down")
    main.app.dependency_overrides[get_document_store] = lambda: broken
    assert admin_client.get("/api/apps").status_code == 503


def test_null_for_required_field_is_rejected(admin_client):
    admin_client.post("/admin/apps", json={**INDSAFETY, "status": "published"})
    r = admin_client.put("/admin/apps/indsafety", json={"app_name": None})
    assert r.status_code == 422
    listed = admin_client.get("/api/apps")
    assert listed.status_code == 200
    assert [a["app_name"] for a in listed.json()["apps"]] == ["산업안전기사"]
    assert admin_client.get("/admin/apps").status_code == 200


def test_app_category_can_be_cleared(admin_client):
    admin_client.post("/admin/apps", json=INDSAFETY)
    r = admin_client.put("/admin/apps/indsafety", json={"app_category": None})
    assert r.json()["success"] is True
    assert admin_client.get("/admin/apps/indsafety").json()["app_category"] is None


@pytest.mark.parametrize("model, fields", [
    (ConceptUpdate, {"title": None}),
    (ConceptUpdate, {"importance": None}),
    (LectureUpdate, {"duration_seconds": None}),
    (AppUpdate, {"is_featured": None}),
])
def test_update_schemas_reject_nulls(model, fields):
    with pytest.raises(ValueError):
        model(**fields)
