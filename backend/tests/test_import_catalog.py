from jmkcms.services import CatalogImportService, CatalogService, ConceptService


def _payload():
    return {
        "apps": [
            {"bundle_id": "indsafety", "app_name": "산업안전기사", "status": "published"},
            {"bundle_id": "elec", "app_name": "전기기사", "app_category": "not-a-category"},
        ],
        "concepts": [
            {"app_id": "indsafety", "title": "하인리히 법칙", "importance": 5},
            {"app_id": "elec", "title": "옴의 법칙"},
            {"app_id": "indsafety", "title": "bad", "importance": 9},
        ],
        "lectures": [
            {"app_id": "indsafety", "title": "1강", "youtube_video_id": "vid1"},
        ],
    }


def test_import_creates_items_and_collects_errors(store):
    result = CatalogImportService(store).import_catalog(_payload())
    assert result["created"] == {"apps": 1, "concepts": 1, "lectures": 1}
    sections = sorted((e["section"], e["index"]) for e in result["errors"])
    # invalid category, concept for the rejected app, importance out of range
    assert sections == [("apps", 1), ("concepts", 1), ("concepts", 2)]
    assert CatalogService(store).get_published_app("indsafety") is not None
    assert [c.title for c in ConceptService(store).repo.list_by_app("indsafety")] == ["하인리히 법칙"]


def test_dry_run_writes_nothing(store):
    result = CatalogImportService(store).import_catalog(_payload(), dry_run=True)
    assert result["created"] == {"apps": 0, "concepts": 0, "lectures": 0}
    assert len(result["errors"]) == 2
    assert store.query("apps") == []


def test_reimport_reports_duplicates(store):
    svc = CatalogImportService(store)
    svc.import_catalog({"apps": [{"bundle_id": "indsafety", "app_name": "a"}]})
    again = svc.import_catalog({"apps": [{"bundle_id": "indsafety", "app_name": "a"}]})
    assert again["created"]["apps"] == 0
    assert "이미 존재하는" in again["errors"][0]["error"]
