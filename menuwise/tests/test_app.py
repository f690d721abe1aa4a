from __future__ import annotations

import base64
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from menuwise.app import app
from menuwise.menu.models import MenuInfo, MenuItem
from menuwise.outcome import Ok

client = TestClient(app)

MENU = MenuInfo(items=[
    MenuItem(name="Spring Rolls", price=6.50),
    MenuItem(name="Fried Rice", price=11.00),
    MenuItem(name="Kung Pao Chicken", price=13.50),
    MenuItem(name="Tea", price=3.00),
])

IMAGE_B64 = base64.b64encode(b"\xff\xd8" + b"\x05" * 4096).decode("ascii")


@pytest.fixture(autouse=True)
def offline_pipeline():
    with patch("menuwise.recommendations.pipeline.extract_menu", return_value=Ok(MENU)) as mock_extract, \
            patch("menuwise.llm.groq_client.Groq") as mock_groq_cls:
        mock_groq_cls.return_value.chat.completions.create.side_effect = Exception("offline")
        client.delete("/menu-analysis/cache")
        yield mock_extract


def _analysis(**overrides):
    body = {"image_base64": IMAGE_B64, "mime_type": "image/jpeg", "budget": 20}
    body.update(overrides)
    return client.post("/menu-analysis", json=body)


def test_health():
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_menu_analysis_returns_plan():
    resp = _analysis(tags=["vegetarian"], calories={"max_per_person": 900})

    assert resp.status_code == 200
    body = resp.json()
    plan = body["recommendation"]
    assert [p["name"] for p in plan["picks"]] == ["Spring Rolls", "Fried Rice"]
    assert plan["total"] == 17.5
    assert plan["within_budget"] is True
    assert body["cached"] is False
    assert body["tags_applied"] == ["vegetarian"]
    assert body["calories_applied"] == {"max_per_person": 900}
    assert body["removed_by_filter"][0]["name"] == "Kung Pao Chicken"


def test_menu_analysis_second_call_is_cached(offline_pipeline):
    first = _analysis().json()
    second = _analysis().json()

    assert second["cached"] is True
    assert second["recommendation"] == first["recommendation"]
    assert offline_pipeline.call_count == 1


def test_menu_analysis_accepts_data_url():
    resp = _analysis(image_base64=f"data:image/jpeg;base64,{IMAGE_B64}")

    assert resp.status_code == 200


def test_menu_analysis_rejects_bad_base64():
    resp = _analysis(image_base64="!!not-base64!!")

    assert resp.status_code == 400


def test_menu_analysis_rejects_bad_budget():
    resp = _analysis(budget=0)

    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "invalid_budget"


def test_menu_analysis_requires_budget():
    resp = client.post("/menu-analysis", json={"image_base64": IMAGE_B64})

    assert resp.status_code == 422


def test_last_analysis():
    assert client.get("/menu-analysis/last").status_code == 404

    _analysis(budget=30)
    resp = client.get("/menu-analysis/last")

    assert resp.status_code == 200
    assert resp.json()["budget"] == 30
    assert resp.json()["recommendation"]["total"] == 20.5


def test_rebudget_without_cached_menu():
    resp = client.post("/menu-analysis/rebudget", json={"budget": 30})

    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "no_cache"


def test_rebudget_reuses_cached_menu(offline_pipeline):
    _analysis(budget=20)

    resp = client.post("/menu-analysis/rebudget", json={"budget": 30})

    assert resp.status_code == 200
    body = resp.json()
    assert body["cache_status"] == "menu"
    assert [p["name"] for p in body["recommendation"]["picks"]] == ["Spring Rolls", "Fried Rice", "Tea"]
    assert body["recommendation"]["total"] == 20.5
    assert offline_pipeline.call_count == 1
    assert client.get("/menu-analysis/last").json()["budget"] == 30


def test_rebudget_with_new_tags():
    _analysis(budget=20)

    body = client.post("/menu-analysis/rebudget", json={"budget": 20, "tags": ["vegetarian"]}).json()

    assert body["tags_applied"] == ["vegetarian"]
    assert body["removed_by_filter"][0]["name"] == "Kung Pao Chicken"
    assert body["recommendation"]["total"] == 17.5


def test_rebudget_rejects_bad_budget():
    _analysis()

    resp = client.post("/menu-analysis/rebudget", json={"budget": -1})

    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "invalid_budget"


def test_clear_cache():
    _analysis()

    resp = client.delete("/menu-analysis/cache")

    assert resp.status_code == 200
    assert client.get("/menu-analysis/last").status_code == 404
    assert client.get("/cache/stats").json()["size"] == 0


def test_cache_stats():
    _analysis()
    _analysis()
    _analysis(budget=30)

    stats = client.get("/cache/stats").json()

    assert stats["misses"] == 1
    assert stats["hits"] == 1
    assert stats["menu_reuses"] == 1
    assert stats["size"] == 1


def _photo(photo_id, width, height, **extra):
    return {"id": photo_id, "width_px": width, "height_px": height, "image_base64": IMAGE_B64, **extra}


def test_photo_set_heuristic_selection():
    resp = client.post("/menu-analysis/photo-set", json={
        "photos": [
            _photo("interior", 1600, 600),
            _photo("menu", 1040, 1155, attribution_text=["Menu board"]),
        ],
        "budget": 20,
    })

    assert resp.status_code == 200
    body = resp.json()
    assert body["selection"]["decision"] == "heuristic"
    assert body["selection"]["picked"]["id"] == "menu"
    assert body["recommendation"]["total"] == 17.5


def test_photo_set_ocr_text_feeds_the_score():
    resp = client.post("/menu-analysis/photo-set", json={
        "photos": [_photo("p", 1200, 900, ocr_text="Appetizers $6.50 $11.00 $3.00")],
        "budget": 20,
    })

    body = resp.json()
    # 40 size + 10 prices + 5 keywords
    assert body["selection"]["decision"] == "undecided"
    assert body["selection"]["candidates"][0]["score"]["total"] == 55
    assert body["recommendation"] is None


def test_photo_set_unknown_photo_id():
    resp = client.post("/menu-analysis/photo-set", json={
        "photos": [_photo("menu", 1040, 1155)],
        "photo_id": "missing",
        "budget": 20,
    })

    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "unknown_photo_id"


def test_photo_set_empty():
    resp = client.post("/menu-analysis/photo-set", json={"photos": [], "budget": 20})

    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "no_photos"
