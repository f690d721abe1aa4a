import threading

from menuwise.menu.models import MenuInfo, MenuItem
from menuwise.recommendations.cache import RecommendationCache, calories_signature
from menuwise.recommendations.models import CacheStatus, CalorieLimit, RecommendationPlan

MENU = MenuInfo(items=[MenuItem(name="Tea", price=3.0)])
PLAN = RecommendationPlan(budget=20, within_budget=True, rationale="tea")


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def _store(cache, image_sig="img-1", budget=20.0, tags_sig="t", calories_sig=""):
    return cache.store(image_sig, MENU, PLAN, budget, tags_sig, calories_sig)


def test_empty_cache_misses():
    cache = RecommendationCache()

    status, entry = cache.lookup("img-1", 20.0, "t", "")

    assert status == CacheStatus.miss
    assert entry is None
    assert cache.last() is None


def test_exact_match_returns_plan_unchanged():
    cache = RecommendationCache()
    _store(cache)

    status, entry = cache.lookup("img-1", 20.0, "t", "")

    assert status == CacheStatus.exact
    assert entry.recommendation is PLAN


def test_budget_change_reuses_menu():
    cache = RecommendationCache()
    _store(cache, budget=20.0)

    status, entry = cache.lookup("img-1", 30.0, "t", "")

    assert status == CacheStatus.menu
    assert entry.menu_info is MENU


def test_tag_or_calorie_change_reuses_menu():
    cache = RecommendationCache()
    _store(cache)

    assert cache.lookup("img-1", 20.0, "other", "")[0] == CacheStatus.menu
    assert cache.lookup("img-1", 20.0, "t", calories_signature(CalorieLimit(max_per_person=800)))[0] == CacheStatus.menu


def test_new_image_supersedes_old_entry():
    cache = RecommendationCache()
    _store(cache, image_sig="img-1")
    _store(cache, image_sig="img-2")

    assert cache.lookup("img-1", 20.0, "t", "")[0] == CacheStatus.miss
    assert cache.last().image_signature == "img-2"
    assert cache.stats()["size"] == 1


def test_ttl_expiry_uses_injected_clock():
    clock = FakeClock()
    cache = RecommendationCache(clock=clock, ttl_seconds=60)
    entry = _store(cache)
    assert entry.created_at == 1000.0

    clock.now += 59
    assert cache.lookup("img-1", 20.0, "t", "")[0] == CacheStatus.exact

    clock.now += 1
    assert cache.lookup("img-1", 20.0, "t", "")[0] == CacheStatus.miss
    assert cache.last() is None


def test_injected_hasher():
    cache = RecommendationCache(hasher=lambda data: f"len:{len(data)}")

    assert cache.image_signature(b"abcd") == "len:4"


def test_default_hasher_is_content_addressed():
    cache = RecommendationCache()

    assert cache.image_signature(b"menu") == cache.image_signature(b"menu")
    assert cache.image_signature(b"menu") != cache.image_signature(b"menu2")
    assert len(cache.image_signature(b"menu")) == 64


def test_stats_and_clear():
    cache = RecommendationCache()
    cache.lookup("img-1", 20.0, "t", "")
    _store(cache)
    cache.lookup("img-1", 20.0, "t", "")
    cache.lookup("img-1", 25.0, "t", "")

    stats = cache.stats()
    assert stats == {"size": 1, "hits": 1, "menu_reuses": 1, "misses": 1, "hit_rate": 33.3}

    cache.clear()
    assert cache.stats() == {"size": 0, "hits": 0, "menu_reuses": 0, "misses": 0, "hit_rate": 0.0}
    assert cache.last() is None


def test_calories_signature():
    assert calories_signature(CalorieLimit()) == ""
    assert calories_signature(CalorieLimit(max_per_person=800)) == calories_signature(CalorieLimit(max_per_person=800))
    assert calories_signature(CalorieLimit(max_per_person=800)) != calories_signature(CalorieLimit(max_per_person=900))


def test_concurrent_store_and_lookup():
    cache = RecommendationCache()
    errors = []

    def worker(n):
        try:
            for i in range(200):
                _store(cache, image_sig=f"img-{n}", budget=float(i))
                cache.lookup(f"img-{n}", float(i), "t", "")
        except Exception as exc:  # pragma: no cover
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    stats = cache.stats()
    assert stats["hits"] + stats["menu_reuses"] + stats["misses"] == 800
