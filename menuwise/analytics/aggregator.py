from __future__ import annotations

from collections import Counter
from typing import Any


def _rate(count: int, total: int) -> float:
    return round(count / total * 100, 1) if total else 0.0


def compute_analytics(events: list[dict[str, Any]]) -> dict[str, Any]:
    runs = [e for e in events if e["type"] == "recommendation"]
    total = len(runs)

    # Average response time
    times = [r["response_time_ms"] for r in runs if "response_time_ms" in r]
    avg_time = round(sum(times) / len(times), 1) if times else 0.0

    # Cache usage
    status_counter: Counter[str] = Counter(r.get("cache_status") or "none" for r in runs)

    # Photo selection decisions
    decisions = Counter(r["selection_decision"] for r in runs if r.get("selection_decision"))

    # Fallback rates
    extraction_fallbacks = sum(1 for r in runs if r.get("extraction_degraded"))
    ranking_fallbacks = sum(1 for r in runs if r.get("ranking_degraded"))

    # Top tags
    tag_counter: Counter[str] = Counter()
    for r in runs:
        for tag in r.get("tags", []) or []:
            tag_counter[tag] += 1
    top_tags = [{"name": n, "count": c} for n, c in tag_counter.most_common(10)]

    # Removals
    filter_removed = sum(r.get("filter_removed", 0) for r in runs)
    guard_removed = sum(r.get("guard_removed", 0) for r in runs)
    final_removed = sum(r.get("final_removed", 0) for r in runs)

    return {
        "total_runs": total,
        "avg_response_time_ms": avg_time,
        "cache_stats": {
            "exact_hits": status_counter["exact"],
            "menu_reuses": status_counter["menu"],
            "misses": status_counter["miss"],
            "hit_rate": _rate(status_counter["exact"], total),
            "menu_reuse_rate": _rate(status_counter["menu"], total),
        },
        "selection_decisions": dict(decisions),
        "fallback_rates": {
            "extraction": _rate(extraction_fallbacks, total),
            "ranking": _rate(ranking_fallbacks, total),
        },
        "top_tags": top_tags,
        "removals": {
            "hard_filter": filter_removed,
            "guard": guard_removed,
            "final": final_removed,
        },
    }
