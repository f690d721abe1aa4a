"""
Recommendation engine.

Responsibilities:
- Rank eligible dishes within budget and an optional calorie ceiling.
- Guard the ranking with pre- and post-ranking validation passes and backfill.
- Memoize the last recommendation per photo content.
- Run the full pipeline from photo to plan.
"""
