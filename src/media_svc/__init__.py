"""
Evermark Media Service - image source resolution and caching

Given an evermark whose image may live in several storage tiers:
- Builds a priority-ordered list of candidate URLs
- Probes them under time and retry budgets
- Caches the winning URL with TTL and LRU eviction
- Promotes durable-tier (content-addressed) images into the fast tier
  in the background
"""

__version__ = "0.1.0"
