"""Utility modules for docmap.

- **confidence** -- Coercion of model-supplied scores into [0, 1] and the
  MAX merge rule used when duplicate items are combined.
- **concurrency** -- Semaphore-throttled gather and a sliding-window rate
  limiter that keep provider calls within budget.
- **errors** -- Exception hierarchy rooted at DocMapError; each class says
  whether a job failing with it is worth retrying.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **text_normalizer** -- Case/whitespace/quote folding used to build
  deduplication keys.
"""
