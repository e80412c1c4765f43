"""Prometheus metrics for memory writes, context builds, and backend calls."""

from prometheus_client import Counter, Histogram

# ── Memory operation counters ───────────────────────────────────────

MEMORY_WRITES = Counter(
    "convmem_memory_writes_total",
    "Total memory write batches",
    ["category", "status"],
)

MEMORY_ITEMS_WRITTEN = Counter(
    "convmem_memory_items_written_total",
    "Total memory items persisted",
    ["category", "scope"],
)

PII_REDACTIONS = Counter(
    "convmem_pii_redactions_total",
    "PII spans redacted before storage",
    ["kind"],
)

CLEANUP_DELETIONS = Counter(
    "convmem_cleanup_deletions_total",
    "Memory items deleted by retention sweeps or explicit erasure",
    ["reason"],
)

# ── Context cache ──────────────────────────────────────────────────

CONTEXT_CACHE_HITS = Counter(
    "convmem_context_cache_hits_total",
    "Conversation context cache hits",
)

CONTEXT_CACHE_MISSES = Counter(
    "convmem_context_cache_misses_total",
    "Conversation context cache misses",
)

CONTEXT_DEGRADED = Counter(
    "convmem_context_degraded_total",
    "Conversation contexts replaced by an empty fallback",
    ["reason"],
)

CONTEXT_BUILD_LATENCY = Histogram(
    "convmem_context_build_seconds",
    "Conversation context build latency",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

# ── Backend ────────────────────────────────────────────────────────

BACKEND_RETRIES = Counter(
    "convmem_backend_retries_total",
    "Retried backend attempts",
    ["operation", "error"],
)

BACKEND_FAILURES = Counter(
    "convmem_backend_failures_total",
    "Backend operations that exhausted their retries",
    ["operation"],
)
