"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Histogram

chat_requests_total = Counter("docrag_chat_requests_total",
                              "Total number of chat requests processed")
chat_errors_total = Counter(
    "docrag_chat_errors_total", "Total number of chat streams ended with an error")
chat_latency_seconds = Histogram(
    "docrag_chat_latency_seconds", "Chat stream duration in seconds", buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0])

ingestions_total = Counter("docrag_ingestions_total",
                           "Total number of uploaded objects handed to the orchestrator")
ingestion_failures_total = Counter(
    "docrag_ingestion_failures_total", "Total number of ingestions recorded as FAILED")
ingestion_skipped_total = Counter(
    "docrag_ingestion_skipped_total", "Upload events skipped because of a malformed key")
ingestion_retries_exhausted_total = Counter(
    "docrag_ingestion_retries_exhausted_total", "Upload events dropped after the last retry attempt")
ingestion_duration_seconds = Histogram(
    "docrag_ingestion_duration_seconds", "End-to-end ingestion duration", buckets=[1.0, 5.0, 15.0, 30.0, 60.0, 300.0])

embedding_retries_total = Counter(
    "docrag_embedding_retries_total", "Embedding calls retried after throttling")
vectors_upserted_total = Counter(
    "docrag_vectors_upserted_total", "Vectors written to the vector store")
