"""Ingestion pipeline: fetch, parse, normalize, merge, post-normalize, map."""
