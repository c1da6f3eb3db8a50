"""SQLite schema definition for notebook and settings storage."""

from __future__ import annotations

# Schema version, stamped into schema_version on first initialize()
SCHEMA_VERSION = 1

# words.date has no declared type so numeric dates keep numeric ordering
SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_version (version INTEGER PRIMARY KEY);

CREATE TABLE IF NOT EXISTS kv_items (
    area TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    PRIMARY KEY (area, key)
);

CREATE TABLE IF NOT EXISTS words (
    area TEXT NOT NULL,
    date NOT NULL,
    payload TEXT NOT NULL,
    PRIMARY KEY (area, date)
);
CREATE INDEX IF NOT EXISTS idx_words_area_date ON words(area, date DESC);

CREATE TABLE IF NOT EXISTS sync_meta (
    service_id TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""
