SCHEMA_SQL = r"""
PRAGMA journal_mode = WAL;

CREATE TABLE IF NOT EXISTS meta (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS frames (
  id TEXT PRIMARY KEY,
  timestamp TEXT NOT NULL,
  main TEXT NOT NULL DEFAULT '',
  details TEXT NOT NULL DEFAULT '',
  picture BLOB,
  picture_format TEXT,
  picture_width INTEGER,
  picture_height INTEGER,
  thumbnail_png BLOB,
  thumbnail_width INTEGER,
  thumbnail_height INTEGER,
  is_bookmarked INTEGER NOT NULL DEFAULT 0
);

-- rowid breaks timestamp ties, so list order stays stable.
CREATE INDEX IF NOT EXISTS idx_frames_timestamp ON frames(timestamp);
CREATE INDEX IF NOT EXISTS idx_frames_bookmarked ON frames(is_bookmarked, timestamp);
"""
