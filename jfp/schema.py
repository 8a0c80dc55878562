SCHEMA_SQL = r"""
PRAGMA foreign_keys = ON;
PRAGMA journal_mode = WAL;

CREATE TABLE IF NOT EXISTS registry_meta (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS prompts (
  id TEXT PRIMARY KEY,
  title TEXT NOT NULL,
  content TEXT NOT NULL,
  description TEXT,
  category TEXT,
  tags_text TEXT NOT NULL DEFAULT '',
  featured INTEGER NOT NULL DEFAULT 0,
  version TEXT,
  author TEXT,
  saved_at TEXT,
  is_local INTEGER NOT NULL DEFAULT 0,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS prompt_tags (
  prompt_id TEXT NOT NULL,
  tag TEXT NOT NULL,
  position INTEGER NOT NULL DEFAULT 0,
  PRIMARY KEY (prompt_id, tag),
  FOREIGN KEY (prompt_id) REFERENCES prompts(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS prompt_variables (
  prompt_id TEXT NOT NULL,
  name TEXT NOT NULL,
  var_type TEXT NOT NULL DEFAULT 'text',
  required INTEGER NOT NULL DEFAULT 0,
  description TEXT,
  default_value TEXT,
  position INTEGER NOT NULL DEFAULT 0,
  PRIMARY KEY (prompt_id, name),
  FOREIGN KEY (prompt_id) REFERENCES prompts(id) ON DELETE CASCADE
);

-- Derived search index; rebuilt from the prompt row on every upsert.
CREATE VIRTUAL TABLE IF NOT EXISTS prompts_fts USING fts5(
  id,
  title,
  description,
  content,
  tags_text,
  tokenize = 'unicode61'
);

CREATE INDEX IF NOT EXISTS idx_prompts_category ON prompts(category);
CREATE INDEX IF NOT EXISTS idx_prompts_title ON prompts(title);
CREATE INDEX IF NOT EXISTS idx_prompt_tags_tag ON prompt_tags(tag);
"""

# Columns added after version 1, applied with ALTER TABLE on open.
ADDED_COLUMNS = (
    ("prompts", "saved_at", "TEXT"),
    ("prompts", "is_local", "INTEGER NOT NULL DEFAULT 0"),
    ("prompt_tags", "position", "INTEGER NOT NULL DEFAULT 0"),
    ("prompt_variables", "position", "INTEGER NOT NULL DEFAULT 0"),
)
