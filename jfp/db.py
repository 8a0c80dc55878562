import logging
import os
import sqlite3

logger = logging.getLogger("jfp")

from .constants import BUSY_TIMEOUT_MS, SCHEMA_VERSION, SEARCH_WEIGHTS
from .errors import SearchSyntaxError, StoreOpenError, StoreReadError, StoreWriteError
from .models import Prompt, PromptVariable, VariableType
from .paths import get_db_path
from .schema import ADDED_COLUMNS, SCHEMA_SQL
from .utils import now_iso

_PROMPT_COLUMNS = (
    "id, title, content, description, category, featured, version, author, saved_at, is_local"
)

# SQLite caps bound parameters per statement; hydrate in chunks below that.
_IN_CHUNK = 500


def escape_fts_phrase(raw):
    """Quote ``raw`` as one FTS5 phrase so operators and punctuation are literal."""
    return '"' + (raw or "").replace('"', '""') + '"'


def _is_fts_query_error(exc):
    msg = str(exc).lower()
    return "fts5" in msg or "syntax error" in msg or "no such column" in msg or "unterminated" in msg


class PromptStore:
    """SQLite-backed prompt store with an FTS5 relevance index.

    Every public method opens its own connection and closes it before
    returning, so a store object can be shared freely within a process and
    several processes may use the same file (WAL + busy timeout).
    """

    def __init__(self, db_path=None):
        self.db_path = db_path or get_db_path()
        try:
            parent = os.path.dirname(os.path.abspath(self.db_path))
            os.makedirs(parent, exist_ok=True)
            self._init_db()
        except (OSError, sqlite3.Error) as exc:
            raise StoreOpenError(f"Failed to open prompt store at {self.db_path}: {exc}") from exc

    @classmethod
    def open(cls, home=None):
        return cls(get_db_path(home))

    @classmethod
    def open_at(cls, path):
        return cls(os.fspath(path))

    def _connect(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
        return conn

    def _init_db(self):
        conn = self._connect()
        try:
            conn.execute("PRAGMA journal_mode = WAL")
            current = self._read_schema_version(conn)
            if current < SCHEMA_VERSION:
                logger.info("migrating prompt store %s from schema %d to %d", self.db_path, current, SCHEMA_VERSION)
                conn.executescript(SCHEMA_SQL)
                self._migrate_db(conn)
                conn.execute(
                    "INSERT OR REPLACE INTO registry_meta(key,value) VALUES('schema_version', ?)",
                    (str(SCHEMA_VERSION),),
                )
                conn.commit()
            elif current > SCHEMA_VERSION:
                logger.warning(
                    "prompt store %s has schema %d, newer than supported %d", self.db_path, current, SCHEMA_VERSION
                )
        finally:
            conn.close()

    @staticmethod
    def _read_schema_version(conn):
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'registry_meta'"
        ).fetchone()
        if not row:
            return 0
        row = conn.execute("SELECT value FROM registry_meta WHERE key = 'schema_version'").fetchone()
        if not row:
            return 0
        try:
            return int(row["value"])
        except (TypeError, ValueError):
            return 0

    def _migrate_db(self, conn):
        for table, column, decl in ADDED_COLUMNS:
            cols = {row["name"] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}
            if column not in cols:
                logger.info("adding column %s.%s", table, column)
                conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {decl}")

    def schema_version(self):
        conn = self._connect()
        try:
            return self._read_schema_version(conn)
        finally:
            conn.close()

    # ── writes ──

    def _write_prompt(self, conn, prompt, now):
        row = conn.execute("SELECT created_at FROM prompts WHERE id = ?", (prompt.id,)).fetchone()
        created_at = row["created_at"] if row else now

        conn.execute("DELETE FROM prompts_fts WHERE id = ?", (prompt.id,))
        conn.execute("DELETE FROM prompt_variables WHERE prompt_id = ?", (prompt.id,))
        conn.execute("DELETE FROM prompt_tags WHERE prompt_id = ?", (prompt.id,))
        conn.execute("DELETE FROM prompts WHERE id = ?", (prompt.id,))

        tags_text = prompt.tags_text
        conn.execute(
            """
            INSERT INTO prompts(
              id,title,content,description,category,tags_text,featured,version,author,
              saved_at,is_local,created_at,updated_at
            ) VALUES(?,?,?,?,?,?,?,?,?,?,?,?,?)
            """,
            (
                prompt.id,
                prompt.title,
                prompt.content,
                prompt.description,
                prompt.category,
                tags_text,
                1 if prompt.featured else 0,
                prompt.version,
                prompt.author,
                prompt.saved_at,
                1 if prompt.is_local else 0,
                created_at,
                now,
            ),
        )
        conn.executemany(
            "INSERT INTO prompt_tags(prompt_id,tag,position) VALUES(?,?,?)",
            [(prompt.id, tag, pos) for pos, tag in enumerate(prompt.tags)],
        )
        conn.executemany(
            """
            INSERT INTO prompt_variables(prompt_id,name,var_type,required,description,default_value,position)
            VALUES(?,?,?,?,?,?,?)
            """,
            [
                (prompt.id, v.name, v.type.value, 1 if v.required else 0, v.description, v.default, pos)
                for pos, v in enumerate(prompt.variables)
            ],
        )
        conn.execute(
            "INSERT INTO prompts_fts(id,title,description,content,tags_text) VALUES(?,?,?,?,?)",
            (prompt.id, prompt.title, prompt.description or "", prompt.content, tags_text),
        )

    def upsert(self, prompt):
        """Replace ``prompt`` and all of its tag, variable and index rows atomically."""
        self._write_many([prompt], label=f"prompt '{prompt.id}'")

    def bulk_upsert(self, prompts):
        """Apply every prompt in one transaction; all succeed or none do."""
        prompts = list(prompts)
        if not prompts:
            return 0
        self._write_many(prompts, label=f"{len(prompts)} prompts")
        logger.debug("bulk_upsert wrote %d prompts", len(prompts))
        return len(prompts)

    def _write_many(self, prompts, label):
        conn = self._connect()
        current_id = None
        try:
            conn.execute("BEGIN IMMEDIATE")
            now = now_iso()
            for prompt in prompts:
                current_id = prompt.id
                self._write_prompt(conn, prompt, now)
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StoreWriteError(f"Failed to write {label} (at '{current_id}'): {exc}") from exc
        finally:
            conn.close()

    def delete(self, prompt_id):
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute("DELETE FROM prompts_fts WHERE id = ?", (prompt_id,))
            conn.execute("DELETE FROM prompt_variables WHERE prompt_id = ?", (prompt_id,))
            conn.execute("DELETE FROM prompt_tags WHERE prompt_id = ?", (prompt_id,))
            cur = conn.execute("DELETE FROM prompts WHERE id = ?", (prompt_id,))
            conn.commit()
            return cur.rowcount > 0
        except sqlite3.Error as exc:
            conn.rollback()
            raise StoreWriteError(f"Failed to delete prompt '{prompt_id}': {exc}") from exc
        finally:
            conn.close()

    def reset(self):
        """Remove every prompt and its dependent rows; meta keys are kept."""
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute("DELETE FROM prompts_fts")
            conn.execute("DELETE FROM prompt_variables")
            conn.execute("DELETE FROM prompt_tags")
            cur = conn.execute("DELETE FROM prompts")
            conn.commit()
            return cur.rowcount
        except sqlite3.Error as exc:
            conn.rollback()
            raise StoreWriteError(f"Failed to reset prompt store: {exc}") from exc
        finally:
            conn.close()

    # ── reads ──

    def get(self, prompt_id):
        conn = self._connect()
        try:
            row = conn.execute(f"SELECT {_PROMPT_COLUMNS} FROM prompts WHERE id = ?", (prompt_id,)).fetchone()
            if not row:
                return None
            return self._hydrate(conn, [row])[0]
        except sqlite3.Error as exc:
            raise StoreReadError(f"Failed to read prompt '{prompt_id}': {exc}") from exc
        finally:
            conn.close()

    def list(self, category=None, tag=None, featured_only=False):
        where = []
        params = []
        if category is not None:
            where.append("category = ?")
            params.append(category)
        if tag is not None:
            where.append("id IN (SELECT prompt_id FROM prompt_tags WHERE tag = ?)")
            params.append(tag)
        if featured_only:
            where.append("featured = 1")
        where_sql = f"WHERE {' AND '.join(where)}" if where else ""

        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT {_PROMPT_COLUMNS} FROM prompts {where_sql} ORDER BY title ASC, id ASC",
                params,
            ).fetchall()
            logger.debug("list category=%r tag=%r featured_only=%r rows=%d", category, tag, featured_only, len(rows))
            return self._hydrate(conn, rows)
        except sqlite3.Error as exc:
            raise StoreReadError(f"Failed to list prompts: {exc}") from exc
        finally:
            conn.close()

    def category_counts(self):
        return self._pairs(
            """
            SELECT category AS name, COUNT(*) AS total
            FROM prompts
            WHERE category IS NOT NULL
            GROUP BY category
            ORDER BY category ASC
            """,
            "category counts",
        )

    def tag_counts(self):
        return self._pairs(
            """
            SELECT tag AS name, COUNT(*) AS total
            FROM prompt_tags
            GROUP BY tag
            ORDER BY total DESC, tag ASC
            """,
            "tag counts",
        )

    def _pairs(self, sql, what):
        conn = self._connect()
        try:
            return [(r["name"], int(r["total"])) for r in conn.execute(sql).fetchall()]
        except sqlite3.Error as exc:
            raise StoreReadError(f"Failed to read {what}: {exc}") from exc
        finally:
            conn.close()

    def count(self):
        conn = self._connect()
        try:
            row = conn.execute("SELECT COUNT(*) AS total FROM prompts").fetchone()
            return int(row["total"] if row else 0)
        except sqlite3.Error as exc:
            raise StoreReadError(f"Failed to count prompts: {exc}") from exc
        finally:
            conn.close()

    def search(self, query, limit):
        """Ranked full-text search; returns ``[(prompt, score)]``, higher score first.

        bm25() is lower-is-better, so the score is negated before returning.
        """
        weights = ", ".join(str(w) for _, w in SEARCH_WEIGHTS)
        sql = f"""
        SELECT p.id, p.title, p.content, p.description, p.category, p.featured,
               p.version, p.author, p.saved_at, p.is_local,
               bm25(prompts_fts, {weights}) AS rank
        FROM prompts_fts f
        JOIN prompts p ON p.id = f.id
        WHERE prompts_fts MATCH ?
        ORDER BY rank ASC, p.title ASC
        LIMIT ?
        """
        logger.debug("search input: q=%r limit=%d", query, int(limit))
        conn = self._connect()
        try:
            try:
                rows = conn.execute(sql, (query, int(limit))).fetchall()
            except sqlite3.OperationalError as exc:
                if _is_fts_query_error(exc):
                    raise SearchSyntaxError(f"Invalid search query {query!r}: {exc}") from exc
                raise StoreReadError(f"Search failed for {query!r}: {exc}") from exc
            logger.debug("FTS rows=%d", len(rows))
            prompts = self._hydrate(conn, rows)
            return [(prompt, -float(row["rank"])) for prompt, row in zip(prompts, rows)]
        except sqlite3.Error as exc:
            raise StoreReadError(f"Search failed for {query!r}: {exc}") from exc
        finally:
            conn.close()

    # ── meta ──

    def get_meta(self, key):
        conn = self._connect()
        try:
            row = conn.execute("SELECT value FROM registry_meta WHERE key = ?", (key,)).fetchone()
            return row["value"] if row else None
        except sqlite3.Error as exc:
            raise StoreReadError(f"Failed to read meta '{key}': {exc}") from exc
        finally:
            conn.close()

    def set_meta(self, key, value):
        conn = self._connect()
        try:
            conn.execute(
                "INSERT OR REPLACE INTO registry_meta(key, value) VALUES(?, ?)",
                (key, str(value)),
            )
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StoreWriteError(f"Failed to write meta '{key}': {exc}") from exc
        finally:
            conn.close()

    # ── diagnostics ──

    def integrity_check(self):
        conn = self._connect()
        try:
            row = conn.execute("PRAGMA integrity_check").fetchone()
            return bool(row) and row[0] == "ok"
        except sqlite3.Error as exc:
            logger.warning("integrity_check failed: %s", exc)
            return False
        finally:
            conn.close()

    def checkpoint(self):
        conn = self._connect()
        try:
            conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
        finally:
            conn.close()

    # ── row mapping ──

    def _hydrate(self, conn, rows):
        """Turn prompt rows into Prompt objects with ordered tags and variables."""
        ids = [r["id"] for r in rows]
        tags = {pid: [] for pid in ids}
        variables = {pid: [] for pid in ids}
        unique_ids = list(dict.fromkeys(ids))
        for start in range(0, len(unique_ids), _IN_CHUNK):
            chunk = unique_ids[start : start + _IN_CHUNK]
            placeholders = ",".join(["?"] * len(chunk))
            for r in conn.execute(
                f"SELECT prompt_id, tag FROM prompt_tags WHERE prompt_id IN ({placeholders}) "
                "ORDER BY prompt_id, position",
                chunk,
            ).fetchall():
                tags[r["prompt_id"]].append(r["tag"])
            for r in conn.execute(
                "SELECT prompt_id, name, var_type, required, description, default_value "
                f"FROM prompt_variables WHERE prompt_id IN ({placeholders}) ORDER BY prompt_id, position",
                chunk,
            ).fetchall():
                variables[r["prompt_id"]].append(self._row_to_variable(r))
        return [self._row_to_prompt(r, tags[r["id"]], variables[r["id"]]) for r in rows]

    @staticmethod
    def _row_to_variable(row):
        try:
            var_type = VariableType(row["var_type"])
        except ValueError:
            var_type = VariableType.TEXT
        return PromptVariable(
            name=row["name"],
            type=var_type,
            required=bool(row["required"]),
            description=row["description"],
            default=row["default_value"],
        )

    @staticmethod
    def _row_to_prompt(row, tags, variables):
        return Prompt(
            id=row["id"],
            title=row["title"],
            content=row["content"],
            description=row["description"],
            category=row["category"],
            tags=list(tags),
            variables=list(variables),
            featured=bool(row["featured"]),
            version=row["version"],
            author=row["author"],
            saved_at=row["saved_at"],
            is_local=bool(row["is_local"]),
        )
