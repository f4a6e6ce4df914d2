import base64
import binascii
import csv
import io
import logging
import os
import sqlite3
import threading
import uuid
from contextlib import contextmanager

logger = logging.getLogger("Frames")

from .constants import APP_NAME, ENTRY_ID_PREFIX, SCHEMA_VERSION, THUMBNAIL_WIDTH
from .errors import NotFoundError, StorageError, ValidationError
from .grouping import group_by_month
from .imaging import inspect_picture, make_thumbnail_png
from .paths import get_db_path
from .schema import SCHEMA_SQL
from .utils import as_flag, as_text, escape_like, format_iso, now_iso, parse_iso

_ENTRY_FIELDS = (
    "id, timestamp, main, details, is_bookmarked, "
    "picture IS NOT NULL AS has_picture, picture_format, picture_width, picture_height"
)

# Newest first; rowid keeps entries created within the same instant in a fixed order.
_ORDER_BY = "timestamp DESC, rowid DESC"


class FramesStore:
    def __init__(self, db_path=None, thumbnail_width=THUMBNAIL_WIDTH):
        self.db_path = db_path or get_db_path()
        self.thumbnail_width = int(thumbnail_width)
        self._lock = threading.RLock()
        self._listeners = []

        parent = os.path.dirname(os.path.abspath(self.db_path))
        os.makedirs(parent, exist_ok=True)
        self._init_db()

    def _connect(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA busy_timeout = 5000")
        return conn

    @contextmanager
    def _session(self):
        """Hold the store lock around one connection and one transaction."""
        with self._lock:
            try:
                conn = self._connect()
            except sqlite3.Error as exc:
                raise StorageError(f"cannot open database {self.db_path}: {exc}") from exc
            try:
                yield conn
                conn.commit()
            except sqlite3.Error as exc:
                self._rollback(conn)
                raise StorageError(f"database error: {exc}") from exc
            except BaseException:
                self._rollback(conn)
                raise
            finally:
                conn.close()

    @staticmethod
    def _rollback(conn):
        # The error that caused the rollback is the one callers see.
        try:
            conn.rollback()
        except sqlite3.Error as exc:
            logger.warning("rollback failed: %s", exc)

    def _init_db(self):
        with self._session() as conn:
            conn.executescript(SCHEMA_SQL)
            self._migrate_db(conn)
            conn.execute(
                "INSERT OR REPLACE INTO meta(key,value) VALUES('schema_version', ?)",
                (str(SCHEMA_VERSION),),
            )

    def _migrate_db(self, conn):
        # Schema 1 stored the raw picture only.
        cols = {row["name"] for row in conn.execute("PRAGMA table_info(frames)").fetchall()}
        if "picture_format" not in cols:
            conn.execute("ALTER TABLE frames ADD COLUMN picture_format TEXT")
        if "picture_width" not in cols:
            conn.execute("ALTER TABLE frames ADD COLUMN picture_width INTEGER")
        if "picture_height" not in cols:
            conn.execute("ALTER TABLE frames ADD COLUMN picture_height INTEGER")
        if "thumbnail_png" not in cols:
            conn.execute("ALTER TABLE frames ADD COLUMN thumbnail_png BLOB")
        if "thumbnail_width" not in cols:
            conn.execute("ALTER TABLE frames ADD COLUMN thumbnail_width INTEGER")
        if "thumbnail_height" not in cols:
            conn.execute("ALTER TABLE frames ADD COLUMN thumbnail_height INTEGER")
        self._backfill_thumbnails(conn)

    def _backfill_thumbnails(self, conn):
        rows = conn.execute(
            "SELECT id, picture FROM frames WHERE picture IS NOT NULL AND thumbnail_png IS NULL"
        ).fetchall()
        for row in rows:
            try:
                fmt, w, h = inspect_picture(row["picture"])
                thumb_png, thumb_w, thumb_h = make_thumbnail_png(row["picture"], self.thumbnail_width)
            except ValidationError as exc:
                logger.warning("skip thumbnail for %s: %s", row["id"], exc)
                continue
            conn.execute(
                """
                UPDATE frames SET
                  picture_format=?, picture_width=?, picture_height=?,
                  thumbnail_png=?, thumbnail_width=?, thumbnail_height=?
                WHERE id=?
                """,
                (fmt, w, h, sqlite3.Binary(thumb_png), thumb_w, thumb_h, row["id"]),
            )
        if rows:
            logger.info("thumbnail backfill: %d pictures", len(rows))

    # ── change notification ──

    def subscribe(self, callback):
        """Register ``callback(event, entry_ids)``; returns a function that removes it."""
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, event, entry_ids):
        with self._lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(event, list(entry_ids))
            except Exception:
                logger.exception("change listener %r failed on %s", callback, event)

    # ── pictures ──

    def _prepare_picture(self, picture):
        fmt, w, h = inspect_picture(picture)
        thumb_png, thumb_w, thumb_h = make_thumbnail_png(picture, self.thumbnail_width)
        return {
            "picture": sqlite3.Binary(bytes(picture)),
            "picture_format": fmt,
            "picture_width": w,
            "picture_height": h,
            "thumbnail_png": sqlite3.Binary(thumb_png),
            "thumbnail_width": thumb_w,
            "thumbnail_height": thumb_h,
        }

    def _insert_entry(self, conn, entry_id, timestamp, main, details, pic, is_bookmarked=False):
        pic = pic or {}
        conn.execute(
            """
            INSERT INTO frames(
              id,timestamp,main,details,picture,picture_format,picture_width,picture_height,
              thumbnail_png,thumbnail_width,thumbnail_height,is_bookmarked
            ) VALUES(?,?,?,?,?,?,?,?,?,?,?,?)
            """,
            (
                entry_id,
                timestamp,
                main,
                details,
                pic.get("picture"),
                pic.get("picture_format"),
                pic.get("picture_width"),
                pic.get("picture_height"),
                pic.get("thumbnail_png"),
                pic.get("thumbnail_width"),
                pic.get("thumbnail_height"),
                1 if is_bookmarked else 0,
            ),
        )

    # ── entries ──

    def create_entry(self, main="", details="", picture=None):
        main = as_text(main)
        details = as_text(details)
        if not main and not details:
            raise ValidationError("main and details cannot both be empty")

        pic = self._prepare_picture(picture) if picture is not None else None

        entry_id = f"{ENTRY_ID_PREFIX}{uuid.uuid4().hex}"
        with self._session() as conn:
            self._insert_entry(conn, entry_id, now_iso(), main, details, pic)
            entry = self._row_to_entry(self._fetch_row(conn, entry_id))

        logger.debug("created %s has_picture=%r", entry_id, entry["has_picture"])
        self._notify("created", [entry_id])
        return entry

    def get_entry(self, entry_id):
        with self._session() as conn:
            return self._row_to_entry(self._fetch_row(conn, entry_id))

    def get_entry_picture(self, entry_id):
        with self._session() as conn:
            row = conn.execute("SELECT picture FROM frames WHERE id = ?", (entry_id,)).fetchone()
            if not row:
                raise NotFoundError(entry_id)
            blob = row["picture"]
            return None if blob is None else bytes(blob)

    def get_entry_thumbnail(self, entry_id):
        with self._session() as conn:
            row = conn.execute(
                "SELECT thumbnail_png, thumbnail_width, thumbnail_height FROM frames WHERE id = ?",
                (entry_id,),
            ).fetchone()
            if not row:
                raise NotFoundError(entry_id)
            blob = row["thumbnail_png"]
            if blob is None:
                return None
            return {
                "png": bytes(blob),
                "width": row["thumbnail_width"],
                "height": row["thumbnail_height"],
            }

    def list_entries(self, bookmarked_only=False, has_picture=False):
        where, params = self._filters(bookmarked_only=bookmarked_only, has_picture=has_picture)
        sql = f"SELECT {_ENTRY_FIELDS} FROM frames{where} ORDER BY {_ORDER_BY}"
        with self._session() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_entry(r) for r in rows]

    def list_bookmarked(self):
        return self.list_entries(bookmarked_only=True)

    def search_entries(self, q="", bookmarked_only=False):
        q = "" if q is None else str(q)
        logger.debug("search_entries input: q=%r bookmarked_only=%r", q, bool(bookmarked_only))
        if not q:
            return self.list_entries(bookmarked_only=bookmarked_only)

        where, params = self._filters(bookmarked_only=bookmarked_only)
        with self._session() as conn:
            if self._should_filter_in_python(q):
                rows = conn.execute(
                    f"SELECT {_ENTRY_FIELDS} FROM frames{where} ORDER BY {_ORDER_BY}",
                    params,
                ).fetchall()
                needle = q.lower()
                rows = [r for r in rows if needle in r["main"].lower() or needle in r["details"].lower()]
                logger.debug("python rows=%d", len(rows))
            else:
                clause = "(main LIKE ? ESCAPE '\\' OR details LIKE ? ESCAPE '\\')"
                where = f"{where} AND {clause}" if where else f" WHERE {clause}"
                like_q = f"%{escape_like(q)}%"
                rows = conn.execute(
                    f"SELECT {_ENTRY_FIELDS} FROM frames{where} ORDER BY {_ORDER_BY}",
                    params + [like_q, like_q],
                ).fetchall()
                logger.debug("LIKE rows=%d", len(rows))

        items = []
        for r in rows:
            entry = self._row_to_entry(r)
            entry["match_reasons"] = self._build_match_reasons(q, entry["main"], entry["details"])
            items.append(entry)
        return items

    def count_entries(self, q="", bookmarked_only=False):
        if q:
            return len(self.search_entries(q, bookmarked_only=bookmarked_only))

        where, params = self._filters(bookmarked_only=bookmarked_only)
        with self._session() as conn:
            row = conn.execute(f"SELECT COUNT(*) AS total FROM frames{where}", params).fetchone()
            return int(row["total"]) if row else 0

    def group_by_month(self, entries=None, tz=None):
        if entries is None:
            entries = self.list_entries()
        return group_by_month(entries, tz=tz)

    def toggle_bookmark(self, entry_id):
        with self._session() as conn:
            cur = conn.execute(
                "UPDATE frames SET is_bookmarked = CASE is_bookmarked WHEN 0 THEN 1 ELSE 0 END WHERE id = ?",
                (entry_id,),
            )
            if cur.rowcount == 0:
                raise NotFoundError(entry_id)
            entry = self._row_to_entry(self._fetch_row(conn, entry_id))

        self._notify("updated", [entry_id])
        return entry

    def delete_entry(self, entry_id):
        with self._session() as conn:
            cur = conn.execute("DELETE FROM frames WHERE id = ?", (entry_id,))
            if cur.rowcount == 0:
                raise NotFoundError(entry_id)

        self._notify("deleted", [entry_id])

    def delete_entries(self, entry_ids):
        """Delete a selection of entries; nothing is deleted if any id is unknown."""
        ids = list(dict.fromkeys(entry_ids or []))
        if not ids:
            return 0

        placeholders = ",".join(["?"] * len(ids))
        with self._session() as conn:
            rows = conn.execute(f"SELECT id FROM frames WHERE id IN ({placeholders})", ids).fetchall()
            found = {r["id"] for r in rows}
            missing = [i for i in ids if i not in found]
            if missing:
                raise NotFoundError(missing[0])
            conn.execute(f"DELETE FROM frames WHERE id IN ({placeholders})", ids)

        self._notify("deleted", ids)
        return len(ids)

    def delete_all(self):
        with self._session() as conn:
            ids = [r["id"] for r in conn.execute("SELECT id FROM frames").fetchall()]
            conn.execute("DELETE FROM frames")

        logger.info("delete_all removed %d entries from %s", len(ids), self.db_path)
        self._notify("cleared", ids)
        return len(ids)

    # ── backup ──

    def export_bundle(self):
        with self._session() as conn:
            rows = conn.execute(f"SELECT {_ENTRY_FIELDS}, picture FROM frames ORDER BY {_ORDER_BY}").fetchall()
            return {
                "app": APP_NAME,
                "version": "1.0",
                "schema_version": SCHEMA_VERSION,
                "exported_at": now_iso(),
                "entries": [self._row_to_entry(row, include_picture=True) for row in rows],
            }

    def export_bundle_csv(self):
        bundle = self.export_bundle()
        fields = [
            "id",
            "timestamp",
            "main",
            "details",
            "is_bookmarked",
            "picture_b64",
        ]
        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=fields, extrasaction="ignore")
        writer.writeheader()
        for entry in bundle["entries"]:
            writer.writerow(
                {
                    "id": entry["id"],
                    "timestamp": entry["timestamp"],
                    "main": entry["main"],
                    "details": entry["details"],
                    "is_bookmarked": 1 if entry["is_bookmarked"] else 0,
                    "picture_b64": entry.get("picture_b64", ""),
                }
            )
        return buf.getvalue()

    def import_csv_text(self, csv_text):
        reader = csv.DictReader(io.StringIO(csv_text or ""))
        entries = [self._csv_row_to_entry(row) for row in reader]
        return self.import_bundle({"entries": entries})

    def import_bundle(self, bundle):
        if not isinstance(bundle, dict):
            raise ValidationError("Import bundle must be a JSON object")
        entries = bundle.get("entries") or []
        if not isinstance(entries, list):
            raise ValidationError("Import bundle entries must be a list")

        result = {
            "created": 0,
            "skipped": 0,
            "errors": [],
            "details": [],
        }
        created_ids = []

        with self._session() as conn:
            # Oldest first, so insertion order matches the exporting store.
            for payload in reversed(entries):
                record_id = str((payload or {}).get("id") or "") if isinstance(payload, dict) else ""
                try:
                    action = self._import_entry(conn, payload)
                except (ValueError, TypeError) as exc:
                    result["errors"].append({"id": record_id, "error": str(exc)})
                    continue
                result[action] += 1
                result["details"].append({"id": record_id, "action": action})
                if action == "created":
                    created_ids.append(record_id)

        logger.info(
            "import_bundle: created=%d skipped=%d errors=%d",
            result["created"],
            result["skipped"],
            len(result["errors"]),
        )
        if created_ids:
            self._notify("imported", created_ids)
        return result

    def _import_entry(self, conn, payload):
        if not isinstance(payload, dict):
            raise ValidationError("entry must be an object")
        entry_id = str(payload.get("id") or "").strip()
        if not entry_id:
            raise ValidationError("entry id is required")
        if conn.execute("SELECT 1 FROM frames WHERE id = ?", (entry_id,)).fetchone():
            return "skipped"

        raw_ts = payload.get("timestamp")
        if not raw_ts:
            raise ValidationError("entry timestamp is required")
        try:
            timestamp = format_iso(parse_iso(str(raw_ts)))
        except ValueError as exc:
            raise ValidationError(f"invalid timestamp {raw_ts!r}") from exc

        main = as_text(payload.get("main"))
        details = as_text(payload.get("details"))
        if not main and not details:
            raise ValidationError("main and details cannot both be empty")

        pic = None
        picture_b64 = payload.get("picture_b64") or ""
        if picture_b64:
            try:
                picture = base64.b64decode(picture_b64, validate=True)
            except binascii.Error as exc:
                raise ValidationError(f"invalid picture_b64: {exc}") from exc
            try:
                pic = self._prepare_picture(picture)
            except ValidationError:
                logger.warning("import %s: unreadable picture", entry_id)
                raise

        self._insert_entry(conn, entry_id, timestamp, main, details, pic, as_flag(payload.get("is_bookmarked")))
        return "created"

    # ── helpers ──

    @staticmethod
    def _filters(bookmarked_only=False, has_picture=False):
        where = []
        if bookmarked_only:
            where.append("is_bookmarked = 1")
        if has_picture:
            where.append("picture IS NOT NULL")
        if not where:
            return "", []
        return " WHERE " + " AND ".join(where), []

    @staticmethod
    def _should_filter_in_python(q):
        # SQLite's LIKE folds ASCII case only.
        return not q.isascii()

    @staticmethod
    def _build_match_reasons(q, main, details):
        needle = q.lower()
        reasons = []
        if needle in (main or "").lower():
            reasons.append("main")
        if needle in (details or "").lower():
            reasons.append("details")
        return reasons

    @staticmethod
    def _csv_row_to_entry(row):
        return {
            "id": row.get("id", ""),
            "timestamp": row.get("timestamp", ""),
            "main": row.get("main", ""),
            "details": row.get("details", ""),
            "is_bookmarked": as_flag(row.get("is_bookmarked") or ""),
            "picture_b64": row.get("picture_b64", ""),
        }

    @staticmethod
    def _fetch_row(conn, entry_id):
        row = conn.execute(f"SELECT {_ENTRY_FIELDS} FROM frames WHERE id = ?", (entry_id,)).fetchone()
        if not row:
            raise NotFoundError(entry_id)
        return row

    @staticmethod
    def _row_to_entry(row, include_picture=False):
        entry = {
            "id": row["id"],
            "timestamp": row["timestamp"],
            "main": row["main"],
            "details": row["details"],
            "is_bookmarked": bool(row["is_bookmarked"]),
            "has_picture": bool(row["has_picture"]),
            "picture_format": row["picture_format"],
            "picture_width": row["picture_width"],
            "picture_height": row["picture_height"],
        }
        if include_picture:
            blob = row["picture"]
            entry["picture_b64"] = base64.b64encode(bytes(blob)).decode("ascii") if blob is not None else ""
        return entry
