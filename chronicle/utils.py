"""
chronicle/utils.py -- JSON persistence and text helpers.

Entity records, the conflict log and settings are hand-editable JSON, so
reads tolerate damage: missing files, invalid JSON and bytes that are not
UTF-8 all come back as "no data" instead of aborting a scan.  Writes go
through a temp file and ``os.replace()``.

The text helpers (quote truncation, file-name sanitising) are shared by
both extraction tiers and the record store.
"""

import json
import logging
import os
import re
import tempfile
import unicodedata
from datetime import date, datetime, timezone

logger = logging.getLogger(__name__)

QUOTE_WORD_LIMIT = 30


# ---------------------------------------------------------------------------
# JSON I/O (atomic writes)
# ---------------------------------------------------------------------------

def safe_read_json(path, default=None):
    """Return the parsed content of *path*, or *default* on any read failure.

    Used where a damaged file simply means "use the defaults" (settings,
    registry).
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        return default


def read_json_strict(path):
    """Read a JSON file, distinguishing "missing" from "unreadable".

    Returns ``None`` when the file does not exist and raises ``OSError``
    when it exists but cannot be read.  Content that is not UTF-8 or not
    valid JSON is logged and returned as ``None``; callers treat it as a
    malformed record and fall back to defaults.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError:
        return None
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring corrupt JSON in %s: %s", path, exc)
        return None


def safe_write_json(path, data, *, indent=2):
    """Replace *path* with *data* serialised as JSON.

    The new content is written to a sibling temp file and moved over the
    target, so a record on disk is always either the old or the new
    version.  Missing parent folders are created.
    """
    path = str(path)
    parent = os.path.dirname(path)
    os.makedirs(parent, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=indent, ensure_ascii=False)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------

def now_iso() -> str:
    """Return the current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def today_iso() -> str:
    """Return today's date as ``YYYY-MM-DD``."""
    return date.today().isoformat()


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def truncate_quote(passage: str, limit: int = QUOTE_WORD_LIMIT, *, ellipsis: bool = True) -> str:
    """Trim *passage* to at most *limit* whitespace-separated words.

    Examples:
        "Elena's copper hair"  -> "Elena's copper hair"
        40 words               -> first 30 words + "…"
    """
    words = passage.split()
    if len(words) <= limit:
        return passage.strip()
    truncated = " ".join(words[:limit])
    return truncated + "…" if ellipsis else truncated


def sanitise_filename(name: str) -> str:
    """Convert an entity name into a safe file stem.

    Examples:
        "Elena Vasquez"  -> "Elena Vasquez"
        "AC/DC"          -> "AC-DC"
        "The Vault?"     -> "The Vault-"
    """
    name = unicodedata.normalize("NFC", name)
    return re.sub(r'[/\\:*?"<>|]', "-", name).strip() or "entity"
