"""
Project Database — SQLite-backed sketch project persistence.

Stores saved workspace documents together with the component selection they
were built against, so users can save and reload their sketches.

Schema:
  projects   — id, name, description, created_at, updated_at, workspace_json
  components — id, project_id, kind, name, position
  settings   — key, value, updated_at
"""

import os
import json
import logging
import sqlite3
import time
import uuid
from typing import Dict, List, Optional, Any

from sketch_editor_core.settings import EditorSettings

logger = logging.getLogger(__name__)


def _resolve_db_path() -> str:
    """Resolve the database path from env → default.

    Priority:
        1. SKETCH_EDITOR_DB_PATH environment variable
        2. ``<web_interface>/projects.db``
    """
    env_path = os.environ.get('SKETCH_EDITOR_DB_PATH', '').strip()
    if env_path:
        os.makedirs(os.path.dirname(env_path) or '.', exist_ok=True)
        return env_path
    return os.path.join(os.path.dirname(os.path.abspath(__file__)), 'projects.db')


DB_PATH = _resolve_db_path()


def _get_db() -> sqlite3.Connection:
    """Return a connection to the projects database, creating tables if needed."""
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute('PRAGMA foreign_keys=ON')

    conn.executescript('''
        CREATE TABLE IF NOT EXISTS projects (
            id             TEXT PRIMARY KEY,
            name           TEXT NOT NULL,
            description    TEXT DEFAULT '',
            created_at     REAL NOT NULL,
            updated_at     REAL NOT NULL,
            workspace_json TEXT NOT NULL DEFAULT '{}'
        );

        CREATE TABLE IF NOT EXISTS components (
            id            TEXT NOT NULL,
            project_id    TEXT NOT NULL,
            kind          TEXT NOT NULL,
            name          TEXT DEFAULT '',
            position      INTEGER DEFAULT 0,
            PRIMARY KEY (project_id, id),
            FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
        );

        CREATE TABLE IF NOT EXISTS settings (
            key           TEXT PRIMARY KEY,
            value         TEXT NOT NULL,
            updated_at    REAL NOT NULL
        );
    ''')
    conn.commit()
    return conn


# ─────────────────────────────────────────────────────────────────────
# Project CRUD
# ─────────────────────────────────────────────────────────────────────

def save_project(name: str,
                 workspace: Dict[str, Any],
                 components: List[Dict[str, Any]],
                 description: str = '',
                 project_id: Optional[str] = None) -> Dict[str, Any]:
    """Save or update a project.

    Args:
        name:         Human-readable project name.
        workspace:    Serialized workspace document.
        components:   List of {id, kind, name} in selection order.
        description:  Optional description.
        project_id:   If provided, overwrites existing project.

    Returns:
        Dict with project metadata.
    """
    conn = _get_db()
    now = time.time()
    is_new = True

    if project_id:
        row = conn.execute('SELECT id FROM projects WHERE id = ?', (project_id,)).fetchone()
        if row:
            is_new = False
            conn.execute('''
                UPDATE projects
                   SET name = ?, description = ?, updated_at = ?, workspace_json = ?
                 WHERE id = ?
            ''', (name, description, now, json.dumps(workspace), project_id))
            conn.execute('DELETE FROM components WHERE project_id = ?', (project_id,))
        else:
            conn.execute('''
                INSERT INTO projects (id, name, description, created_at, updated_at, workspace_json)
                VALUES (?, ?, ?, ?, ?, ?)
            ''', (project_id, name, description, now, now, json.dumps(workspace)))
    else:
        project_id = str(uuid.uuid4())
        conn.execute('''
            INSERT INTO projects (id, name, description, created_at, updated_at, workspace_json)
            VALUES (?, ?, ?, ?, ?, ?)
        ''', (project_id, name, description, now, now, json.dumps(workspace)))

    for position, component in enumerate(components):
        conn.execute('''
            INSERT INTO components (id, project_id, kind, name, position)
            VALUES (?, ?, ?, ?, ?)
        ''', (component['id'], project_id, component['kind'],
              component.get('name', ''), position))

    conn.commit()
    conn.close()
    logger.info("Saved project %s (%s)", project_id, name)

    return {
        'id': project_id,
        'name': name,
        'description': description,
        'created_at': now if is_new else None,
        'updated_at': now,
    }


def list_projects() -> List[Dict[str, Any]]:
    """Return all saved projects (metadata only, no workspace blob)."""
    conn = _get_db()
    rows = conn.execute('''
        SELECT id, name, description, created_at, updated_at
          FROM projects
         ORDER BY updated_at DESC
    ''').fetchall()
    conn.close()

    return [dict(r) for r in rows]


def load_project(project_id: str) -> Optional[Dict[str, Any]]:
    """Load a full project including its workspace and components."""
    conn = _get_db()
    row = conn.execute('SELECT * FROM projects WHERE id = ?', (project_id,)).fetchone()
    if not row:
        conn.close()
        return None

    components = conn.execute('''
        SELECT id, kind, name
          FROM components
         WHERE project_id = ?
         ORDER BY position
    ''', (project_id,)).fetchall()
    conn.close()

    return {
        'id': row['id'],
        'name': row['name'],
        'description': row['description'],
        'created_at': row['created_at'],
        'updated_at': row['updated_at'],
        'workspace': json.loads(row['workspace_json']),
        'components': [dict(c) for c in components],
    }


def delete_project(project_id: str) -> bool:
    """Delete a project and its component selection."""
    conn = _get_db()
    cursor = conn.execute('DELETE FROM projects WHERE id = ?', (project_id,))
    conn.commit()
    deleted = cursor.rowcount > 0
    conn.close()
    return deleted


# ─────────────────────────────────────────────────────────────────────
# Settings KV store  (database overrides for .env defaults)
# ─────────────────────────────────────────────────────────────────────
#
# Known keys (stored lowercase) match the EditorSettings fields:
#   debounce_seconds, indent_width, sketch_filename, host, port
# ─────────────────────────────────────────────────────────────────────

def get_setting(key: str) -> Optional[str]:
    """Return a single setting value, or None if unset."""
    conn = _get_db()
    row = conn.execute(
        'SELECT value FROM settings WHERE key = ?', (key.lower(),)
    ).fetchone()
    conn.close()
    return row['value'] if row else None


def set_setting(key: str, value: str) -> Dict[str, Any]:
    """Upsert a setting. Returns the saved record."""
    now = time.time()
    conn = _get_db()
    conn.execute('''
        INSERT INTO settings (key, value, updated_at)
        VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE
           SET value = excluded.value,
               updated_at = excluded.updated_at
    ''', (key.lower(), value, now))
    conn.commit()
    conn.close()
    return {'key': key.lower(), 'value': value, 'updated_at': now}


def get_all_settings() -> Dict[str, str]:
    """Return all settings as a flat dict."""
    conn = _get_db()
    rows = conn.execute('SELECT key, value FROM settings').fetchall()
    conn.close()
    return {r['key']: r['value'] for r in rows}


def delete_setting(key: str) -> bool:
    """Remove a setting (reverts to env / default)."""
    conn = _get_db()
    cursor = conn.execute('DELETE FROM settings WHERE key = ?', (key.lower(),))
    conn.commit()
    deleted = cursor.rowcount > 0
    conn.close()
    return deleted


def load_editor_settings() -> EditorSettings:
    """Effective settings: database overrides → env → defaults."""
    return EditorSettings.load(get_all_settings())
