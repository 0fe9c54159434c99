from __future__ import annotations
from pathlib import Path
from typing import Iterable, Dict, Any
import json
import duckdb


def _ensure_schema(con: duckdb.DuckDBPyConnection) -> None:
    con.execute("""
        CREATE TABLE IF NOT EXISTS runs(
            run_id TEXT PRIMARY KEY,
            created_utc TEXT,
            format TEXT,
            root TEXT
        );
    """)
    con.execute("""
        CREATE TABLE IF NOT EXISTS run_files(
            run_id TEXT,
            table_name TEXT,
            file_path TEXT
        );
    """)
    con.execute("""
        CREATE TABLE IF NOT EXISTS table_rows(
            run_id TEXT,
            table_name TEXT,
            row_count BIGINT,
            file_count BIGINT
        );
    """)


def _read_manifest(run_dir: Path) -> Dict[str, Any]:
    mpath = run_dir / "manifest.json"
    if not mpath.exists():
        raise FileNotFoundError(f"manifest.json not found at {mpath}")
    return json.loads(mpath.read_text(encoding="utf-8"))


def _upsert_run(con: duckdb.DuckDBPyConnection, m: Dict[str, Any]) -> str:
    run_id = str(m.get("run_id", "UNKNOWN"))
    con.execute("DELETE FROM runs WHERE run_id = ?", [run_id])
    con.execute(
        "INSERT INTO runs(run_id, created_utc, format, root) VALUES (?, ?, ?, ?)",
        [run_id, str(m.get("created_utc", "")), str(m.get("format", "")), str(m.get("root", ""))],
    )
    return run_id


def _replace_files(con: duckdb.DuckDBPyConnection, run_id: str,
                   files: Iterable[Dict[str, Any]], tables: Dict[str, Any]) -> None:
    con.execute("DELETE FROM run_files WHERE run_id = ?", [run_id])
    rows = [(run_id, str(f.get("table", "unknown")), str(f.get("path", ""))) for f in files]
    if rows:
        con.executemany("INSERT INTO run_files(run_id, table_name, file_path) VALUES (?, ?, ?)", rows)

    con.execute("DELETE FROM table_rows WHERE run_id = ?", [run_id])
    counts = [(run_id, name, int(t.get("rows", 0)), int(t.get("files", 0))) for name, t in tables.items()]
    if counts:
        con.executemany(
            "INSERT INTO table_rows(run_id, table_name, row_count, file_count) VALUES (?, ?, ?, ?)",
            counts,
        )


def update_catalog(catalog_path: Path, run_dir: Path) -> str:
    """
    Update (or create) a DuckDB catalog from <run_dir>/manifest.json.
    Re-registering a run replaces its previous entries. Returns the run_id.
    """
    catalog_path = Path(catalog_path)
    catalog_path.parent.mkdir(parents=True, exist_ok=True)
    run_dir = Path(run_dir)
    con = duckdb.connect(str(catalog_path))
    try:
        _ensure_schema(con)
        m = _read_manifest(run_dir)
        run_id = _upsert_run(con, m)
        _replace_files(con, run_id, m.get("files", []), m.get("tables", {}) or {})
    finally:
        con.close()
    return run_id
