from __future__ import annotations

"""
Table recorder for radsim runs.

Features
- Deterministic folder layout: <data_root>/runs/<run_id>/{tables,charts}
- Buffered per-table writes, flushed on demand (the engine flushes every N steps)
- CSV: one file per table, appended, header written once
- Parquet: one shard per flush, <table>_<seq:04d>.parquet
- Stable schemas (first batch defines column order; 'step' always first)
- Writes run-level manifest.json on finalize(); finalize() is idempotent

Tables written by the engine:
  simulation: step,int | time,float | source_balance,environment_balance,emitted,float | status,str
  levels:     step,int | level,int (1-based) | balance,float
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import json
import time

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from .errors import OutputExistsError

TABLES = ("simulation", "levels")


@dataclass
class _TableBuf:
    name: str
    schema: List[str] = field(default_factory=list)       # column order
    rows: List[Dict[str, Any]] = field(default_factory=list)
    files: List[str] = field(default_factory=list)        # relative to run_dir
    written_rows: int = 0
    shard_seq: int = 0


def _stamp() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def _arrow_write(path: Path, frame: pd.DataFrame) -> None:
    table = pa.Table.from_pandas(frame, preserve_index=False)
    pq.write_table(
        table,
        where=str(path),
        compression="zstd",
        use_dictionary=True,
        write_statistics=True,
    )


def run_dir_for(data_root: str | Path, run_id: str) -> Path:
    return Path(data_root) / "runs" / run_id


def existing_outputs(data_root: str | Path, run_id: str) -> List[Path]:
    """Table files a new run with this id would collide with."""
    tables_dir = run_dir_for(data_root, run_id) / "tables"
    if not tables_dir.is_dir():
        return []
    return sorted(p for p in tables_dir.iterdir()
                  if p.is_file() and p.name.startswith(TABLES))


class RunRecorder:
    """
    Interface used by the engine:
      add(table: str, rows: List[dict])
      flush()
      finalize()
      read_table(table) -> DataFrame
    """

    def __init__(
        self,
        data_root: str | Path = "data",
        run_id: Optional[str] = None,
        *,
        fmt: str = "csv",
        overwrite: bool = False,
        meta: Optional[Dict[str, Any]] = None,
    ) -> None:
        if fmt not in ("csv", "parquet"):
            raise ValueError(f"unknown format: {fmt!r}")
        self.data_root = Path(data_root)
        self.run_id = run_id or f"RADSIM_{int(time.time())}"
        self.run_dir = run_dir_for(self.data_root, self.run_id)
        self.tables_dir = self.run_dir / "tables"
        self.charts_dir = self.run_dir / "charts"
        self.fmt = fmt

        clashes = existing_outputs(self.data_root, self.run_id)
        if clashes and not overwrite:
            raise OutputExistsError(f"outputs already exist: {', '.join(str(p) for p in clashes)}")
        for p in clashes:
            p.unlink()

        self.tables_dir.mkdir(parents=True, exist_ok=True)
        self.charts_dir.mkdir(parents=True, exist_ok=True)

        self._tables: Dict[str, _TableBuf] = {}
        self._finalized = False
        self.manifest_path: Path = self.run_dir / "manifest.json"

        payload = {
            "run_id": self.run_id,
            "created_utc": _stamp(),
            "data_root": str(self.data_root),
            "format": self.fmt,
        }
        if meta:
            payload.update(meta)
        with (self.run_dir / "run_meta.json").open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)

    # ---------------------- public API ----------------------

    def add(self, table: str, rows: List[Dict[str, Any]]) -> None:
        if not rows:
            return
        T = self._tables.get(table)
        if T is None:
            T = _TableBuf(name=table)
            self._tables[table] = T
        if not T.schema:
            first = list(rows[0].keys())
            if "step" in first:
                first = ["step"] + [k for k in first if k != "step"]
            T.schema = first
        T.rows.extend(rows)

    def flush(self) -> None:
        for T in self._tables.values():
            self._flush_table(T)

    def finalize(self) -> Path:
        """Flush remaining buffers and write manifest.json. Safe to call twice."""
        self.flush()
        if not self._finalized:
            self._write_manifest()
            self._finalized = True
        return self.manifest_path

    def read_table(self, table: str) -> pd.DataFrame:
        """Load everything written so far for `table` (buffered rows excluded)."""
        T = self._tables.get(table)
        if T is None or not T.files:
            return pd.DataFrame(columns=T.schema if T else [])
        paths = [self.run_dir / rel for rel in T.files]
        if self.fmt == "csv":
            return pd.read_csv(paths[0])
        return pd.concat([pd.read_parquet(p) for p in paths], ignore_index=True)

    @property
    def tables(self) -> List[str]:
        return sorted(self._tables)

    # ---------------------- internals ----------------------

    def _frame(self, T: _TableBuf) -> pd.DataFrame:
        df = pd.DataFrame.from_records(T.rows)
        new_cols = [c for c in df.columns if c not in T.schema]
        if new_cols:
            T.schema += new_cols
        for col in T.schema:
            if col not in df.columns:
                df[col] = pd.NA
        df = df[T.schema]
        for col in df.columns:
            if col in ("step", "level"):
                df[col] = df[col].astype("int64")
            elif col != "status":
                df[col] = df[col].astype("float64")
        return df

    def _flush_table(self, T: _TableBuf) -> None:
        if not T.rows:
            return
        df = self._frame(T)
        if self.fmt == "csv":
            fname = f"{T.name}.csv"
            path = self.tables_dir / fname
            df.to_csv(path, mode="a", header=T.written_rows == 0, index=False)
        else:
            T.shard_seq += 1
            fname = f"{T.name}_{T.shard_seq:04d}.parquet"
            path = self.tables_dir / fname
            _arrow_write(path, df)
        rel = str(Path("tables") / fname)
        if rel not in T.files:
            T.files.append(rel)
        T.written_rows += len(T.rows)
        T.rows.clear()

    def _write_manifest(self) -> None:
        files = []
        for name, T in sorted(self._tables.items()):
            for rel in T.files:
                files.append({"table": name, "path": rel})
        manifest = {
            "run_id": self.run_id,
            "root": str(self.run_dir),
            "created_utc": _stamp(),
            "format": self.fmt,
            "tables": {name: {"rows": T.written_rows, "files": len(T.files)}
                       for name, T in sorted(self._tables.items())},
            "files": files,
        }
        with self.manifest_path.open("w", encoding="utf-8") as f:
            json.dump(manifest, f, indent=2)
