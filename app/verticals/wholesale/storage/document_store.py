from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

# One JSON document per row; saves replace the whole document (last writer wins).
_TABLES = {
    "settings": "shop_domain TEXT PRIMARY KEY",
    "pricing_rules": "shop_domain TEXT PRIMARY KEY",
}


class DocumentStore:
    """
    SQLite-backed document store for the wholesale vertical:
      - settings        (shop)               -> customer types + guest pricing type
      - pricing_rules   (shop)               -> default discount + product overrides
      - customer_pricing(shop, customer_id)  -> customer-specific overlay
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._init()

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _tx(self) -> Iterator[sqlite3.Connection]:
        con = self._conn()
        try:
            with con:
                yield con
        finally:
            con.close()

    def _init(self) -> None:
        with self._tx() as con:
            for table, key in _TABLES.items():
                con.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                      {key},
                      doc TEXT NOT NULL,
                      updated_at TEXT NOT NULL
                    )
                    """
                )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS customer_pricing (
                  shop_domain TEXT NOT NULL,
                  customer_id TEXT NOT NULL,
                  doc TEXT NOT NULL,
                  updated_at TEXT NOT NULL,
                  PRIMARY KEY (shop_domain, customer_id)
                )
                """
            )

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    # -----------------
    # per-shop documents
    # -----------------

    def _get_shop_doc(self, table: str, shop_domain: str) -> Optional[Dict[str, Any]]:
        with self._tx() as con:
            row = con.execute(
                f"SELECT doc FROM {table} WHERE shop_domain = ?",
                (shop_domain,),
            ).fetchone()
        return json.loads(row["doc"]) if row else None

    def _put_shop_doc(self, table: str, shop_domain: str, doc: Dict[str, Any]) -> None:
        with self._tx() as con:
            con.execute(
                f"""
                INSERT INTO {table} (shop_domain, doc, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(shop_domain) DO UPDATE SET doc = excluded.doc, updated_at = excluded.updated_at
                """,
                (shop_domain, json.dumps(doc), self._now()),
            )

    def get_settings(self, shop_domain: str) -> Optional[Dict[str, Any]]:
        return self._get_shop_doc("settings", shop_domain)

    def put_settings(self, shop_domain: str, doc: Dict[str, Any]) -> None:
        self._put_shop_doc("settings", shop_domain, doc)

    def get_pricing_rules(self, shop_domain: str) -> Optional[Dict[str, Any]]:
        return self._get_shop_doc("pricing_rules", shop_domain)

    def put_pricing_rules(self, shop_domain: str, doc: Dict[str, Any]) -> None:
        self._put_shop_doc("pricing_rules", shop_domain, doc)

    # -----------------
    # customer pricing
    # -----------------

    def get_customer_pricing(self, shop_domain: str, customer_id: str) -> Optional[Dict[str, Any]]:
        with self._tx() as con:
            row = con.execute(
                "SELECT doc FROM customer_pricing WHERE shop_domain = ? AND customer_id = ?",
                (shop_domain, customer_id),
            ).fetchone()
        return json.loads(row["doc"]) if row else None

    def put_customer_pricing(self, shop_domain: str, customer_id: str, doc: Dict[str, Any]) -> None:
        with self._tx() as con:
            con.execute(
                """
                INSERT INTO customer_pricing (shop_domain, customer_id, doc, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(shop_domain, customer_id) DO UPDATE SET doc = excluded.doc, updated_at = excluded.updated_at
                """,
                (shop_domain, customer_id, json.dumps(doc), self._now()),
            )
