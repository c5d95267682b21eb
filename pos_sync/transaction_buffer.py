# Transaction Buffer - SQLite storage for SimplePOS Sync Agent
# Authoritative local record of sales plus a key-value state table

import sqlite3
import json
import threading
from datetime import datetime
from typing import List, Optional, Dict, Any


class TransactionBuffer:
    """SQLite-backed store for transactions, line items and agent state"""

    DB_PATH = "simplepos.db"

    def __init__(self, db_path: str = None):
        self.db_path = db_path or self.DB_PATH
        self.lock = threading.RLock()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize database schema"""
        with self.lock:
            conn = self._connect()
            try:
                cursor = conn.cursor()

                cursor.execute('''
                    CREATE TABLE IF NOT EXISTS transactions_tbl (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        transaction_datetime TEXT NOT NULL,
                        total_amount REAL NOT NULL,
                        payment_method TEXT,
                        status TEXT DEFAULT 'COMPLETED',
                        created_at TEXT DEFAULT CURRENT_TIMESTAMP
                    )
                ''')
                # Databases created before voiding existed lack the status column
                try:
                    cursor.execute(
                        "ALTER TABLE transactions_tbl ADD COLUMN status TEXT DEFAULT 'COMPLETED'"
                    )
                except sqlite3.OperationalError:
                    pass  # column exists

                cursor.execute('''
                    CREATE TABLE IF NOT EXISTS transaction_items_tbl (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        transaction_id INTEGER NOT NULL,
                        item_name TEXT NOT NULL,
                        unit_price REAL NOT NULL,
                        quantity INTEGER NOT NULL,
                        line_total REAL NOT NULL,
                        FOREIGN KEY (transaction_id) REFERENCES transactions_tbl(id)
                    )
                ''')

                # Key-value state: sync queue blob, api config, recovery info
                cursor.execute('''
                    CREATE TABLE IF NOT EXISTS state (
                        key TEXT PRIMARY KEY,
                        value TEXT,
                        updated_at TEXT
                    )
                ''')

                conn.commit()
            finally:
                conn.close()

    def add_transaction(self, items: List[Dict], payment_method: str,
                        status: str = 'COMPLETED', total: float = None) -> int:
        """Insert a transaction and its line items atomically, return its id"""
        if total is None:
            total = sum(float(i.get('price', 0)) * float(i.get('quantity', 1)) for i in items)
        datetime_str = datetime.now().isoformat()

        with self.lock:
            conn = self._connect()
            try:
                with conn:
                    cursor = conn.execute('''
                        INSERT INTO transactions_tbl
                        (transaction_datetime, total_amount, payment_method, status)
                        VALUES (?, ?, ?, ?)
                    ''', (datetime_str, float(total), payment_method, status))
                    tx_id = cursor.lastrowid

                    for item in items:
                        price = float(item.get('price', 0))
                        quantity = int(item.get('quantity', 1))
                        conn.execute('''
                            INSERT INTO transaction_items_tbl
                            (transaction_id, item_name, unit_price, quantity, line_total)
                            VALUES (?, ?, ?, ?, ?)
                        ''', (tx_id, item.get('name') or 'Unknown Item', price,
                              quantity, price * quantity))
            finally:
                conn.close()

        return tx_id

    def _attach_items(self, conn: sqlite3.Connection, transactions: List[Dict]) -> List[Dict]:
        for tx in transactions:
            rows = conn.execute('''
                SELECT item_name, unit_price, quantity, line_total
                FROM transaction_items_tbl
                WHERE transaction_id = ?
            ''', (tx['id'],)).fetchall()
            tx['items'] = [dict(row) for row in rows]
        return transactions

    def get_transactions(self) -> List[Dict]:
        """All transactions, newest first, with their items"""
        with self.lock:
            conn = self._connect()
            try:
                rows = conn.execute('''
                    SELECT id, transaction_datetime, total_amount, payment_method,
                           status, created_at
                    FROM transactions_tbl
                    ORDER BY transaction_datetime DESC
                ''').fetchall()
                return self._attach_items(conn, [dict(row) for row in rows])
            finally:
                conn.close()

    def get_transaction_by_id(self, tx_id: int) -> Optional[Dict]:
        with self.lock:
            conn = self._connect()
            try:
                row = conn.execute(
                    'SELECT * FROM transactions_tbl WHERE id = ?', (tx_id,)
                ).fetchone()
                if row is None:
                    return None
                return self._attach_items(conn, [dict(row)])[0]
            finally:
                conn.close()

    def get_transactions_by_date(self, date: str) -> List[Dict]:
        """Transactions for one calendar day (YYYY-MM-DD)"""
        with self.lock:
            conn = self._connect()
            try:
                rows = conn.execute('''
                    SELECT id, transaction_datetime, total_amount, payment_method, status
                    FROM transactions_tbl
                    WHERE substr(transaction_datetime, 1, 10) = ?
                    ORDER BY transaction_datetime DESC
                ''', (date,)).fetchall()
                return self._attach_items(conn, [dict(row) for row in rows])
            finally:
                conn.close()

    def get_daily_summary(self, date: str) -> Dict:
        """Count, sum and average of non-void sales for one day"""
        with self.lock:
            conn = self._connect()
            try:
                row = conn.execute('''
                    SELECT
                        COUNT(*) AS total_transactions,
                        COALESCE(SUM(total_amount), 0) AS total_sales,
                        COALESCE(AVG(total_amount), 0) AS average_sale
                    FROM transactions_tbl
                    WHERE substr(transaction_datetime, 1, 10) = ? AND status != 'VOID'
                ''', (date,)).fetchone()
                return dict(row)
            finally:
                conn.close()

    def update_transaction_status(self, tx_id: int, status: str) -> bool:
        with self.lock:
            conn = self._connect()
            try:
                with conn:
                    cursor = conn.execute(
                        'UPDATE transactions_tbl SET status = ? WHERE id = ?',
                        (status, tx_id)
                    )
                return cursor.rowcount > 0
            finally:
                conn.close()

    def void_transaction(self, tx_id: int) -> bool:
        """Mark as VOID instead of deleting"""
        return self.update_transaction_status(tx_id, 'VOID')

    def delete_transaction(self, tx_id: int):
        with self.lock:
            conn = self._connect()
            try:
                with conn:
                    conn.execute('DELETE FROM transaction_items_tbl WHERE transaction_id = ?', (tx_id,))
                    conn.execute('DELETE FROM transactions_tbl WHERE id = ?', (tx_id,))
            finally:
                conn.close()

    def delete_all_transactions(self):
        with self.lock:
            conn = self._connect()
            try:
                with conn:
                    conn.execute('DELETE FROM transaction_items_tbl')
                    conn.execute('DELETE FROM transactions_tbl')
            finally:
                conn.close()

    def save_state(self, key: str, value: Any):
        """Save state key-value"""
        with self.lock:
            conn = self._connect()
            try:
                with conn:
                    conn.execute('''
                        INSERT OR REPLACE INTO state (key, value, updated_at)
                        VALUES (?, ?, ?)
                    ''', (key, json.dumps(value), datetime.now().isoformat()))
            finally:
                conn.close()

    def load_state(self, key: str, default: Any = None) -> Any:
        """Load state value"""
        with self.lock:
            conn = self._connect()
            try:
                row = conn.execute('SELECT value FROM state WHERE key = ?', (key,)).fetchone()
            finally:
                conn.close()

        if row is None:
            return default
        try:
            return json.loads(row[0])
        except (TypeError, ValueError):
            return row[0]

    def delete_state(self, key: str):
        with self.lock:
            conn = self._connect()
            try:
                with conn:
                    conn.execute('DELETE FROM state WHERE key = ?', (key,))
            finally:
                conn.close()

    def get_stats(self) -> Dict:
        """Get buffer statistics"""
        with self.lock:
            conn = self._connect()
            try:
                stats = {}
                stats['total_transactions'] = conn.execute(
                    'SELECT COUNT(*) FROM transactions_tbl'
                ).fetchone()[0]
                stats['void_transactions'] = conn.execute(
                    "SELECT COUNT(*) FROM transactions_tbl WHERE status = 'VOID'"
                ).fetchone()[0]
                stats['last_transaction'] = conn.execute(
                    'SELECT MAX(transaction_datetime) FROM transactions_tbl'
                ).fetchone()[0]
                return stats
            finally:
                conn.close()
