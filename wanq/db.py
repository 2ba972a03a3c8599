import os
import sqlite3
import time

from . import config

DB_PATH = os.path.join(config.STATE_DIR, "wanq.db")

SCHEMA = """
CREATE TABLE IF NOT EXISTS state (
  key TEXT PRIMARY KEY, value TEXT, ts REAL
);
CREATE TABLE IF NOT EXISTS usage (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  ts REAL, rx_bps INTEGER, tx_bps INTEGER, game_delta INTEGER,
  drops INTEGER, backlog INTEGER, congestion REAL, score INTEGER, mode TEXT
);
CREATE TABLE IF NOT EXISTS events (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  ts REAL, level TEXT, message TEXT
);
CREATE TABLE IF NOT EXISTS transitions (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  ts REAL, prev_mode TEXT, new_mode TEXT, down_mbit INTEGER, up_mbit INTEGER
);
CREATE TABLE IF NOT EXISTS config (
  key TEXT PRIMARY KEY, value TEXT
);
CREATE INDEX IF NOT EXISTS idx_usage_ts ON usage(ts);
"""


def _connect():
    return sqlite3.connect(DB_PATH, timeout=5)


def init_db(path=None):
    path = path or DB_PATH
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    conn = sqlite3.connect(path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()


def _rows(cur):
    return [dict(zip([c[0] for c in cur.description], r)) for r in cur.fetchall()]

# --- Config overrides ---

def set_config(key, value):
    conn = _connect()
    conn.execute("INSERT OR REPLACE INTO config(key, value) VALUES(?, ?)", (key, str(value)))
    conn.commit(); conn.close()


def get_config(key, default=None):
    try:
        conn = _connect()
        cur = conn.execute("SELECT value FROM config WHERE key=?", (key,))
        row = cur.fetchone()
        conn.close()
    except sqlite3.Error:
        return default
    return row[0] if row else default


def all_config():
    try:
        conn = _connect()
        rows = conn.execute("SELECT key, value FROM config").fetchall()
        conn.close()
    except sqlite3.Error:
        return {}
    return {k: v for k, v in rows}

# --- Persisted controller state ---

def set_state(key, value):
    conn = _connect()
    conn.execute("INSERT OR REPLACE INTO state(key, value, ts) VALUES(?, ?, ?)",
                 (key, str(value), time.time()))
    conn.commit(); conn.close()


def set_states(items):
    ts = time.time()
    conn = _connect()
    conn.executemany("INSERT OR REPLACE INTO state(key, value, ts) VALUES(?, ?, ?)",
                     [(k, str(v), ts) for k, v in items.items()])
    conn.commit(); conn.close()


def get_state(key, default=None):
    # a missing database, table or row is a cold start
    try:
        conn = _connect()
        cur = conn.execute("SELECT value FROM state WHERE key=?", (key,))
        row = cur.fetchone()
        conn.close()
    except sqlite3.Error:
        return default
    return row[0] if row else default


def get_int_state(key, default=0):
    raw = get_state(key)
    if raw is None:
        return default
    try:
        return int(float(raw))
    except ValueError:
        return default


def get_float_state(key, default=0.0):
    raw = get_state(key)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def list_state():
    try:
        conn = _connect()
        cur = conn.execute("SELECT key,value,ts FROM state ORDER BY key")
        rows = _rows(cur)
        conn.close()
    except sqlite3.Error:
        return []
    return rows

# --- Usage samples / mode transitions ---

def insert_usage(rx_bps, tx_bps, game_delta, drops, backlog, congestion, score, mode):
    ts = time.time()
    conn = _connect()
    conn.execute("INSERT INTO usage(ts,rx_bps,tx_bps,game_delta,drops,backlog,congestion,score,mode) "
                 "VALUES(?,?,?,?,?,?,?,?,?)",
                 (ts, rx_bps, tx_bps, game_delta, drops, backlog, congestion, score, mode))
    conn.commit(); conn.close()


def prune_usage(older_than):
    conn = _connect()
    cur = conn.execute("DELETE FROM usage WHERE ts<?", (older_than,))
    conn.commit()
    removed = cur.rowcount
    conn.close()
    return removed


def recent_usage(limit=200):
    try:
        conn = _connect()
        cur = conn.execute("SELECT ts,rx_bps,tx_bps,game_delta,drops,backlog,congestion,score,mode "
                           "FROM usage ORDER BY id DESC LIMIT ?", (limit,))
        rows = _rows(cur)
        conn.close()
    except sqlite3.Error:
        return []
    return rows


def insert_transition(prev_mode, new_mode, down, up):
    conn = _connect()
    conn.execute("INSERT INTO transitions(ts,prev_mode,new_mode,down_mbit,up_mbit) VALUES(?,?,?,?,?)",
                 (time.time(), prev_mode, new_mode, down, up))
    conn.commit(); conn.close()


def list_transitions(limit=50):
    try:
        conn = _connect()
        cur = conn.execute("SELECT ts,prev_mode,new_mode,down_mbit,up_mbit FROM transitions "
                           "ORDER BY id DESC LIMIT ?", (limit,))
        rows = _rows(cur)
        conn.close()
    except sqlite3.Error:
        return []
    return rows

# --- Event log ---

def log_event(level, message):
    print(f"[{level}] {message}", flush=True)
    try:
        conn = _connect()
        conn.execute("INSERT INTO events(ts,level,message) VALUES(?,?,?)", (time.time(), level, message))
        conn.commit(); conn.close()
    except sqlite3.Error:
        # the printed line is the fallback record
        pass


def list_events(limit=50):
    try:
        conn = _connect()
        cur = conn.execute("SELECT ts,level,message FROM events ORDER BY id DESC LIMIT ?", (limit,))
        rows = _rows(cur)
        conn.close()
    except sqlite3.Error:
        return []
    return rows
