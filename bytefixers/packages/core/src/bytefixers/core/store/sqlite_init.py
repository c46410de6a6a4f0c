"""SQLite 数据库初始化

PRAGMA 配置 + 四张文档表 DDL + 索引创建。
文档表统一结构：JSON body + 可索引列（父 ID、起止日期键、version）。
使用 aiosqlite 异步操作。
"""

import aiosqlite

DOCUMENT_TABLES: tuple[str, ...] = ("tasks", "subtasks", "projects", "calendar_events")

_DOCUMENT_DDL = """
CREATE TABLE IF NOT EXISTS {table} (
    id          TEXT PRIMARY KEY,
    parent_id   TEXT,
    start_key   TEXT,
    end_key     TEXT,
    version     INTEGER NOT NULL DEFAULT 1,
    body        TEXT NOT NULL DEFAULT '{{}}'
);
"""

_DOCUMENT_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_{table}_parent_id ON {table}(parent_id);",
    "CREATE INDEX IF NOT EXISTS idx_{table}_start_key ON {table}(start_key);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    for table in DOCUMENT_TABLES:
        await conn.execute(_DOCUMENT_DDL.format(table=table))
        for idx_sql in _DOCUMENT_INDEXES:
            await conn.execute(idx_sql.format(table=table))

    await conn.commit()
