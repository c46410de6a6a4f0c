"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、日志格式、文本预览截断长度、保存冲突重试次数等可配置常量。
"""

import os
from pathlib import Path


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("BYTEFIXERS_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "BYTEFIXERS_DB_PATH",
        str(_get_base_dir() / "sqlite" / "bytefixers.db"),
    )


def get_log_format() -> str:
    """日志渲染模式：dev / json"""
    return os.environ.get("BYTEFIXERS_LOG_FORMAT", "dev")


def get_log_level() -> str:
    """日志级别"""
    return os.environ.get("BYTEFIXERS_LOG_LEVEL", "INFO")


# 审计日志中长文本（description）预览截断长度，仅用于展示，比较始终使用完整值
TEXT_PREVIEW_LENGTH: int = int(
    os.environ.get("BYTEFIXERS_TEXT_PREVIEW_LENGTH", "50")
)

# 描述字段最大长度
DESCRIPTION_MAX_LENGTH: int = 500

# 乐观并发（version CAS）冲突时的最大重试次数
SAVE_CONFLICT_MAX_RETRIES: int = int(
    os.environ.get("BYTEFIXERS_SAVE_CONFLICT_MAX_RETRIES", "3")
)
