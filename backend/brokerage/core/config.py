"""
应用配置
从环境变量（.env）读取，属性名统一大写
"""
import os
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


def _env_bool(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """全局配置"""

    APP_NAME: str = os.getenv("APP_NAME", "print-brokerage")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "dev")

    # 数据库
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./brokerage.db")
    DB_ECHO: bool = _env_bool("DB_ECHO")

    # 日志
    LOG_DIR: str = os.getenv("LOG_DIR", "logs")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_TO_FILE: bool = _env_bool("LOG_TO_FILE", "1")

    # 编号起始值
    QUOTE_NUMBER_START: int = int(os.getenv("QUOTE_NUMBER_START", "1000"))
    CUSTOMER_NUMBER_START: int = int(os.getenv("CUSTOMER_NUMBER_START", "1000"))

    # 供应商评分
    NEUTRAL_SUPPLIER_SCORE: float = float(os.getenv("NEUTRAL_SUPPLIER_SCORE", "70"))
    DEFAULT_WEIGHT_PRICE: int = int(os.getenv("DEFAULT_WEIGHT_PRICE", "30"))
    DEFAULT_WEIGHT_RATING: int = int(os.getenv("DEFAULT_WEIGHT_RATING", "25"))
    DEFAULT_WEIGHT_DELIVERY: int = int(os.getenv("DEFAULT_WEIGHT_DELIVERY", "25"))
    DEFAULT_WEIGHT_RELIABILITY: int = int(os.getenv("DEFAULT_WEIGHT_RELIABILITY", "20"))

    # 匿名经纪：供应商是否可见客户收货联系方式
    SUPPLIER_SEES_CUSTOMER_CONTACT: bool = _env_bool("SUPPLIER_SEES_CUSTOMER_CONTACT")

    # 附件校验
    ALLOWED_ATTACHMENT_TYPES: List[str] = Field(
        default_factory=lambda: os.getenv(
            "ALLOWED_ATTACHMENT_TYPES",
            "application/pdf,image/png,image/jpeg,image/tiff,application/postscript"
        ).split(",")
    )
    MAX_ATTACHMENT_SIZE_MB: int = int(os.getenv("MAX_ATTACHMENT_SIZE_MB", "100"))


settings = Settings()
