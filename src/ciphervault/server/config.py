# 服务端配置: 数据库url、对象存储、JWT 等
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # --- 基础配置 ---
    PROJECT_NAME: str = "CipherVault Server"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # --- 安全配置 (JWT) ---
    # 用于给登录令牌(Token)签名，生产环境必须通过环境变量覆盖！
    SECRET_KEY: str = "INSECURE_DEFAULT_KEY_PLEASE_CHANGE_ME"
    ALGORITHM: str = "HS256"
    # Token 过期时间 (分钟)，默认 24 小时
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 24 * 60

    # --- 数据库配置 ---
    # 默认使用本地 SQLite 文件，生产环境改为 PostgreSQL 链接
    DATABASE_URL: str = "sqlite:///./cipher_vault.db"
    DB_ECHO: bool = False
    DB_POOL_TIMEOUT: int = 30

    # --- 对象存储配置 (二进制数据) ---
    # s3: MinIO / AWS S3; local: 本地目录，仅用于开发
    OBJECT_STORE_BACKEND: Literal["s3", "local"] = "s3"
    OBJECT_STORE_PATH: str = "./objects"
    S3_ENDPOINT: str = "http://localhost:9000"
    S3_ACCESS_KEY: str = "minioadmin"
    S3_SECRET_KEY: str = "minioadmin"
    S3_BUCKET: str = "ciphervault"
    S3_PREFIX: str = "uploads"
    S3_REGION: str = "us-east-1"
    S3_CONNECT_TIMEOUT: float = 5.0
    S3_READ_TIMEOUT: float = 30.0

    # 读取根目录下的 .env 文件
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


# 缓存配置，避免每次请求都重复读取文件
@lru_cache
def get_settings() -> Settings:
    return Settings()
