from __future__ import annotations
from pydantic import BaseModel, Field
from pathlib import Path
from typing import Any, Dict, List
import os, yaml

DEFAULT_COMMAND_KEYWORDS = ["clean", "remove", "fill", "outlier", "standardize"]

class LLMConfig(BaseModel):
    base_url: str
    api_key: str
    model: str
    temperature: float = 0.2
    max_output_tokens: int = 1000
    timeout_seconds: float = 120.0

class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

class StorageConfig(BaseModel):
    logs_key_prefix: str = "logs"
    ttl_seconds: int = 60*60*24*3
    dataset_ttl_seconds: int = 60*60
    session_ttl_seconds: int = 60*60
    max_datasets: int = 50
    preview_rows: int = 10

class DispatchConfig(BaseModel):
    command_keywords: List[str] = Field(default_factory=lambda: list(DEFAULT_COMMAND_KEYWORDS))

class Config(BaseModel):
    llm: LLMConfig
    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)

    @staticmethod
    def load(path: str | Path) -> "Config":
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return Config(**_apply_env(data))


def _apply_env(data: Dict[str, Any]) -> Dict[str, Any]:
    """Environment variables win over values read from YAML."""
    llm = data.get("llm") or {}
    for k, env in [("base_url","LLM_BASE_URL"),("api_key","LLM_API_KEY"),("model","LLM_MODEL")]:
        if os.environ.get(env): llm[k] = os.environ[env]
    if os.environ.get("LLM_TEMPERATURE"):
        llm["temperature"] = float(os.environ["LLM_TEMPERATURE"])
    for k in ("base_url", "api_key", "model"):
        llm.setdefault(k, "")
    data["llm"] = llm
    return data


def load_config() -> Config:
    """
    Load the YAML config. Without CONFIG_PATH, look for
    'config/server_config.yaml' one level above this package (api/config).
    If neither exists, build everything from environment variables.
    """
    cfg_env = os.environ.get("CONFIG_PATH")
    if cfg_env:
        cfg_path = Path(cfg_env)
    else:
        # .../api
        current_dir = Path(__file__).resolve().parents[1]
        cfg_path = current_dir / "config" / "server_config.yaml"

    if cfg_path.exists():
        return Config.load(cfg_path)

    llm = LLMConfig(
        base_url=os.environ.get("LLM_BASE_URL", ""),
        api_key=os.environ.get("LLM_API_KEY", ""),
        model=os.environ.get("LLM_MODEL", ""),
        temperature=float(os.environ.get("LLM_TEMPERATURE", 0.2)),
        max_output_tokens=int(os.environ.get("LLM_MAX_OUTPUT_TOKENS", 1000)),
        timeout_seconds=float(os.environ.get("LLM_TIMEOUT_SECONDS", 120)),
    )
    server = ServerConfig(
        host=os.environ.get("SERVER_HOST", "0.0.0.0"),
        port=int(os.environ.get("SERVER_PORT", 8080)),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )
    storage = StorageConfig(
        logs_key_prefix=os.environ.get("LOGS_KEY_PREFIX", "logs"),
        ttl_seconds=int(os.environ.get("TTL_SECONDS", 60 * 60 * 24 * 3)),
        dataset_ttl_seconds=int(os.environ.get("DATASET_TTL_SECONDS", 60 * 60)),
        session_ttl_seconds=int(os.environ.get("SESSION_TTL_SECONDS", 60 * 60)),
        max_datasets=int(os.environ.get("MAX_DATASETS", 50)),
        preview_rows=int(os.environ.get("PREVIEW_ROWS", 10)),
    )
    return Config(llm=llm, server=server, storage=storage)
