import logging
import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CONFIG_ENV = "WORDCHAIN_CONFIG"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ChainConfig(BaseModel):
    corpus_path: Optional[str] = None
    workers: int = Field(4, ge=1)
    batch_size: int = Field(256, ge=1)
    registry_shards: int = Field(16, ge=1)
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> ChainConfig:
    """
    YAML file (explicit path, else $WORDCHAIN_CONFIG if set), then
    WORDCHAIN_CORPUS / WORDCHAIN_WORKERS overrides from the environment.
    """
    path = path or os.environ.get(CONFIG_ENV)

    data = {}
    if path:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        logger.info("loaded config from %s", path)

    if os.environ.get("WORDCHAIN_CORPUS"):
        data["corpus_path"] = os.environ["WORDCHAIN_CORPUS"]
    if os.environ.get("WORDCHAIN_WORKERS"):
        data["workers"] = os.environ["WORDCHAIN_WORKERS"]

    return ChainConfig.model_validate(data)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
