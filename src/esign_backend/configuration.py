from __future__ import annotations

import logging
import os
import sys
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

# Load environment variables from .env file
load_dotenv()

_HERE = Path(__file__).resolve()
_CANDIDATE_CONFIG_PATHS = [parent / "config/config.yaml" for parent in _HERE.parents[:4]]

CONFIG_ENV_VAR = "ESIGN_CONFIG"

DEFAULTS: Dict[str, Any] = {
    "storage": {
        "backend": "local",
        "root": "${oc.env:ESIGN_STORAGE_ROOT,'data/blobs'}",
        "s3_bucket": "${oc.env:S3_BUCKET_NAME,''}",
        "s3_prefix": "documents/",
        "s3_endpoint_url": "${oc.env:S3_ENDPOINT_URL,''}",
    },
    "database": {
        "path": "${oc.env:ESIGN_DB_PATH,'data/documents.db'}",
    },
    "signing": {
        "base_url": "${oc.env:DOCUMENSO_BASE_URL,'https://app.documenso.com/api/v1'}",
        "api_key": "${oc.env:DOCUMENSO_API_KEY,''}",
        "timeout_seconds": 30.0,
        "default_signer_name": "Signer",
    },
    "annotation": {
        "signature_placeholder": "[SIGNATURE FIELD]",
    },
    "server": {
        "cors_origins": ["http://localhost:3000", "http://localhost:8080"],
    },
    "logging": {
        "level": "${oc.env:LOG_LEVEL,'INFO'}",
    },
}


def find_config_file() -> Optional[Path]:
    """Return the YAML override file: $ESIGN_CONFIG if set, else the first config/config.yaml above the package."""
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        path = Path(explicit)
        if not path.exists():
            raise FileNotFoundError(f"{CONFIG_ENV_VAR} points at a missing file: {path}")
        return path
    return next((path for path in _CANDIDATE_CONFIG_PATHS if path.exists()), None)


def load_settings(config_path: Optional[Path] = None, overrides: Optional[Dict[str, Any]] = None) -> DictConfig:
    """
    Build the runtime settings.

    Built-in defaults are merged with the YAML file (if any) and then with
    explicit overrides. The result is struct-mode: unknown keys are rejected.
    """
    base = OmegaConf.create(DEFAULTS)
    OmegaConf.set_struct(base, True)

    layers = [base]
    path = config_path or find_config_file()
    if path is not None:
        layers.append(OmegaConf.load(path))
    if overrides:
        layers.append(OmegaConf.create(overrides))

    merged = OmegaConf.merge(*layers)
    if merged.storage.backend not in ("local", "s3"):
        raise ValueError(f"Unknown storage backend: {merged.storage.backend}")
    return merged


@lru_cache(maxsize=1)
def get_settings() -> DictConfig:
    return load_settings()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
