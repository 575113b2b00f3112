import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "store": "sqlite",  # "sqlite" or "memory"
    "store_path": ".prthreads.db",
    "base_url": "",  # where review pages live; summary links point here
    "post_summary": True,
    "log_level": "WARNING",
    "app_id": None,
    "private_key_path": None,
}

VALID_STORES = ("sqlite", "memory")


def load_config(config_path: str = ".prthreads.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prthreads.yml in the current directory
      3. CLI argument overrides
    """
    config = dict(DEFAULT_CONFIG)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    if config["store"] not in VALID_STORES:
        raise ValueError(f"Unknown store {config['store']!r}; expected one of {', '.join(VALID_STORES)}")

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["app_id"] = os.environ.get("PRTHREADS_APP_ID") or config["app_id"]
    config["app_private_key"] = os.environ.get("PRTHREADS_APP_PRIVATE_KEY")

    return config


def load_private_key(config: dict) -> Optional[str]:
    """
    Return the GitHub App private key.

    ``PRTHREADS_APP_PRIVATE_KEY`` wins; otherwise the PEM file at
    ``private_key_path`` is read. Returns None when neither is set.
    """
    if config.get("app_private_key"):
        return config["app_private_key"]

    key_path = config.get("private_key_path")
    if key_path:
        p = Path(key_path)
        if not p.exists():
            raise FileNotFoundError(f"Private key file not found: {key_path}")
        return p.read_text()

    return None
