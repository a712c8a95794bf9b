# influx_catalog/config_loader.py
# Loads settings from config.yaml and .env. Environment variables (INFLUX_*) override the file,
# so secrets like the password and token can stay out of the YAML.
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

from influx_catalog.consistency.visibility import BackoffPolicy
from influx_catalog.errors import ConfigError
from influx_catalog.query.flux import STRATEGIES

load_dotenv()  # loads .env

ENV_OVERRIDES = {
    "url": "INFLUX_URL",
    "org": "INFLUX_ORG",
    "bucket": "INFLUX_BUCKET",
    "username": "INFLUX_USERNAME",
    "password": "INFLUX_PASSWORD",
    "token": "INFLUX_TOKEN",
}
REQUIRED = ("url", "org", "bucket")
ONBOARDING_REQUIRED = ("username", "password")


def load_config(path: str = "config/config.yaml") -> dict:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    with p.open() as f:
        cfg = yaml.safe_load(f) or {}
    influx = cfg.setdefault("influx", {}) or {}
    cfg["influx"] = influx
    # merge env-overrides
    for key, env in ENV_OVERRIDES.items():
        influx[key] = os.getenv(env, influx.get(key))
    return cfg


@dataclass(frozen=True)
class CatalogSettings:
    url: str
    org: str
    bucket: str
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    token: Optional[str] = field(default=None, repr=False)
    timeout_ms: int = 10_000
    query_strategy: str = "schema"
    range_start: str = "-5y"
    visibility: BackoffPolicy = field(default_factory=BackoffPolicy)

    def require_onboarding_fields(self):
        missing = [k for k in ONBOARDING_REQUIRED if not getattr(self, k)]
        if missing:
            raise ConfigError(f"Onboarding needs non-empty {', '.join(missing)}", keys=missing)


def _text(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def settings_from_config(cfg: dict) -> CatalogSettings:
    """
    Turn a loaded config dict into validated settings.

    Raises ConfigError listing every empty required key, before any network call is made.
    """
    influx = cfg.get("influx") or {}
    values = {k: _text(influx.get(k)) for k in ENV_OVERRIDES}
    missing = [k for k in REQUIRED if not values[k]]
    if missing:
        raise ConfigError(f"Missing required influx settings: {', '.join(missing)}", keys=missing)

    query = cfg.get("query") or {}
    visibility = cfg.get("visibility") or {}
    try:
        policy = BackoffPolicy(**visibility)
        timeout_ms = int(influx.get("timeout_ms") or 10_000)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid timing settings: {exc}", keys=["visibility", "timeout_ms"]) from exc

    strategy = str(query.get("strategy") or "schema")
    if strategy not in STRATEGIES:
        raise ConfigError(f"Unknown query.strategy {strategy!r}, expected one of {', '.join(STRATEGIES)}",
                          keys=["query.strategy"])

    return CatalogSettings(
        timeout_ms=timeout_ms,
        query_strategy=strategy,
        range_start=str(query.get("range_start", "-5y")),
        visibility=policy,
        **values,
    )
