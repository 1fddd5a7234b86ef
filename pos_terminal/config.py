from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List, Mapping, Optional

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    backend: str = "memory"
    api_url: Optional[str] = None
    api_key: Optional[str] = None
    http_timeout: float = 5.0
    tax_rate: Decimal = Decimal("0.07")
    clamp_discount: bool = True
    allowed_origins: tuple[str, ...] = ("*",)
    log_level: str = "INFO"


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ

    backend = env.get("POS_BACKEND", "memory").lower()
    if backend not in {"memory", "http"}:
        raise RuntimeError(f"POS_BACKEND must be 'memory' or 'http', got {backend!r}")
    api_url = env.get("POS_API_URL") or None
    if backend == "http" and not api_url:
        raise RuntimeError("POS_API_URL must be set when POS_BACKEND=http")

    try:
        tax_rate = Decimal(env.get("POS_TAX_RATE", "0.07"))
    except InvalidOperation as exc:
        raise RuntimeError(f"POS_TAX_RATE is not a number: {env.get('POS_TAX_RATE')!r}") from exc
    if not tax_rate.is_finite() or tax_rate < 0:
        raise RuntimeError("POS_TAX_RATE must be a non-negative number")

    try:
        timeout = float(env.get("POS_HTTP_TIMEOUT", "5.0"))
    except ValueError as exc:
        raise RuntimeError("POS_HTTP_TIMEOUT must be a number of seconds") from exc

    return Settings(
        backend=backend,
        api_url=api_url,
        api_key=env.get("POS_API_KEY") or None,
        http_timeout=timeout,
        tax_rate=tax_rate,
        clamp_discount=_flag(env.get("POS_CLAMP_DISCOUNT", "true"), "POS_CLAMP_DISCOUNT"),
        allowed_origins=tuple(_origins(env.get("ALLOWED_ORIGINS", "*"))),
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
    )


def _flag(value: str, name: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise RuntimeError(f"{name} must be a boolean, got {value!r}")


def _origins(raw: str) -> List[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]
