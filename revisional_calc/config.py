"""Runtime settings read from the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .data_models import ChargeMode, RestitutionMode
from .errors import ValidationError

ENV_PREFIX = "REVISIONAL_"


@dataclass(frozen=True)
class Settings:
    preview_horizon: int = 12
    charge_mode: ChargeMode = ChargeMode.SINGLE_OCCURRENCE
    restitution_mode: RestitutionMode = RestitutionMode.SIMPLE
    max_rows: int = 120
    log_level: str = "WARNING"


def _int_setting(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValidationError(
            f"{ENV_PREFIX + name} must be an integer", code="INVALID_SETTING", details={"value": raw}
        ) from exc
    if value < 1:
        raise ValidationError(
            f"{ENV_PREFIX + name} must be positive", code="INVALID_SETTING", details={"value": raw}
        )
    return value


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    environ = os.environ if environ is None else environ
    raw_mode = environ.get(ENV_PREFIX + "CHARGE_MODE", ChargeMode.SINGLE_OCCURRENCE.value).strip().lower()
    try:
        charge_mode = ChargeMode(raw_mode)
    except ValueError as exc:
        raise ValidationError(
            f"{ENV_PREFIX}CHARGE_MODE must be 'single' or 'recurring'",
            code="INVALID_SETTING",
            details={"value": raw_mode},
        ) from exc
    raw_restitution = environ.get(ENV_PREFIX + "RESTITUTION_MODE", RestitutionMode.SIMPLE.value).strip().lower()
    try:
        restitution_mode = RestitutionMode(raw_restitution)
    except ValueError as exc:
        raise ValidationError(
            f"{ENV_PREFIX}RESTITUTION_MODE must be 'simple' or 'double'",
            code="INVALID_SETTING",
            details={"value": raw_restitution},
        ) from exc
    log_level = environ.get(ENV_PREFIX + "LOG_LEVEL", "WARNING").strip().upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValidationError(
            f"{ENV_PREFIX}LOG_LEVEL is not a logging level", code="INVALID_SETTING", details={"value": log_level}
        )
    return Settings(
        preview_horizon=_int_setting(environ, "PREVIEW_HORIZON", 12),
        charge_mode=charge_mode,
        restitution_mode=restitution_mode,
        max_rows=_int_setting(environ, "MAX_ROWS", 120),
        log_level=log_level,
    )
