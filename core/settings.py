"""Process configuration read from environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

_DEFAULT_TEMPLATES_BUCKET = "plantillas-documentos"
_DEFAULT_GENERATED_BUCKET = "documentos-generados"
_DEFAULT_FILE_PREFIX = "SUMATE"
_DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Settings:
    templates_dir: Path
    output_dir: Path
    metadata_path: Path
    supabase_url: str | None
    supabase_key: str | None
    templates_bucket: str
    generated_bucket: str
    webhook_url: str | None
    protection_secret: str | None
    file_prefix: str
    http_timeout_seconds: float
    formats_path: Path | None
    doctypes_path: Path | None
    cors_allow_origins: tuple[str, ...]
    log_level: str

    @property
    def uses_remote_storage(self) -> bool:
        return self.supabase_url is not None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ

        output_dir = Path(_get(env, "DOCBUILDER_OUTPUT_DIR") or "generated")
        supabase_url = _get(env, "SUPABASE_URL")
        supabase_key = _get(env, "SUPABASE_ANON_KEY") or _get(env, "SUPABASE_SERVICE_ROLE_KEY")
        if supabase_url and not supabase_key:
            raise ValueError(
                "SUPABASE_URL is set but neither SUPABASE_ANON_KEY nor "
                "SUPABASE_SERVICE_ROLE_KEY is configured"
            )

        metadata_raw = _get(env, "DOCBUILDER_METADATA_PATH")
        formats_raw = _get(env, "DOCBUILDER_FORMATS_PATH")
        doctypes_raw = _get(env, "DOCBUILDER_DOCTYPES_PATH")

        return cls(
            templates_dir=Path(_get(env, "DOCBUILDER_TEMPLATES_DIR") or "templates"),
            output_dir=output_dir,
            metadata_path=Path(metadata_raw) if metadata_raw else output_dir / "documents.json",
            supabase_url=supabase_url,
            supabase_key=supabase_key,
            templates_bucket=_get(env, "SUPABASE_BUCKET_TEMPLATES") or _DEFAULT_TEMPLATES_BUCKET,
            generated_bucket=_get(env, "SUPABASE_BUCKET_GENERATED") or _DEFAULT_GENERATED_BUCKET,
            webhook_url=_get(env, "N8N_WEBHOOK_URL"),
            protection_secret=_get(env, "FRASE_SECRETA_EXCEL"),
            file_prefix=_get(env, "DOCBUILDER_FILE_PREFIX") or _DEFAULT_FILE_PREFIX,
            http_timeout_seconds=_positive_float(env, "DOCBUILDER_HTTP_TIMEOUT_SECONDS"),
            formats_path=Path(formats_raw) if formats_raw else None,
            doctypes_path=Path(doctypes_raw) if doctypes_raw else None,
            cors_allow_origins=cors_origins_from_env(env),
            log_level=_log_level(env, "DOCBUILDER_LOG_LEVEL"),
        )


def cors_origins_from_env(environ: Mapping[str, str] | None = None) -> tuple[str, ...]:
    """Comma-separated allow list; empty when CORS is disabled."""

    env = os.environ if environ is None else environ
    raw = _get(env, "DOCBUILDER_CORS_ALLOW_ORIGINS") or ""
    return tuple(origin.strip() for origin in raw.split(",") if origin.strip())


def _get(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _positive_float(env: Mapping[str, str], name: str) -> float:
    raw = _get(env, name)
    if raw is None:
        return _DEFAULT_HTTP_TIMEOUT_SECONDS
    try:
        parsed = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if parsed <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return parsed


def _log_level(env: Mapping[str, str], name: str) -> str:
    level = (_get(env, name) or "INFO").upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"{name} must be one of {', '.join(_LOG_LEVELS)}, got {level!r}")
    return level
