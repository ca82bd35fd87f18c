from __future__ import annotations

import os
from dataclasses import dataclass, replace

from .session import DEFAULT_USERDATA_DIR

ENV_KEYS = [
    "AUTOCART_USERDATA_DIR",
    "AUTOCART_HEADFUL",
    "AUTOCART_VERIFY",
    "AUTOCART_USE_OPENAI",
    "AUTOCART_OPENAI_MODEL",
    "AUTOCART_REPORT_PATH",
    "OPENAI_API_KEY",
]

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _flag(env: dict[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    val = raw.strip().lower()
    if val in _TRUE:
        return True
    if val in _FALSE:
        return False
    raise RuntimeError(f"{key} must be one of {sorted(_TRUE | _FALSE)}, got {raw!r}")


@dataclass(frozen=True)
class Config:
    userdata_dir: str = DEFAULT_USERDATA_DIR
    headful: bool = False
    verify: bool = True
    use_openai: bool = False
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o"
    report_path: str = "artifacts/run_report.json"

    @staticmethod
    def from_env(env: dict[str, str] | None = None) -> "Config":
        env = dict(os.environ) if env is None else env
        return Config(
            userdata_dir=env.get("AUTOCART_USERDATA_DIR") or DEFAULT_USERDATA_DIR,
            headful=_flag(env, "AUTOCART_HEADFUL", False),
            verify=_flag(env, "AUTOCART_VERIFY", True),
            use_openai=_flag(env, "AUTOCART_USE_OPENAI", False),
            openai_api_key=env.get("OPENAI_API_KEY") or None,
            openai_model=env.get("AUTOCART_OPENAI_MODEL") or "gpt-4o",
            report_path=env.get("AUTOCART_REPORT_PATH") or "artifacts/run_report.json",
        )

    def with_overrides(self, **kwargs) -> "Config":
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})

    def check(self) -> None:
        if self.use_openai and not self.openai_api_key:
            raise RuntimeError("OPENAI_API_KEY is required when OpenAI assistance is enabled")
