from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from papershelf.domain.errors import InvalidInput

DB_FILE_NAME = "papers.db"
STATE_DIR_NAME = ".papershelf"


def _env_list(name: str, default: str = "") -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise InvalidInput(f"{name} must be a number, got {raw!r}") from exc


def load_config_file(path: Optional[Path]) -> Dict[str, Any]:
    """Read the optional YAML config file. A missing file means no overrides."""
    if path is None or not path.is_file():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise InvalidInput(f"invalid config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidInput(f"config file {path} must contain a mapping")
    return data


@dataclass
class Settings:
    root: Path = field(default_factory=Path.cwd)
    db_url: Optional[str] = None
    http_timeout: float = 60.0
    user_agent: str = "papershelf/0.3"
    editor: str = "vi"
    default_tags: List[str] = field(default_factory=list)
    log_level: str = "INFO"

    @property
    def db_path(self) -> Path:
        return self.root / DB_FILE_NAME

    @property
    def state_dir(self) -> Path:
        return self.root / STATE_DIR_NAME

    def resolved_db_url(self) -> str:
        return self.db_url or f"sqlite:///{self.db_path}"

    def with_root(self, root: Path) -> "Settings":
        return replace(self, root=Path(root).expanduser().resolve())

    @classmethod
    def from_env(cls, config_file: Optional[Path] = None) -> "Settings":
        """
        Build settings from the YAML config file and the environment.

        Environment variables win over the file; both win over defaults.
        ``.env`` loading is left to the entry point.
        """
        path = config_file
        if path is None and os.getenv("PAPERSHELF_CONFIG"):
            path = Path(os.environ["PAPERSHELF_CONFIG"]).expanduser()
        file_values = load_config_file(path)

        defaults = cls()
        root_text = os.getenv("PAPERSHELF_ROOT") or file_values.get("root")
        root = Path(str(root_text)).expanduser() if root_text else Path.cwd()

        tags = _env_list("PAPERSHELF_DEFAULT_TAGS")
        if not tags:
            raw_tags = file_values.get("default_tags") or []
            if isinstance(raw_tags, str):
                raw_tags = raw_tags.split(",")
            tags = [str(t).strip() for t in raw_tags if str(t).strip()]

        try:
            file_timeout = float(file_values.get("http_timeout", defaults.http_timeout))
        except (TypeError, ValueError) as exc:
            raise InvalidInput("http_timeout in config file must be a number") from exc

        return cls(
            root=root.resolve(),
            db_url=os.getenv("PAPERSHELF_DB_URL") or file_values.get("db_url") or None,
            http_timeout=_env_float("PAPERSHELF_HTTP_TIMEOUT", file_timeout),
            user_agent=os.getenv("PAPERSHELF_USER_AGENT")
            or str(file_values.get("user_agent") or defaults.user_agent),
            editor=os.getenv("EDITOR") or str(file_values.get("editor") or defaults.editor),
            default_tags=tags,
            log_level=(os.getenv("PAPERSHELF_LOG_LEVEL") or defaults.log_level).upper(),
        )
