from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .path_containers import Source

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.7",
}

# order matters: references are requested in declaration order
DEFAULT_SOURCES = [
    Source("img", "src"),
    Source("img", "srcset"),
    Source("input[type=image]", "src"),
    Source("picture source", "srcset"),
    Source("video", "poster"),
    Source("video source, audio source", "src"),
    Source("link[rel~=stylesheet]", "href"),
    Source("link[rel~=icon]", "href"),
    Source("script", "src"),
]


@dataclass
class Settings:
    urls: List[str] = field(default_factory=list)
    directory: str = "mirror"
    sources: List[Source] = field(default_factory=lambda: list(DEFAULT_SOURCES))

    max_depth: Optional[int] = None
    default_filename: str = "index.html"
    prettify_urls: bool = False

    timeout: float = 15.0
    workers: int = 16
    max_bytes: int = 50_000_000
    same_origin_only: bool = True
    include: Optional[str] = None
    exclude: Optional[str] = None
    extra_headers: List[str] = field(default_factory=list)  # "Name: value"
    user_agent: Optional[str] = None

    def request_headers(self) -> Dict[str, str]:
        headers = dict(DEFAULT_HEADERS)
        if self.user_agent:
            headers["User-Agent"] = self.user_agent
        return headers

    def handler_options(self) -> Dict[str, Any]:
        return {
            "prettify_urls": self.prettify_urls,
            "default_filename": self.default_filename,
            "sources": self.sources,
        }


def _load_toml(p: Path) -> Dict[str, Any]:
    try:
        import tomllib  # py311+
    except ImportError:
        try:
            import tomli as tomllib  # backport
        except ImportError:
            raise RuntimeError("TOML config requires Python 3.11+ or 'tomli'")
    with open(p, "rb") as f:
        return tomllib.load(f)


def _load_yaml(p: Path) -> Dict[str, Any]:
    try:
        import yaml
    except ImportError:
        raise RuntimeError("YAML config requires 'PyYAML'")
    with open(p, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


CONFIG_LOADERS = {
    ".toml": _load_toml,
    ".tml": _load_toml,
    ".yaml": _load_yaml,
    ".yml": _load_yaml,
}


def load_config_file(path: str) -> Dict[str, Any]:
    """Read a TOML or YAML config; the top level must be a mapping."""
    p = Path(path)
    loader = CONFIG_LOADERS.get(p.suffix.lower())
    if loader is None:
        raise RuntimeError(f"Unsupported config format {p.suffix!r}. Use .toml or .yaml")
    data = loader(p) or {}
    if not isinstance(data, dict):
        raise RuntimeError(f"Top-level config in {p.name} must be a mapping")
    return data
