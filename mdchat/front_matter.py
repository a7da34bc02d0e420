# mdchat/front_matter.py
"""
Front matter detection, parsing and stripping.

Two forms are recognised, only at the very start of the document:

    +++            ---
    key = "v"      key: v
    +++            ---

TOML (+++) is tried first, then YAML (---).
"""

import logging
import re
import tomllib
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

import yaml

from mdchat.settings import Settings, settings_from_mapping

logger = logging.getLogger("mdchat_front_matter")

TOML_FRONT_MATTER_PATTERN = re.compile(r"\A\+\+\+[ \t]*\r?\n(.*?)\r?\n\+\+\+[ \t]*(?=\r?\n|\Z)", re.DOTALL)
YAML_FRONT_MATTER_PATTERN = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?=\r?\n|\Z)", re.DOTALL)


@dataclass(frozen=True)
class FrontMatterMatch:
    format: str  # "toml" | "yaml"
    body: str
    block: str


def _load_toml(body: str) -> Any:
    return tomllib.loads(body)


def _load_yaml(body: str) -> Any:
    return yaml.safe_load(body)


# order matters: first match wins
_FORMATS: Tuple[Tuple[str, "re.Pattern[str]", Callable[[str], Any]], ...] = (
    ("toml", TOML_FRONT_MATTER_PATTERN, _load_toml),
    ("yaml", YAML_FRONT_MATTER_PATTERN, _load_yaml),
)


def match_front_matter(text: str) -> Optional[FrontMatterMatch]:
    for fmt, pattern, _ in _FORMATS:
        m = pattern.match(text)
        if m:
            return FrontMatterMatch(format=fmt, body=m.group(1), block=m.group(0))
    return None


def parse_front_matter(text: str) -> Dict[str, Any]:
    """
    Return the front matter as a mapping, or {} when there is none.

    A block that fails to parse is reported and skipped, and the next form is
    attempted; a block that parses to something other than a mapping counts
    as no front matter at all.
    """
    for fmt, pattern, loader in _FORMATS:
        m = pattern.match(text)
        if not m:
            continue
        try:
            data = loader(m.group(1))
        except (tomllib.TOMLDecodeError, yaml.YAMLError) as e:
            logger.warning(f"Invalid {fmt.upper()} front matter: {e}")
            continue
        if isinstance(data, dict):
            return data
        logger.debug(f"{fmt.upper()} front matter is not a mapping ({type(data).__name__}), ignoring")
        return {}
    return {}


def extract_settings(text: str) -> Settings:
    """
    Build the request Settings from the document front matter.
    Raises ConfigurationError when a recognised key holds an invalid value.
    """
    return settings_from_mapping(parse_front_matter(text))


def strip_front_matter(text: str) -> str:
    found = match_front_matter(text)
    if found is None:
        return text.strip()
    return text[len(found.block):].strip()
