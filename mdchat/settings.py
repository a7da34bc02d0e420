# mdchat/settings.py
from typing import Any, Dict, Literal, Tuple, get_args

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from mdchat.errors import ConfigurationError

ModelId = Literal[
    "grok-3-beta",
    "grok-3",
    "gpt-4.1",
    "gpt-4.1-mini",
    "gpt-4.1-nano",
    "o3",
    "o3-mini",
    "o1",
    "o1-mini",
]

MODEL_IDS: Tuple[str, ...] = get_args(ModelId)
DEFAULT_MODEL = "grok-3"


class Settings(BaseModel):
    """
    Per-request configuration read from the document front matter.

    Field aliases are the front matter keys (camelCase); every field has a
    default so a document without front matter still yields a full record.
    """

    model_config = ConfigDict(frozen=True, strict=True, extra="ignore")

    delimiter_prefix: str = Field("\n\n", alias="delimiterPrefix")
    delimiter_suffix: str = Field("\n\n", alias="delimiterSuffix")
    user_delimiter: str = Field("# === USER ===", alias="userDelimiter")
    assistant_delimiter: str = Field("# === ASSISTANT ===", alias="assistantDelimiter")
    system_delimiter: str = Field("# === SYSTEM ===", alias="systemDelimiter")
    model: ModelId = Field(DEFAULT_MODEL, alias="model")

    def delimiter_for(self, role: str) -> str:
        markers = {
            "user": self.user_delimiter,
            "assistant": self.assistant_delimiter,
            "system": self.system_delimiter,
        }
        if role not in markers:
            raise ValueError(f"Unknown role: {role}")
        return f"{self.delimiter_prefix}{markers[role]}{self.delimiter_suffix}"

    @property
    def assistant_opening(self) -> str:
        return self.delimiter_for("assistant")

    @property
    def user_opening(self) -> str:
        return self.delimiter_for("user")


def settings_from_mapping(data: Dict[str, Any]) -> Settings:
    """
    Validate a front matter mapping as a whole. Missing keys fall back to the
    defaults, unknown keys are dropped, and any invalid value fails the whole
    record with ConfigurationError.
    """
    try:
        return Settings.model_validate(dict(data))
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"Invalid front matter settings: {problems}") from e
