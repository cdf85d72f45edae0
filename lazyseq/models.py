"""
lazyseq - Pydantic Models

Node kind tags for pipeline stages, and the option/settings models.
"""

import logging
import os
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OpKind(str, Enum):
    """Kind of a pipeline node; selects how the node produces its values"""
    SOURCE = "source"
    GENERATE = "generate"
    CONSTRAINED = "constrained"
    MAP = "map"
    FILTER = "filter"
    DROP = "drop"
    TAKE = "take"
    DROP_WHILE = "drop_while"
    TAKE_WHILE = "take_while"
    FLATTEN = "flatten"
    FLAT_MAP = "flat_map"
    CONCAT = "concat"
    CHUNK = "chunk"


class JoinOptions(BaseModel):
    """Options for rendering a sequence as a string with join()"""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    separator: str = Field(", ", description="Placed between consecutive values")
    prefix: str = Field("", description="Placed before the first value")
    postfix: str = Field("", description="Placed after the last value")
    limit: int = Field(
        -1,
        description="Maximum number of values rendered; negative means unlimited",
    )
    truncated: str = Field(
        "...",
        description="Appended in place of the values past the limit",
    )
    transform: Optional[Callable[[Any], str]] = Field(
        None,
        description="Per-value string conversion; str() when absent",
    )

    def render(self, value: Any) -> str:
        if self.transform is not None:
            return str(self.transform(value))
        return str(value)


class LoggingSettings(BaseModel):
    """Logging configuration, usually read from the environment"""
    level: int = Field(logging.WARNING, description="Logging level for the lazyseq loggers")
    format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - [%(funcName)s:%(lineno)d] - %(message)s",
        description="Log record format",
    )

    @field_validator("level", mode="before")
    @classmethod
    def validate_level(cls, v):
        """Accept level names as well as numeric levels"""
        if isinstance(v, str):
            name = v.strip().upper()
            if name.isdigit():
                return int(name)
            level = logging.getLevelName(name)
            if not isinstance(level, int):
                raise ValueError(f"Unknown logging level: {v}")
            return level
        return v

    @classmethod
    def from_env(cls) -> "LoggingSettings":
        """Build settings from LAZYSEQ_LOG_LEVEL and LAZYSEQ_LOG_FORMAT"""
        values = {}
        if os.environ.get("LAZYSEQ_LOG_LEVEL"):
            values["level"] = os.environ["LAZYSEQ_LOG_LEVEL"]
        if os.environ.get("LAZYSEQ_LOG_FORMAT"):
            values["format"] = os.environ["LAZYSEQ_LOG_FORMAT"]
        return cls(**values)
