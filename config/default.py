import os
import enum
from typing import Self, Literal
from pathlib import Path

from pydantic import BaseModel, model_validator


class EnvironmentEnum(str, enum.Enum):
    local = "local"
    development = "development"
    test = "test"
    production = "production"


ENVIRONMENT = os.environ.get(
    "environment",  # noqa
    EnvironmentEnum.local.value,
)

BASE_DIR = Path(__file__).resolve().parent.parent


class ProjectConfig(BaseModel):
    unique_code: str = "chainkit"
    debug: bool = False
    environment: EnvironmentEnum = EnvironmentEnum(ENVIRONMENT)
    log_level: Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"] = "INFO"

    @model_validator(mode="after")
    def check_debug_options(self) -> Self:
        assert not (
            self.debug and self.environment == EnvironmentEnum.production
        ), "Production cannot set with debug enabled"
        return self

    @property
    def base_dir(self) -> Path:
        return BASE_DIR
