from functools import lru_cache
from typing import Self

from pydantic import model_validator
from pydantic_settings import (
    BaseSettings,
    YamlConfigSettingsSource,
    PydanticBaseSettingsSource,
)

from chainkit.types import ModelConfig
from config.default import BASE_DIR, ENVIRONMENT, ProjectConfig


class LocalConfig(BaseSettings):
    """全部的配置信息."""

    project: ProjectConfig = ProjectConfig()
    models: dict[str, ModelConfig] = {}

    @model_validator(mode="after")
    def fill_model_names(self) -> Self:
        # yaml 中以 key 作为模型配置名称
        for name, model_config in self.models.items():
            if not model_config.name:
                model_config.name = name
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            YamlConfigSettingsSource(settings_cls, f"{str(BASE_DIR)}/etc/{ENVIRONMENT.lower()}.yaml", "utf-8"),
        )


@lru_cache
def create_local_configs() -> LocalConfig:
    """create yaml file base setting object"""

    return LocalConfig()  # type: ignore


local_configs: LocalConfig = create_local_configs()  # type: ignore
