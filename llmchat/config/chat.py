"""Agent registry and chat behaviour settings."""

from pydantic import BaseModel, Field


class AgentsSettings(BaseModel):
    """Where agents are loaded from and how long they stay cached."""

    config_path: str = Field(
        default="config/agents.json",
        description="Path of the agents JSON file",
    )

    cache_initial_ttl: float = Field(default=300.0, gt=0)
    cache_min_ttl: float = Field(default=60.0, gt=0)
    cache_max_ttl: float = Field(default=900.0, gt=0)
    cache_step: float = Field(default=60.0, gt=0)


class ChatSettings(BaseModel):
    """Chat relay behaviour."""

    init_cache_initial_ttl: float = Field(default=300.0, gt=0)
    init_cache_min_ttl: float = Field(default=60.0, gt=0)
    init_cache_max_ttl: float = Field(default=900.0, gt=0)
    init_cache_step: float = Field(default=60.0, gt=0)
    init_cache_sample_size: int = Field(default=20, ge=1)
    init_cache_adjust_interval: float = Field(default=120.0, gt=0)

    welcome_char_delay: float = Field(
        default=0.05,
        description="Delay in seconds between characters of a streamed welcome text",
        ge=0,
    )

    # FastGPT history caches; lists change more often than a single chat
    history_list_cache_initial_ttl: float = Field(default=10.0, gt=0)
    history_list_cache_min_ttl: float = Field(default=5.0, gt=0)
    history_list_cache_max_ttl: float = Field(default=120.0, gt=0)
    history_list_cache_step: float = Field(default=5.0, gt=0)
    history_list_cache_sample_size: int = Field(default=30, ge=1)
    history_list_cache_adjust_interval: float = Field(default=60.0, gt=0)

    history_detail_cache_initial_ttl: float = Field(default=5.0, gt=0)
    history_detail_cache_min_ttl: float = Field(default=2.0, gt=0)
    history_detail_cache_max_ttl: float = Field(default=60.0, gt=0)
    history_detail_cache_step: float = Field(default=3.0, gt=0)
    history_detail_cache_sample_size: int = Field(default=30, ge=1)
    history_detail_cache_adjust_interval: float = Field(default=45.0, gt=0)
