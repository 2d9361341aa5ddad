from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class QueueOptions(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    durable: bool = Field(default=True, description="Queue survives a broker restart")
    auto_delete: bool = Field(default=False, description="Queue is removed when its last consumer leaves")


class PublishOptions(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    correlation_id: str | None = None
    reply_to: str | None = None
    headers: Dict[str, Any] = Field(default_factory=dict)
