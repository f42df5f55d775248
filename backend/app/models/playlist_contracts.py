from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from backend.app.services.playlist_extractors import PlaylistInfo
from backend.app.services.playlist_service import PlaylistServiceStatus


class PlaylistInfoPayload(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    id: str
    title: str
    video_count: int = Field(ge=0, alias="videoCount")
    description: str | None = None
    thumbnail_url: str | None = Field(default=None, alias="thumbnailUrl")
    channel_name: str | None = Field(default=None, alias="channelName")
    is_private: bool | None = Field(default=None, alias="isPrivate")

    @classmethod
    def from_info(cls, info: PlaylistInfo) -> PlaylistInfoPayload:
        return cls(
            id=info.id,
            title=info.title,
            video_count=info.video_count,
            description=info.description,
            thumbnail_url=info.thumbnail_url,
            channel_name=info.channel_name,
            is_private=info.is_private,
        )


class PlaylistLookupResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool = True
    data: PlaylistInfoPayload
    method: str
    timing: int
    cached: bool


class PlaylistErrorResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool = False
    error: str
    details: str | None = None
    timing: int | None = None


class CacheClearResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool = True
    message: str


class CacheStatus(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    entries: int
    max_age: int = Field(alias="maxAge")


class FetchConfigStatus(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    timeout: int
    max_retries: int = Field(alias="maxRetries")


class ServiceStatusResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool = True
    status: str = "online"
    cache: CacheStatus
    config: FetchConfigStatus

    @classmethod
    def from_status(cls, status: PlaylistServiceStatus) -> ServiceStatusResponse:
        return cls(
            cache=CacheStatus(entries=status.cache_entries, max_age=status.cache_max_age_ms),
            config=FetchConfigStatus(timeout=status.timeout_ms, max_retries=status.max_retries),
        )
