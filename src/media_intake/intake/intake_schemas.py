"""Pydantic schemas for intake requests and responses."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..entries.entry_models import Entry
from .intake_models import (
    CompletionNotification,
    CompletionResult,
    DeclaredUpload,
    TransferTarget,
    UserMetadata,
)


class UserMetadataPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    description: str
    tags: list[str] = Field(default_factory=list)
    thumbnail: str | None = None
    community: str | None = None
    hive: str | None = None
    language: str = "en"
    category: str = "general"
    decline_rewards: bool = Field(default=False, alias="declineRewards")
    reward_powerup: bool = Field(default=False, alias="rewardPowerup")
    vote_percent: float = Field(default=1.0, alias="votePercent")
    beneficiaries: str | None = None

    def to_domain(self) -> UserMetadata:
        return UserMetadata(
            title=self.title,
            description=self.description,
            tags=list(self.tags),
            thumbnail=self.thumbnail,
            community=self.community,
            hive=self.hive,
            language=self.language,
            category=self.category,
            decline_rewards=self.decline_rewards,
            reward_powerup=self.reward_powerup,
            vote_percent=self.vote_percent,
            beneficiaries=self.beneficiaries,
        )


class DeclaredUploadPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    owner: str
    size: int
    duration: float
    original_filename: str = Field(..., alias="originalFilename")

    def declared(self) -> DeclaredUpload:
        return DeclaredUpload(
            size_bytes=self.size,
            duration_seconds=self.duration,
            original_filename=self.original_filename,
        )


class PrepareRequest(UserMetadataPayload, DeclaredUploadPayload):
    thumbnail_base64: str | None = None


class InitRequest(DeclaredUploadPayload):
    pass


class FinalizeRequest(UserMetadataPayload):
    upload_id: str = Field(..., min_length=1)


class TransferTargetResponse(BaseModel):
    success: bool = True
    upload_url: str
    metadata: dict[str, str]
    video_id: str | None = None
    owner: str | None = None
    permlink: str | None = None
    upload_id: str | None = None

    @classmethod
    def from_target(cls, target: TransferTarget) -> "TransferTargetResponse":
        return cls(
            upload_url=target.endpoint,
            metadata=target.metadata,
            video_id=target.entry_id,
            owner=target.owner,
            permlink=target.permlink,
            upload_id=target.transfer_token,
        )


class CompletionResponse(BaseModel):
    success: bool = True
    outcome: str
    existing: bool
    video_id: str | None = None
    job_id: str | None = None
    content_id: str | None = None
    origin: str | None = None
    gateway_url: str | None = None

    @classmethod
    def from_result(cls, result: CompletionResult) -> "CompletionResponse":
        return cls(
            outcome=result.outcome.value,
            existing=result.existing,
            video_id=result.entry_id,
            job_id=result.job_id,
            content_id=result.content_id,
            origin=result.origin,
            gateway_url=result.gateway_url,
        )


class TusStorage(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    path: str = Field(..., alias="Path")


class TusUpload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(default="", alias="ID")
    storage: TusStorage = Field(..., alias="Storage")
    metadata: dict[str, Any] = Field(default_factory=dict, alias="MetaData")


class TusHookRequest(BaseModel):
    """Body of the transfer server's post-finish hook."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    upload: TusUpload = Field(..., alias="Upload")

    def to_notification(self) -> CompletionNotification:
        upload = self.upload
        return CompletionNotification(
            transfer_id=upload.id,
            local_file=Path(upload.storage.path),
            metadata={
                str(key): str(value)
                for key, value in upload.metadata.items()
                if value is not None
            },
        )


class ThumbnailData(BaseModel):
    video_id: str
    owner: str
    permlink: str
    thumbnail: str
    thumbnail_url: str
    ipfs_hash: str


class ThumbnailResponse(BaseModel):
    success: bool = True
    data: ThumbnailData

    @classmethod
    def from_entry(cls, entry: Entry) -> "ThumbnailResponse":
        thumbnail = entry.metadata.thumbnail
        return cls(
            data=ThumbnailData(
                video_id=entry.id,
                owner=entry.owner,
                permlink=entry.permlink,
                thumbnail=thumbnail,
                thumbnail_url=thumbnail,
                ipfs_hash=thumbnail.removeprefix("ipfs://"),
            )
        )
