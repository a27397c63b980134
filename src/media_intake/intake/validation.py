"""Intake input validation."""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass

from ..config import IntakeLimits
from ..entries.entry_models import EntryMetadata
from ..exceptions import ValidationError
from .intake_models import DeclaredUpload, UserMetadata

logger = logging.getLogger(__name__)

OWNER_PATTERN = re.compile(r"^[a-z0-9.-]{3,50}$")
HIVE_PATTERN = re.compile(r"^hive-\d+$")
ALLOWED_CATEGORIES = frozenset(
    {"general", "technology", "gaming", "music", "sports", "entertainment", "education", "news"}
)


@dataclass(slots=True)
class IntakeValidator:
    """Validate declared upload values and user metadata against limits."""

    limits: IntakeLimits

    def validate_owner(self, owner: str) -> str:
        if not isinstance(owner, str) or not OWNER_PATTERN.match(owner):
            raise self._reject(
                "owner",
                "Owner must be 3-50 characters, lowercase alphanumeric with dots and hyphens",
            )
        return owner

    def validate_declared(self, declared: DeclaredUpload) -> DeclaredUpload:
        limits = self.limits
        if isinstance(declared.size_bytes, bool) or not isinstance(declared.size_bytes, int):
            raise self._reject("size", "Size must be an integer number of bytes")
        if not limits.min_size_bytes <= declared.size_bytes <= limits.max_size_bytes:
            raise self._reject(
                "size",
                f"Size must be between {limits.min_size_bytes} bytes and {limits.max_size_bytes} bytes",
            )
        duration = float(declared.duration_seconds)
        if math.isnan(duration) or not (
            limits.min_duration_seconds <= duration <= limits.max_duration_seconds
        ):
            raise self._reject(
                "duration",
                f"Duration must be between {limits.min_duration_seconds} and "
                f"{limits.max_duration_seconds} seconds",
            )
        filename = (declared.original_filename or "").strip()
        if not 1 <= len(filename) <= 255:
            raise self._reject("originalFilename", "Original filename is required")
        return DeclaredUpload(
            size_bytes=declared.size_bytes,
            duration_seconds=duration,
            original_filename=filename,
        )

    def build_metadata(
        self,
        declared: DeclaredUpload,
        user: UserMetadata,
        *,
        default_thumbnail: str = "",
    ) -> EntryMetadata:
        """Merge declared + user values into the entry metadata."""
        declared = self.validate_declared(declared)
        title = (user.title or "").strip()
        if not 1 <= len(title) <= 250:
            raise self._reject("title", "Title must be 1-250 characters")
        description = (user.description or "").strip()
        if not 1 <= len(description) <= 10_000:
            raise self._reject("description", "Description must be 1-10000 characters")
        tags = [tag.strip() for tag in user.tags if tag and tag.strip()]
        if len(tags) > self.limits.max_tags:
            raise self._reject("tags", f"Tags must be a list with maximum {self.limits.max_tags} items")
        if any(len(tag) > 50 for tag in tags):
            raise self._reject("tags", "Tags must be at most 50 characters each")
        if user.community is not None and len(user.community) > 50:
            raise self._reject("community", "Community display name must be max 50 characters")
        if user.hive and not HIVE_PATTERN.match(user.hive):
            raise self._reject("hive", 'Hive must be in format "hive-123456"')
        if user.category not in ALLOWED_CATEGORIES:
            raise self._reject("category", "Invalid category")
        if not 2 <= len(user.language or "") <= 5:
            raise self._reject("language", 'Language must be 2-5 characters (e.g., "en", "es")')
        if not 0.0 <= float(user.vote_percent) <= 1.0:
            raise self._reject("votePercent", "votePercent must be between 0 and 1")
        beneficiaries = user.beneficiaries or "[]"
        try:
            if not isinstance(json.loads(beneficiaries), list):
                raise ValueError("not a list")
        except ValueError as exc:
            raise self._reject("beneficiaries", "Beneficiaries must be a JSON array string") from exc

        return EntryMetadata(
            title=title,
            description=description,
            size_bytes=declared.size_bytes,
            duration_seconds=declared.duration_seconds,
            original_filename=declared.original_filename,
            tags=tags,
            thumbnail=thumbnail_uri(user.thumbnail, default_thumbnail),
            community=user.community or None,
            hive=user.hive or None,
            language=user.language,
            category=user.category,
            decline_rewards=bool(user.decline_rewards),
            reward_powerup=bool(user.reward_powerup),
            vote_percent=float(user.vote_percent),
            beneficiaries=beneficiaries,
        )

    @staticmethod
    def _reject(field: str, message: str) -> ValidationError:
        logger.warning("intake.validation.rejected", extra={"field": field, "reason": message})
        return ValidationError(message, field=field)


def thumbnail_uri(thumbnail: str | None, default_thumbnail: str = "") -> str:
    """Normalise a thumbnail CID into an ``ipfs://`` URI, falling back to the default."""
    value = (thumbnail or "").strip() or (default_thumbnail or "").strip()
    if not value:
        return ""
    return value if value.startswith("ipfs://") else f"ipfs://{value}"
