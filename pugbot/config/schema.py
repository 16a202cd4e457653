from typing import Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pugbot.constants import DEFAULT_MAX_PENDING_PER_RECIPIENT


class TriggerConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    # None falls back to the built-in default for the notification kind
    enabled: Optional[bool] = None
    tier: Optional[int] = Field(default=None, ge=0, le=2)


class NotificationConfig(BaseModel):
    """Notification engine settings, stored under the ``notification`` config name."""

    model_config = ConfigDict(extra="allow")
    enabled: bool = True
    # A bare bool is shorthand for {enabled: <bool>}
    triggers: Dict[str, TriggerConfig] = {}
    timeout_seconds: Dict[str, int] = {}
    dm_templates: Dict[str, str] = {}
    fallback_channel_id: Optional[str] = None
    fallback_channel_tier0_id: Optional[str] = None
    fallback_channel_tier1_id: Optional[str] = None
    fallback_channel_tier2_id: Optional[str] = None
    log_channel_id: Optional[str] = None
    audit_log: bool = False
    max_pending_per_recipient: int = Field(default=DEFAULT_MAX_PENDING_PER_RECIPIENT, ge=1)

    @field_validator("triggers", mode="before")
    @classmethod
    def normalize_triggers(cls, v: object) -> object:
        if not isinstance(v, dict):
            return v
        normalized: Dict[str, Union[dict, object]] = {}
        for name, trigger in v.items():
            normalized[name] = {"enabled": trigger} if isinstance(trigger, bool) else trigger
        return normalized

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeouts(cls, v: Dict[str, int]) -> Dict[str, int]:
        for name, seconds in v.items():
            if seconds < 0:
                raise ValueError(f"timeout_seconds.{name} must be >= 0, got {seconds}")
        return v

    @field_validator(
        "fallback_channel_id",
        "fallback_channel_tier0_id",
        "fallback_channel_tier1_id",
        "fallback_channel_tier2_id",
        "log_channel_id",
        mode="before",
    )
    @classmethod
    def coerce_snowflake(cls, v: object) -> object:
        """Discord ids often arrive from YAML as integers."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    def fallback_channel_for_tier(self, tier: int) -> Optional[str]:
        tiered = getattr(self, f"fallback_channel_tier{int(tier)}_id", None)
        return tiered or self.fallback_channel_id
