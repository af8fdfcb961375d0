from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Reusable bool coercion: "true" / "1" / "yes" → True
# ---------------------------------------------------------------------------

def _coerce_bool(v: object) -> object:
    if isinstance(v, str):
        return v.lower() in ("true", "1", "yes")
    return v


CoercedBool = Annotated[bool, BeforeValidator(_coerce_bool)]


# ---------------------------------------------------------------------------
# Base for all driver config blocks; unknown keys are a validation error
# ---------------------------------------------------------------------------

class _DriverConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------------
# Per-driver config models
# ---------------------------------------------------------------------------

class SlackConfig(_DriverConfig):
    # Web API (lookups, file download/upload, posting)
    token:                    str               = ""
    # Live session receive (Socket Mode)
    app_token:                str               = ""
    # Outgoing webhook receive; when set the live session is not used
    webhook_bind_address:     str               = ""
    webhook_path:             str               = "/"
    webhook_token:            str               = ""
    # Incoming webhook send
    webhook_url:              str               = ""
    # Normalization
    edit_disable:             CoercedBool       = False
    edit_suffix:              str               = ""
    no_send_join_part:        CoercedBool       = False
    use_channel_id:           CoercedBool       = False
    irc_bridge_bot_names:     list[str]         = Field(default_factory=lambda: ["Slack API Tester"])
    # Files
    max_file_size:            int               = 1_000_000
    media_download_blacklist: list[str]         = Field(default_factory=list)

    @model_validator(mode="after")
    def _require_path(self) -> SlackConfig:
        if not (self.app_token or self.webhook_bind_address or self.token or self.webhook_url):
            raise ValueError(
                "requires 'app_token' or 'webhook_bind_address' to receive, "
                "or 'token' / 'webhook_url' to send"
            )
        return self


# ---------------------------------------------------------------------------
# Gateway rules
# ---------------------------------------------------------------------------

class GatewayRule(BaseModel):
    """Connects one channel on each listed instance; messages fan out to all others."""
    model_config = ConfigDict(extra="forbid")

    name:     str                       = ""
    channels: dict[str, dict[str, str]] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Top-level application config
# ---------------------------------------------------------------------------

class AppConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    slack:    dict[str, SlackConfig] = {}
    gateways: list[GatewayRule]      = []
