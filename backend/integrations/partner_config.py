"""
Per-partner EDI configuration.

Each EDI-enabled vendor carries an ``edi_config`` JSON blob. Keys absent
from the blob fall back to the application settings, so a minimal
partner only needs transport credentials and its receiver ids:

    {
        "transport": "sftp",
        "host": "edi.shawinc.com",
        "username": "romafloor",
        "password_encrypted": "gAAAA...",
        "receiver_id": "SHAWFLOORS",
        "account_number": "0133954"
    }
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from core.config import Settings, get_settings
from integrations.x12 import Delimiters


class ShipTo(BaseModel):
    name: str
    address: str
    city: str
    state: str
    postal_code: str
    country: str = "US"


class PartnerEDIConfig(BaseModel):
    """Resolved configuration for one trading partner."""

    # Transport
    transport: str = "sftp"
    host: str = ""
    port: int = 22
    username: str = ""
    password_encrypted: str | None = None
    key_path: str | None = None
    local_root: str = "/data/edi"
    timeout_seconds: float = Field(30.0, gt=0)

    # Directories (partner's point of view: we write their Inbox, read their Outbox)
    inbox_dir: str = "/Inbox"
    outbox_dir: str = "/Outbox"
    archive_dir: str = "/Outbox/Archive"
    file_extensions: list[str] = Field(default_factory=lambda: ["edi", "x12", "txt", "dat"])

    # Interchange identity
    sender_id: str = "ROMAFLOOR"
    sender_qualifier: str = "ZZ"
    receiver_id: str = "SHAWFLOORS"
    receiver_qualifier: str = "ZZ"
    gs_sender_id: str | None = None
    gs_receiver_id: str | None = None
    usage_indicator: str = "P"

    # Outbound delimiters
    element_separator: str = "*"
    sub_element_separator: str = ":"
    segment_terminator: str = "~"

    # Outbound 850 content
    account_number: str | None = None
    ship_to: ShipTo | None = None

    # Product classification
    hard_surface_categories: list[str] = Field(default_factory=list)
    carpet_keywords: list[str] = Field(default_factory=list)
    category_map: dict[str, str] | None = None

    @field_validator("usage_indicator")
    @classmethod
    def _usage_indicator(cls, value: str) -> str:
        value = value.strip().upper()
        if value not in ("P", "T"):
            raise ValueError("usage_indicator must be P (production) or T (test)")
        return value

    @field_validator("element_separator", "sub_element_separator", "segment_terminator")
    @classmethod
    def _single_character(cls, value: str) -> str:
        if len(value) != 1 or value.isalnum():
            raise ValueError("delimiters must be a single non-alphanumeric character")
        return value

    @field_validator("file_extensions")
    @classmethod
    def _normalise_extensions(cls, value: list[str]) -> list[str]:
        return [ext.lower().lstrip(".") for ext in value if ext.strip()]

    # ── Derived ─────────────────────────────────────────────────────────

    @property
    def delimiters(self) -> Delimiters:
        return Delimiters(
            element=self.element_separator,
            sub_element=self.sub_element_separator,
            segment=self.segment_terminator,
        )

    @property
    def group_sender_id(self) -> str:
        return (self.gs_sender_id or self.sender_id).strip()

    @property
    def group_receiver_id(self) -> str:
        return (self.gs_receiver_id or self.receiver_id).strip()

    @property
    def ship_to_code(self) -> str:
        return self.account_number or "0133954"

    @classmethod
    def from_vendor_config(
        cls,
        edi_config: dict[str, Any] | None,
        settings: Settings | None = None,
    ) -> "PartnerEDIConfig":
        """Merge a vendor's stored edi_config over the settings defaults."""
        settings = settings or get_settings()
        defaults: dict[str, Any] = {
            "transport": settings.edi_transport,
            "port": settings.edi_sftp_port,
            "local_root": settings.edi_local_root,
            "timeout_seconds": settings.edi_transport_timeout_seconds,
            "inbox_dir": settings.edi_inbox_dir,
            "outbox_dir": settings.edi_outbox_dir,
            "archive_dir": settings.edi_archive_dir,
            "file_extensions": list(settings.edi_file_extensions),
            "sender_id": settings.edi_sender_id,
            "sender_qualifier": settings.edi_sender_qualifier,
            "usage_indicator": settings.edi_usage_indicator,
            "hard_surface_categories": list(settings.edi_hard_surface_categories),
            "carpet_keywords": list(settings.edi_carpet_keywords),
            "ship_to": {
                "name": settings.edi_ship_to_name,
                "address": settings.edi_ship_to_address,
                "city": settings.edi_ship_to_city,
                "state": settings.edi_ship_to_state,
                "postal_code": settings.edi_ship_to_postal_code,
                "country": settings.edi_ship_to_country,
            },
        }
        overrides = {k: v for k, v in (edi_config or {}).items() if v is not None}
        return cls.model_validate({**defaults, **overrides})
