"""
Runtime alert settings persisted to ``alert_settings.json``.

These are the operator-editable knobs (thresholds, email addresses, charger
automation, peak-discharge alert, daily summary, peak-window seasons), as
opposed to the process configuration in :mod:`monitor.src.config`.

Secrets (SendGrid API key, IFTTT webhook key) are never written to disk.
When the environment provides a credential it always wins over whatever the
operator posted at runtime.

CHANGELOG:
- 2026-10-19: Treat undecodable store files as corrupt (STORY-026)
- 2026-10-10: Externalise peak-window season months and widths (STORY-012)
- 2026-10-09: Initial creation (STORY-011)

TODO:
- None
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from monitor.src.storage import read_text, write_atomic

logger = logging.getLogger(__name__)

_SEND_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

_SECRET_FIELDS = {"sendgrid_api_key": True, "charger_control": {"ifttt_webhook_key": True}}


class ChargerControlSettings(BaseModel):
    """Automatic battery-charger control via an IFTTT smart plug."""

    enabled: bool = False
    ifttt_webhook_key: str = ""
    low_threshold: float = 45.0
    high_threshold: float = 85.0
    plug_name: str = "Battery Charger"
    max_temp: float = 110.0
    cooldown_s: float = 300.0


class PeakDischargeSettings(BaseModel):
    enabled: bool = True
    duration_minutes: int = Field(default=30, ge=1)
    power_threshold_w: float = -50.0


class DailySummarySettings(BaseModel):
    enabled: bool = True
    send_time: str = "20:00"

    @field_validator("send_time")
    @classmethod
    def validate_send_time(cls, v: str) -> str:
        """Require a 24-hour ``HH:MM`` time."""
        if not _SEND_TIME_RE.match(v):
            raise ValueError(f"send_time must be HH:MM (got: '{v}')")
        return v


class PeakWindowSettings(BaseModel):
    """Season-dependent midday window centred on solar noon.

    Months are 1-12. Any month in neither list is treated as winter.
    """

    solar_noon_hour: float = 12.0
    summer_months: list[int] = Field(default_factory=lambda: [6, 7, 8])
    shoulder_months: list[int] = Field(default_factory=lambda: [4, 5, 9, 10])
    summer_hours: float = 5.0
    shoulder_hours: float = 4.5
    winter_hours: float = 4.0

    @field_validator("summer_months", "shoulder_months")
    @classmethod
    def validate_months(cls, v: list[int]) -> list[int]:
        for month in v:
            if not 1 <= month <= 12:
                raise ValueError(f"month must be between 1 and 12 (got: {month})")
        return v


class AlertSettings(BaseModel):
    """All operator-editable alert settings.

    Attributes:
        enabled: Master switch for email alerts.
        sendgrid_api_key: Email provider credential (never persisted).
        from_email: Sender address.
        to_email: Recipient address.
        low_threshold: SOC (%) below which a low-battery alert fires.
        high_threshold: SOC (%) above which the recovery alert fires.
    """

    enabled: bool = False
    sendgrid_api_key: str = ""
    from_email: str = ""
    to_email: str = ""
    low_threshold: float = 50.0
    high_threshold: float = 80.0
    charger_control: ChargerControlSettings = Field(default_factory=ChargerControlSettings)
    peak_discharge_alert: PeakDischargeSettings = Field(default_factory=PeakDischargeSettings)
    daily_summary: DailySummarySettings = Field(default_factory=DailySummarySettings)
    peak_window: PeakWindowSettings = Field(default_factory=PeakWindowSettings)

    def with_env_credentials(
        self,
        sendgrid_api_key: str = "",
        ifttt_webhook_key: str = "",
    ) -> AlertSettings:
        """Return a copy with non-empty environment credentials applied."""
        updated = self.model_copy(deep=True)
        if sendgrid_api_key:
            updated.sendgrid_api_key = sendgrid_api_key
        if ifttt_webhook_key:
            updated.charger_control.ifttt_webhook_key = ifttt_webhook_key
        return updated

    def masked(self) -> dict:
        """Dump for the read API with credentials reduced to their last 8 chars."""
        data = self.model_dump()
        data["sendgrid_api_key"] = mask_secret(self.sendgrid_api_key)
        data["charger_control"]["ifttt_webhook_key"] = mask_secret(
            self.charger_control.ifttt_webhook_key
        )
        return data


def mask_secret(value: str) -> str:
    """``"***" + last 8 characters``, or an empty string for no secret."""
    if not value:
        return ""
    return "***" + value[-8:]


class AlertSettingsStore:
    """Load and save :class:`AlertSettings` as JSON.

    Args:
        path: Location of ``alert_settings.json``.
        sendgrid_api_key: Credential from the environment, if any.
        ifttt_webhook_key: Credential from the environment, if any.
    """

    def __init__(
        self,
        path: str | Path,
        sendgrid_api_key: str = "",
        ifttt_webhook_key: str = "",
    ) -> None:
        self.path = Path(path)
        self._sendgrid_api_key = sendgrid_api_key
        self._ifttt_webhook_key = ifttt_webhook_key

    def load(self) -> AlertSettings:
        """Return saved settings merged over defaults, with env credentials.

        Missing, unreadable or invalid files fall back to defaults.
        """
        settings = AlertSettings()
        try:
            text = read_text(self.path)
        except (OSError, UnicodeDecodeError):
            logger.error("Failed to read alert settings %s", self.path, exc_info=True)
            text = None
        if text is not None:
            try:
                settings = AlertSettings.model_validate_json(text)
                logger.info("Loaded alert settings from %s", self.path)
            except ValidationError:
                logger.error(
                    "Alert settings %s are invalid, using defaults",
                    self.path,
                    exc_info=True,
                )
        return self.apply_env(settings)

    def apply_env(self, settings: AlertSettings) -> AlertSettings:
        return settings.with_env_credentials(
            sendgrid_api_key=self._sendgrid_api_key,
            ifttt_webhook_key=self._ifttt_webhook_key,
        )

    def save(self, settings: AlertSettings) -> bool:
        """Write *settings* without credentials; errors are logged, not raised."""
        try:
            write_atomic(
                self.path, settings.model_dump_json(indent=2, exclude=_SECRET_FIELDS)
            )
        except OSError:
            logger.error("Failed to save alert settings %s", self.path, exc_info=True)
            return False
        logger.info("Saved alert settings to %s", self.path)
        return True
