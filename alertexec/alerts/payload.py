"""Alertmanager webhook payload: parsing and minimal validation.

Parsing and validation are separate steps so that a malformed body and a
well-formed but incomplete one are reported differently.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from alertexec.errors import PayloadParseError, PayloadValidationError


def _none_to_empty_dict(value: Any) -> Any:
    return {} if value is None else value


class Alert(BaseModel):
    """A single alert inside a notification group.

    Attributes:
        status: ``firing`` or ``resolved``.
        labels: Identifying labels, including ``alertname``.
        annotations: Free-form annotations (summary, description, ...).
        starts_at: When the alert started firing.
        ends_at: When it stopped, if known.
        generator_url: Link back to the rule that produced it.
        fingerprint: Alertmanager's identity hash for the label set.
    """

    status: str = ""
    labels: dict[str, str] = {}
    annotations: dict[str, str] = {}
    starts_at: Optional[datetime] = Field(default=None, alias="startsAt")
    ends_at: Optional[datetime] = Field(default=None, alias="endsAt")
    generator_url: str = Field(default="", alias="generatorURL")
    fingerprint: str = ""

    model_config = {"populate_by_name": True, "frozen": True}

    @field_validator("labels", "annotations", mode="before")
    @classmethod
    def _null_maps(cls, value: Any) -> Any:
        return _none_to_empty_dict(value)

    def template_fields(self) -> dict[str, Any]:
        """The alert keyed by Alertmanager's template field names."""
        return {
            "Status": self.status,
            "Labels": self.labels,
            "Annotations": self.annotations,
            "StartsAt": self.starts_at,
            "EndsAt": self.ends_at,
            "GeneratorURL": self.generator_url,
            "Fingerprint": self.fingerprint,
        }


class Payload(BaseModel):
    """One Alertmanager notification (webhook schema version 4).

    Every field defaults to its zero value so that a document missing a
    field still parses; :func:`validate_payload` decides whether it is
    usable.
    """

    version: str = ""
    group_key: str = Field(default="", alias="groupKey")
    truncated_alerts: int = Field(default=0, alias="truncatedAlerts")
    status: str = ""
    receiver: str = ""
    group_labels: dict[str, str] = Field(default={}, alias="groupLabels")
    common_labels: dict[str, str] = Field(default={}, alias="commonLabels")
    common_annotations: dict[str, str] = Field(default={}, alias="commonAnnotations")
    external_url: str = Field(default="", alias="externalURL")
    alerts: list[Alert] = []

    model_config = {"populate_by_name": True, "frozen": True}

    @field_validator("group_labels", "common_labels", "common_annotations", mode="before")
    @classmethod
    def _null_maps(cls, value: Any) -> Any:
        return _none_to_empty_dict(value)

    @field_validator("alerts", mode="before")
    @classmethod
    def _null_alerts(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def primary_alert_name(self) -> str:
        """``alertname`` label of the first alert, or ``""``."""
        if not self.alerts:
            return ""
        return self.alerts[0].labels.get("alertname", "")

    def template_context(self) -> dict[str, Any]:
        """Variables exposed to command and argument templates.

        Besides the snake_case names, the notification is also exposed
        under Alertmanager's own field names (``Status``, ``CommonLabels``,
        ``Alerts[0].Labels`` ...) so existing ``{{ .Status }}`` style
        templates port over by dropping the leading dot.
        """
        return {
            "version": self.version,
            "group_key": self.group_key,
            "truncated_alerts": self.truncated_alerts,
            "status": self.status,
            "receiver": self.receiver,
            "group_labels": self.group_labels,
            "common_labels": self.common_labels,
            "common_annotations": self.common_annotations,
            "external_url": self.external_url,
            "alerts": self.alerts,
            "primary_alertname": self.primary_alert_name,
            "payload": self,
            "Version": self.version,
            "GroupKey": self.group_key,
            "TruncatedAlerts": self.truncated_alerts,
            "Status": self.status,
            "Receiver": self.receiver,
            "GroupLabels": self.group_labels,
            "CommonLabels": self.common_labels,
            "CommonAnnotations": self.common_annotations,
            "ExternalURL": self.external_url,
            "Alerts": [alert.template_fields() for alert in self.alerts],
        }


def parse_payload(body: bytes) -> Payload:
    """Decode a webhook body.

    Raises:
        PayloadParseError: If *body* is not JSON or has the wrong shape.
    """
    try:
        return Payload.model_validate_json(body)
    except ValidationError as exc:
        raise PayloadParseError(str(exc)) from exc


def validate_payload(payload: Payload) -> None:
    """Reject notifications without a status or without alerts.

    Raises:
        PayloadValidationError: Describing the first missing element.
    """
    if not payload.status:
        raise PayloadValidationError("status is required")
    if not payload.alerts:
        raise PayloadValidationError("at least one alert is required")
