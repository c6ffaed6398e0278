"""Caller input for stream lifecycle operations."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from proxyconf.domain.errors import ValidationError
from proxyconf.domain.model import CertificateRef, parse_certificate_ref


class StreamRequestModel(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    @field_validator("certificate_id", mode="before", check_fields=False)
    @classmethod
    def _check_certificate_id(cls, value: object) -> object:
        parse_certificate_ref(value)
        return value

    @field_validator("domain_names", check_fields=False)
    @classmethod
    def _normalise_domain_names(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return [name.lower() for name in value if name]


class StreamCreateRequest(StreamRequestModel):
    incoming_port: int = Field(ge=1, le=65535)
    forwarding_host: str = Field(min_length=1, max_length=255)
    forwarding_port: int = Field(ge=1, le=65535)
    tcp_forwarding: bool = True
    udp_forwarding: bool = False
    enabled: bool = True
    certificate_id: int | str | None = None
    domain_names: list[str] = Field(default_factory=list[str])
    meta: dict[str, Any] = Field(default_factory=dict[str, Any])

    @model_validator(mode="after")
    def _require_protocol(self) -> StreamCreateRequest:
        if not (self.tcp_forwarding or self.udp_forwarding):
            raise ValueError("at least one of tcp_forwarding or udp_forwarding must be enabled")
        return self

    @property
    def certificate_ref(self) -> CertificateRef:
        return parse_certificate_ref(self.certificate_id)

    def stored_fields(self) -> dict[str, Any]:
        """Columns to insert; domain names and the certificate are handled separately."""

        return self.model_dump(exclude={"certificate_id", "domain_names"})


class StreamUpdateRequest(StreamRequestModel):
    id: int = Field(ge=1)
    incoming_port: int | None = Field(default=None, ge=1, le=65535)
    forwarding_host: str | None = Field(default=None, min_length=1, max_length=255)
    forwarding_port: int | None = Field(default=None, ge=1, le=65535)
    tcp_forwarding: bool | None = None
    udp_forwarding: bool | None = None
    certificate_id: int | str | None = None
    domain_names: list[str] | None = None
    meta: dict[str, Any] | None = None

    @property
    def certificate_ref(self) -> CertificateRef | None:
        """``None`` when the caller did not touch the certificate."""

        if "certificate_id" not in self.model_fields_set:
            return None
        return parse_certificate_ref(self.certificate_id)

    def stored_fields(self) -> dict[str, Any]:
        """Columns the caller explicitly set, excluding id, certificate and domains."""

        return self.model_dump(
            include=self.model_fields_set - {"id", "certificate_id", "domain_names"},
            exclude_none=True,
        )


def coerce_request[TRequest: StreamRequestModel](
    model: type[TRequest],
    data: TRequest | Mapping[str, Any],
) -> TRequest:
    """Validate raw caller input, translating pydantic failures into domain errors."""

    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'request'}: {error['msg']}"
            for error in exc.errors()
        )
        raise ValidationError("Invalid request", details=problems) from exc
