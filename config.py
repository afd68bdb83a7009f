"""
config.py

Responsibility: Loads the YAML or JSON configuration file, validates it, and
resolves every DDNS entry into an immutable RecordSpec.
Does NOT: build detectors or handlers, schedule jobs, or touch the network.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml
from apscheduler.triggers.cron import CronTrigger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from exceptions import ConfigLoadError
from models import (
    APEX_MARKER,
    AliCloudProvider,
    CloudflareProvider,
    DetectionConfig,
    DnsPodProvider,
    GssTsigCredentials,
    HuaweiCloudProvider,
    InterfaceDetection,
    JdCloudProvider,
    LocalAddressPolicy,
    NetworkStack,
    ProviderConfig,
    RecordSpec,
    Rfc2136Provider,
    ThirdPartyDetection,
    TsigKey,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/etc/ddns-keeper/config.yaml"

_DOMAIN_RE = re.compile(r"^([a-zA-Z0-9-]+\.)+[a-zA-Z]{2,}$")
_SUBDOMAIN_RE = re.compile(r"^[a-zA-Z0-9_*-]+(\.[a-zA-Z0-9_-]+)*$")

# ${VAR} or ${VAR:-default}
_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")


class _Schema(BaseModel):
    """Base for file schema models: camelCase keys, unknown keys ignored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Detection schema
# ---------------------------------------------------------------------------


class InterfaceSchema(_Schema):
    name: str = Field(min_length=1)


class ApiSchema(_Schema):
    url: str = Field(min_length=1)
    json_path: Optional[str] = None
    params: dict[str, str] = Field(default_factory=dict)
    custom_headers: dict[str, str] = Field(default_factory=dict)
    username: Optional[str] = None
    password: Optional[str] = None


class DetectionSchema(_Schema):
    name: str = Field(min_length=1)
    local_address_policy: LocalAddressPolicy = LocalAddressPolicy.IGNORE
    interface: Optional[InterfaceSchema] = None
    api: Optional[ApiSchema] = None

    @model_validator(mode="after")
    def _exactly_one_method(self) -> DetectionSchema:
        methods = [m for m in (self.interface, self.api) if m is not None]
        if not methods:
            raise ValueError("must specify a detection method (interface or api)")
        if len(methods) > 1:
            raise ValueError("only one detection method can be used per detection entry")
        return self

    def to_model(self) -> DetectionConfig:
        if self.interface is not None:
            return InterfaceDetection(
                interface_name=self.interface.name,
                local_address_policy=self.local_address_policy,
            )
        api = self.api
        return ThirdPartyDetection(
            url=api.url,
            json_path=api.json_path or None,
            params=dict(api.params),
            headers=dict(api.custom_headers),
            username=api.username,
            password=api.password,
            local_address_policy=self.local_address_policy,
        )


# ---------------------------------------------------------------------------
# Provider schema
# ---------------------------------------------------------------------------


class CloudflareSchema(_Schema):
    api_token: Optional[str] = None
    global_api_key: Optional[str] = None
    email: Optional[str] = None

    @model_validator(mode="after")
    def _credentials(self) -> CloudflareSchema:
        if not self.api_token and not (self.global_api_key and self.email):
            raise ValueError("cloudflare needs apiToken, or globalApiKey together with email")
        return self


class AliCloudSchema(_Schema):
    access_key_id: str = Field(min_length=1)
    access_key_secret: str = Field(min_length=1)
    region_id: str = ""
    line: Optional[str] = None


class DnsPodSchema(_Schema):
    secret_id: str = Field(min_length=1)
    secret_key: str = Field(min_length=1)
    region: str = ""
    line_id: Optional[str] = None


class HuaweiSchema(_Schema):
    access_key: str = Field(min_length=1)
    secret_access_key: str = Field(min_length=1)
    region: str = Field(min_length=1)


class JdSchema(_Schema):
    access_key: str = Field(min_length=1)
    secret_key: str = Field(min_length=1)
    region_id: str = "cn-north-1"
    view_id: int = -1


class TsigSchema(_Schema):
    key_name: str = Field(min_length=1)
    key: str = Field(min_length=1)
    algorithm: str = "hmac-sha256"


class GssTsigSchema(_Schema):
    domain: str = Field(min_length=1)
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class Rfc2136Schema(_Schema):
    address: str = Field(min_length=1)
    port: int = Field(default=53, ge=1, le=65535)
    use_tcp: bool = Field(default=False, alias="useTCP")
    tsig: Optional[TsigSchema] = None
    gss_tsig: Optional[GssTsigSchema] = None

    @model_validator(mode="after")
    def _one_signing_method(self) -> Rfc2136Schema:
        if self.tsig is not None and self.gss_tsig is not None:
            raise ValueError("rfc2136 accepts at most one of tsig and gssTsig")
        return self


class ProviderSchema(_Schema):
    name: str = Field(min_length=1)
    cloudflare: Optional[CloudflareSchema] = None
    alicloud: Optional[AliCloudSchema] = None
    dnspod: Optional[DnsPodSchema] = None
    huawei: Optional[HuaweiSchema] = None
    jd: Optional[JdSchema] = None
    rfc2136: Optional[Rfc2136Schema] = None

    @model_validator(mode="after")
    def _exactly_one_provider(self) -> ProviderSchema:
        count = sum(
            p is not None
            for p in (self.cloudflare, self.alicloud, self.dnspod, self.huawei, self.jd, self.rfc2136)
        )
        if count == 0:
            raise ValueError("no provider specified")
        if count > 1:
            raise ValueError("only 1 provider can be used within 1 provider entry")
        return self

    def to_model(self) -> ProviderConfig:
        if self.cloudflare is not None:
            cf = self.cloudflare
            return CloudflareProvider(
                api_token=cf.api_token, global_api_key=cf.global_api_key, email=cf.email
            )
        if self.alicloud is not None:
            ali = self.alicloud
            return AliCloudProvider(
                access_key_id=ali.access_key_id,
                access_key_secret=ali.access_key_secret,
                region_id=ali.region_id,
                line=ali.line or "default",
            )
        if self.dnspod is not None:
            pod = self.dnspod
            return DnsPodProvider(
                secret_id=pod.secret_id,
                secret_key=pod.secret_key,
                region=pod.region,
                line_id=pod.line_id or "0",
            )
        if self.huawei is not None:
            hw = self.huawei
            return HuaweiCloudProvider(
                access_key=hw.access_key, secret_access_key=hw.secret_access_key, region=hw.region
            )
        if self.jd is not None:
            jd = self.jd
            return JdCloudProvider(
                access_key=jd.access_key,
                secret_key=jd.secret_key,
                region_id=jd.region_id,
                view_id=jd.view_id,
            )
        rfc = self.rfc2136
        tsig = None
        if rfc.tsig is not None:
            tsig = TsigKey(key_name=rfc.tsig.key_name, secret=rfc.tsig.key, algorithm=rfc.tsig.algorithm)
        gss = None
        if rfc.gss_tsig is not None:
            gss = GssTsigCredentials(
                domain=rfc.gss_tsig.domain,
                username=rfc.gss_tsig.username,
                password=rfc.gss_tsig.password,
            )
        return Rfc2136Provider(
            address=rfc.address, port=rfc.port, use_tcp=rfc.use_tcp, tsig=tsig, gss_tsig=gss
        )


# ---------------------------------------------------------------------------
# DDNS schema
# ---------------------------------------------------------------------------


class DdnsSchema(_Schema):
    name: str = Field(min_length=1)
    domain: str
    subdomain: str
    stack: NetworkStack
    cron: str = Field(min_length=1)
    provider_ref: str = Field(min_length=1)
    detection_ref: str = Field(min_length=1)

    @field_validator("domain")
    @classmethod
    def _valid_domain(cls, value: str) -> str:
        value = value.strip().rstrip(".")
        if not _DOMAIN_RE.match(value):
            raise ValueError(f"{value} is not a valid domain")
        return value.lower()

    @field_validator("subdomain")
    @classmethod
    def _valid_subdomain(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError('subdomain cannot be empty, use "@" for the zone apex')
        if value != APEX_MARKER and not _SUBDOMAIN_RE.match(value):
            raise ValueError(f"{value} is not a valid subdomain")
        return value

    @field_validator("cron")
    @classmethod
    def _valid_cron(cls, value: str) -> str:
        try:
            CronTrigger.from_crontab(value)
        except ValueError as exc:
            raise ValueError(f"invalid cron expression {value!r}: {exc}") from exc
        return value


class ConfigSchema(_Schema):
    ddns: list[DdnsSchema] = Field(min_length=1)
    detection: list[DetectionSchema] = Field(min_length=1)
    provider: list[ProviderSchema] = Field(min_length=1)

    @model_validator(mode="after")
    def _unique_names_and_refs(self) -> ConfigSchema:
        for section in ("ddns", "detection", "provider"):
            seen: set[str] = set()
            for entry in getattr(self, section):
                if entry.name in seen:
                    raise ValueError(f"{section} spec {entry.name} already exists")
                seen.add(entry.name)

        detections = {d.name for d in self.detection}
        providers = {p.name for p in self.provider}
        for entry in self.ddns:
            if entry.detection_ref not in detections:
                raise ValueError(
                    f"ddns spec {entry.name} referenced unknown detection spec {entry.detection_ref}"
                )
            if entry.provider_ref not in providers:
                raise ValueError(
                    f"ddns spec {entry.name} referenced unknown provider spec {entry.provider_ref}"
                )
        return self

    def to_record_specs(self) -> list[RecordSpec]:
        detections = {d.name: d.to_model() for d in self.detection}
        providers = {p.name: p.to_model() for p in self.provider}
        return [
            RecordSpec(
                name=entry.name,
                domain=entry.domain,
                subdomain=entry.subdomain,
                stack=entry.stack,
                cron=entry.cron,
                provider=providers[entry.provider_ref],
                detection=detections[entry.detection_ref],
            )
            for entry in self.ddns
        ]


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _substitute_env_vars(content: str) -> str:
    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if ":-" in name:
            name, default = name.split(":-", 1)
            return os.environ.get(name, default)
        return os.environ.get(name, "")

    return _ENV_VAR_RE.sub(replace, content)


def parse_config(content: str, file_type: str) -> list[RecordSpec]:
    """
    Parses and validates configuration text.

    Args:
        content: Raw file content; ${VAR} references are substituted first.
        file_type: "yaml", "yml" or "json".

    Returns:
        One RecordSpec per DDNS entry, in file order.

    Raises:
        ConfigLoadError: On syntax errors or any validation failure.
    """
    content = _substitute_env_vars(content)
    try:
        if file_type in ("yaml", "yml"):
            data: Any = yaml.safe_load(content)
        elif file_type == "json":
            data = json.loads(content)
        else:
            raise ConfigLoadError(f"unknown config file type: {file_type!r}")
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigLoadError(f"cannot parse configuration: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigLoadError("configuration must be a mapping with ddns, detection and provider lists")

    try:
        schema = ConfigSchema.model_validate(data)
    except ValidationError as exc:
        raise ConfigLoadError(f"invalid configuration: {exc}") from exc

    return schema.to_record_specs()


def load_config(path: str | Path) -> list[RecordSpec]:
    """
    Reads, validates and resolves the configuration file at `path`.

    The format is chosen by file extension (.yaml, .yml or .json).

    Args:
        path: Location of the configuration file.

    Returns:
        One RecordSpec per DDNS entry, in file order.

    Raises:
        ConfigLoadError: If the file is missing, unreadable or invalid.
    """
    path = Path(path)
    if path.is_dir():
        raise ConfigLoadError(f"config path {path} points to a directory")

    file_type = path.suffix.lstrip(".").lower()
    if not file_type:
        raise ConfigLoadError(f"config path {path} points to an unknown file type")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"cannot read config file {path}: {exc}") from exc

    specs = parse_config(content, file_type)
    logger.info("Loaded %d DDNS record(s) from %s.", len(specs), path)
    return specs
