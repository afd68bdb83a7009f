"""
providers/signing.py

Responsibility: Signs outbound vendor API requests. Header-signed schemes are
httpx.Auth implementations so clients just pass `auth=` to httpx; the
AliCloud RPC scheme signs query parameters and is a plain function.
Does NOT: choose endpoints, build request bodies, or interpret responses.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import uuid
from collections.abc import Generator, Mapping
from datetime import datetime, timezone
from urllib.parse import quote, unquote

import httpx


def _sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _hmac_sha256(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


def percent_encode(value: str) -> str:
    """RFC 3986 encoding: everything except unreserved characters."""
    return quote(value, safe="~")


def _canonical_query(url: httpx.URL) -> str:
    pairs = sorted(url.params.multi_items())
    return "&".join(f"{percent_encode(k)}={percent_encode(v)}" for k, v in pairs)


def _canonical_headers(request: httpx.Request, names: list[str]) -> str:
    return "".join(f"{name}:{request.headers.get(name, '').strip()}\n" for name in names)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# AliCloud RPC (signature version 1.0, HMAC-SHA1)
# ---------------------------------------------------------------------------


def aliyun_rpc_signature(params: Mapping[str, str], secret: str, method: str = "GET") -> str:
    """
    Computes the Signature parameter for an AliCloud RPC-style request.

    Args:
        params: Every query parameter except Signature itself.
        secret: The AccessKey secret.
        method: HTTP verb the request is sent with.

    Returns:
        The base64 HMAC-SHA1 signature.
    """
    canonical = "&".join(
        f"{percent_encode(k)}={percent_encode(v)}" for k, v in sorted(params.items())
    )
    string_to_sign = f"{method}&{percent_encode('/')}&{percent_encode(canonical)}"
    digest = hmac.new(f"{secret}&".encode("utf-8"), string_to_sign.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def aliyun_common_params(access_key_id: str) -> dict[str, str]:
    """Per-request common parameters for AliCloud RPC signature 1.0."""
    return {
        "Format": "JSON",
        "AccessKeyId": access_key_id,
        "SignatureMethod": "HMAC-SHA1",
        "SignatureVersion": "1.0",
        "SignatureNonce": uuid.uuid4().hex,
        "Timestamp": _utc_now().strftime("%Y-%m-%dT%H:%M:%SZ"),
    }


# ---------------------------------------------------------------------------
# Tencent Cloud API 3.0 (TC3-HMAC-SHA256)
# ---------------------------------------------------------------------------


class TencentCloudAuth(httpx.Auth):
    """Signs Tencent Cloud API 3.0 requests (used by DNSPod)."""

    requires_request_body = True

    def __init__(self, secret_id: str, secret_key: str, service: str) -> None:
        self._secret_id = secret_id
        self._secret_key = secret_key
        self._service = service

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        now = _utc_now()
        timestamp = str(int(now.timestamp()))
        date = now.strftime("%Y-%m-%d")
        request.headers["X-TC-Timestamp"] = timestamp

        signed = ["content-type", "host"]
        canonical_request = "\n".join(
            [
                request.method,
                "/",
                _canonical_query(request.url),
                _canonical_headers(request, signed),
                ";".join(signed),
                _sha256_hex(request.content),
            ]
        )
        scope = f"{date}/{self._service}/tc3_request"
        string_to_sign = f"TC3-HMAC-SHA256\n{timestamp}\n{scope}\n{_sha256_hex(canonical_request.encode())}"

        key = _hmac_sha256(f"TC3{self._secret_key}".encode("utf-8"), date)
        key = _hmac_sha256(key, self._service)
        key = _hmac_sha256(key, "tc3_request")
        signature = hmac.new(key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

        request.headers["Authorization"] = (
            f"TC3-HMAC-SHA256 Credential={self._secret_id}/{scope}, "
            f"SignedHeaders={';'.join(signed)}, Signature={signature}"
        )
        yield request


# ---------------------------------------------------------------------------
# Huawei Cloud APIG (SDK-HMAC-SHA256)
# ---------------------------------------------------------------------------


class HuaweiCloudAuth(httpx.Auth):
    """Signs Huawei Cloud API Gateway requests with an AK/SK pair."""

    requires_request_body = True

    def __init__(self, access_key: str, secret_key: str) -> None:
        self._access_key = access_key
        self._secret_key = secret_key

    @staticmethod
    def _canonical_uri(path: str) -> str:
        uri = "/".join(percent_encode(segment) for segment in unquote(path).split("/"))
        return uri if uri.endswith("/") else uri + "/"

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["X-Sdk-Date"] = _utc_now().strftime("%Y%m%dT%H%M%SZ")

        signed = sorted(
            name for name in ("content-type", "host", "x-sdk-date") if name in request.headers
        )
        canonical_request = "\n".join(
            [
                request.method,
                self._canonical_uri(request.url.path),
                _canonical_query(request.url),
                _canonical_headers(request, signed),
                ";".join(signed),
                _sha256_hex(request.content),
            ]
        )
        string_to_sign = (
            f"SDK-HMAC-SHA256\n{request.headers['X-Sdk-Date']}\n"
            f"{_sha256_hex(canonical_request.encode())}"
        )
        signature = hmac.new(
            self._secret_key.encode("utf-8"), string_to_sign.encode("utf-8"), hashlib.sha256
        ).hexdigest()

        request.headers["Authorization"] = (
            f"SDK-HMAC-SHA256 Access={self._access_key}, "
            f"SignedHeaders={';'.join(signed)}, Signature={signature}"
        )
        yield request


# ---------------------------------------------------------------------------
# JD Cloud (JDCLOUD2-HMAC-SHA256)
# ---------------------------------------------------------------------------


class JdCloudAuth(httpx.Auth):
    """Signs JD Cloud OpenAPI requests."""

    requires_request_body = True

    def __init__(self, access_key: str, secret_key: str, region: str, service: str) -> None:
        self._access_key = access_key
        self._secret_key = secret_key
        self._region = region
        self._service = service

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        now = _utc_now()
        stamp = now.strftime("%Y%m%dT%H%M%SZ")
        date = now.strftime("%Y%m%d")
        request.headers["x-jdcloud-date"] = stamp
        request.headers["x-jdcloud-nonce"] = str(uuid.uuid4())
        request.headers.setdefault("content-type", "application/json")

        signed = ["content-type", "host", "x-jdcloud-date", "x-jdcloud-nonce"]
        canonical_request = "\n".join(
            [
                request.method,
                request.url.path or "/",
                _canonical_query(request.url),
                _canonical_headers(request, signed),
                ";".join(signed),
                _sha256_hex(request.content),
            ]
        )
        scope = f"{date}/{self._region}/{self._service}/jdcloud2_request"
        string_to_sign = (
            f"JDCLOUD2-HMAC-SHA256\n{stamp}\n{scope}\n{_sha256_hex(canonical_request.encode())}"
        )

        key = _hmac_sha256(f"JDCLOUD2{self._secret_key}".encode("utf-8"), date)
        key = _hmac_sha256(key, self._region)
        key = _hmac_sha256(key, self._service)
        key = _hmac_sha256(key, "jdcloud2_request")
        signature = hmac.new(key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

        request.headers["Authorization"] = (
            f"JDCLOUD2-HMAC-SHA256 Credential={self._access_key}/{scope}, "
            f"SignedHeaders={';'.join(signed)}, Signature={signature}"
        )
        yield request
