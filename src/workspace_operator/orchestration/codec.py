"""Normalization, validation and JSON encoding of workspace requests."""
from __future__ import annotations

import hashlib
import re
from typing import List

import pydantic

from ..errors import RecordDecodeError, ValidationError
from .models import WorkspaceRequest, WorkspaceRequestSpec

DEFAULT_NAMESPACE_SUFFIX = "-workspace"
MAX_DNS_LABEL_LENGTH = 63
DNS_LABEL_PATTERN = r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$"

_DNS_LABEL_RE = re.compile(DNS_LABEL_PATTERN)
_INVALID_LABEL_CHARS = re.compile(r"[^a-z0-9-]+")


# ----------------------------------------------------------------------
# Naming
# ----------------------------------------------------------------------
def _sanitize(value: str) -> str:
    return _INVALID_LABEL_CHARS.sub("-", value.strip().lower()).strip("-")


def _digest(value: str, length: int = 8) -> str:
    return hashlib.sha1(value.encode("utf-8")).hexdigest()[:length]


def dns_label(value: str) -> str:
    """Coerce ``value`` into a valid DNS-1123 label.

    Over-long values are truncated and suffixed with a digest of the full
    value, so distinct inputs keep distinct labels.
    """

    label = _sanitize(value)
    if len(label) > MAX_DNS_LABEL_LENGTH:
        suffix = _digest(value)
        label = label[: MAX_DNS_LABEL_LENGTH - len(suffix) - 1].rstrip("-") + "-" + suffix
    return label


def namespace_name(user_name: str, suffix: str = DEFAULT_NAMESPACE_SUFFIX) -> str:
    """Namespace owned by ``user_name``; the same input always yields the same name.

    A user name that is already a lower-case label is used as is. Any other
    name gets a digest of the original appended, so ``bob.smith`` and
    ``bob-smith`` never share a namespace.
    """

    value = user_name.strip()
    label = _sanitize(value)
    if label != value:
        label = f"{label}-{_digest(value)}" if label else _digest(value)
    return f"{label}{suffix}"


def binding_name(request_name: str, role: str) -> str:
    return dns_label(f"{role}-{request_name}")


def instance_name(request_name: str, external_name: str) -> str:
    """Instance name unique to one request and one exact catalog external name."""

    return dns_label(f"{external_name}-{_digest(request_name + '/' + external_name)}")


def is_dns_label(value: str) -> bool:
    return len(value) <= MAX_DNS_LABEL_LENGTH and bool(_DNS_LABEL_RE.match(value))


# ----------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------
def required_services(spec: WorkspaceRequestSpec) -> List[str]:
    """Trimmed, de-duplicated service names in first-seen order."""

    seen: List[str] = []
    for raw in spec.required_services:
        name = raw.strip()
        if name and name not in seen:
            seen.append(name)
    return seen


def normalize_spec(
    spec: WorkspaceRequestSpec, namespace_suffix: str = DEFAULT_NAMESPACE_SUFFIX
) -> WorkspaceRequestSpec:
    """Validate ``spec`` and return its normalized form.

    Raises ``ValidationError`` listing every problem found.
    """

    problems = []
    user_name = spec.user_name.strip()
    if not user_name:
        problems.append("userName must not be empty")
    else:
        derived = namespace_name(user_name, namespace_suffix)
        if not is_dns_label(derived):
            problems.append(f"userName {user_name!r} does not yield a valid namespace name ({derived!r})")
    if any(not raw.strip() for raw in spec.required_services):
        problems.append("requiredServices must not contain blank names")
    if problems:
        raise ValidationError(problems)
    return WorkspaceRequestSpec(user_name=user_name, required_services=required_services(spec))


# ----------------------------------------------------------------------
# Encoding
# ----------------------------------------------------------------------
def encode_record(request: WorkspaceRequest) -> str:
    return request.model_dump_json(by_alias=True)


def decode_record(raw: str) -> WorkspaceRequest:
    try:
        return WorkspaceRequest.model_validate_json(raw)
    except pydantic.ValidationError as exc:
        raise RecordDecodeError(f"invalid workspace request payload: {exc}") from exc


def record_to_dict(request: WorkspaceRequest) -> dict:
    return request.model_dump(by_alias=True, mode="json")


__all__ = [
    "DEFAULT_NAMESPACE_SUFFIX",
    "DNS_LABEL_PATTERN",
    "dns_label",
    "namespace_name",
    "binding_name",
    "instance_name",
    "is_dns_label",
    "required_services",
    "normalize_spec",
    "encode_record",
    "decode_record",
    "record_to_dict",
]
