"""Canonical event hashing and hash-chain validation.

Every asset owns an independent chain. An event's digest is the SHA-256 of a
canonical JSON record holding the event's content and the digest of the
event before it (or ``GENESIS`` for the first event):

    hash = SHA256(canonical_json({
        "assetId", "type", "data", "photoUrls", "createdBy", "createdAt", "prevHash"
    }))

Canonical JSON sorts keys at every level, uses no insignificant whitespace and
prints numbers in ECMAScript form (``1.0`` is ``1``), so the digest does not
depend on dict insertion order or on how a client spelled a number.
Timestamps are rendered as UTC ISO-8601 with millisecond precision
(``...T10:00:00.000Z``).

Everything in this module is pure: no I/O, no clock reads except in
``mint_event`` when the caller does not fix ``created_at``.
"""

import hashlib
import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from servicevault_api.ledger.errors import CanonicalizationError

GENESIS = "GENESIS"

# Known lifecycle types. The chain itself treats ``type`` as an opaque string.
EVENT_TYPES = (
    "INSTALL",
    "SERVICE",
    "REPAIR",
    "INSPECTION",
    "WARRANTY",
    "RECALL",
    "NOTE",
    "TRANSFER",
)

LINKAGE = "linkage"
CONTENT = "content"


# Exported events may use the camelCase names of the hashed record.
_CAMEL_ALIASES = {
    "asset_id": "assetId",
    "photo_urls": "photoUrls",
    "created_by": "createdBy",
    "created_at": "createdAt",
    "prev_hash": "prevHash",
}


def _field(event: Any, name: str, default: Any = None) -> Any:
    """Read a field from a mapping or an ORM-style object.

    Mappings may spell a field in snake_case or camelCase.
    """
    if isinstance(event, Mapping):
        if name in event:
            return event[name]
        return event.get(_CAMEL_ALIASES.get(name, name), default)
    return getattr(event, name, default)


def to_utc(value: Any) -> datetime:
    """Normalize a datetime or ISO-8601 string to an aware UTC datetime.

    Naive datetimes are taken to already be in UTC.
    """
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError as e:
            raise CanonicalizationError(f"could not parse createdAt timestamp {value!r}") from e
    if not isinstance(value, datetime):
        raise CanonicalizationError(
            f"createdAt must be a datetime or ISO-8601 string, got {type(value).__name__}"
        )
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def truncate_to_millis(value: Any) -> datetime:
    """Drop sub-millisecond precision so stored and hashed times agree."""
    dt = to_utc(value)
    return dt.replace(microsecond=(dt.microsecond // 1000) * 1000)


def format_timestamp(value: Any) -> str:
    """Render a timestamp the way it is hashed: ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    dt = to_utc(value)
    return dt.strftime("%Y-%m-%dT%H:%M:%S") + f".{dt.microsecond // 1000:03d}Z"


def _format_number(value: float) -> str:
    """Render a float the way ECMAScript ``Number.prototype.toString`` does.

    Integral values below 1e21 print without a fraction, so ``1.0`` and ``1``
    serialize identically. Other values keep the shortest round-trip digits
    from ``repr`` and only switch to exponent form outside ``[1e-6, 1e21)``.
    """
    if not math.isfinite(value):
        raise CanonicalizationError(f"could not canonicalize event data: {value!r} is not a finite number")
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))

    sign = "-" if value < 0 else ""
    mantissa, _, exponent = repr(abs(value)).partition("e")
    whole, _, fraction = mantissa.partition(".")
    digits = whole + fraction
    point = len(whole) + int(exponent or 0)
    stripped = digits.lstrip("0")
    point -= len(digits) - len(stripped)
    digits = stripped.rstrip("0")

    if len(digits) <= point <= 21:
        return sign + digits + "0" * (point - len(digits))
    if 0 < point <= 21:
        return sign + digits[:point] + "." + digits[point:]
    if -6 < point <= 0:
        return sign + "0." + "0" * -point + digits
    power = point - 1
    rendered = digits if len(digits) == 1 else digits[0] + "." + digits[1:]
    return f"{sign}{rendered}e{'+' if power >= 0 else '-'}{abs(power)}"


def _utf16_order(key: str) -> bytes:
    return key.encode("utf-16-be", "surrogatepass")


def _write_canonical(value: Any) -> str:
    if value is None:
        return "null"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, int):
        return str(int(value))
    if isinstance(value, float):
        return _format_number(value)
    if isinstance(value, Mapping):
        for key in value:
            if not isinstance(key, str):
                raise CanonicalizationError(
                    f"could not canonicalize event data: object keys must be strings, got {type(key).__name__}"
                )
        members = [
            json.dumps(key, ensure_ascii=False) + ":" + _write_canonical(value[key])
            for key in sorted(value, key=_utf16_order)
        ]
        return "{" + ",".join(members) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_write_canonical(item) for item in value) + "]"
    raise CanonicalizationError(
        f"could not canonicalize event data: {type(value).__name__} is not JSON serializable"
    )


def canonical_json(value: Any) -> str:
    """Serialize a JSON-compatible value deterministically.

    Follows RFC 8785: members sorted by UTF-16 code units at every level, no
    insignificant whitespace, non-ASCII text left unescaped and numbers in
    ECMAScript form.
    """
    try:
        return _write_canonical(value)
    except RecursionError as e:
        raise CanonicalizationError("could not canonicalize event data: nesting too deep") from e


def canonical_bytes(value: Any) -> bytes:
    """UTF-8 encode the canonical form; lone surrogates cannot be hashed."""
    serialized = canonical_json(value)
    try:
        return serialized.encode("utf-8")
    except UnicodeEncodeError as e:
        raise CanonicalizationError(f"could not canonicalize event data: {e.reason} in text") from e


def canonical_event(prev_hash: Optional[str], event: Any) -> dict[str, Any]:
    """Build the hashable record for an event.

    ``photo_urls`` missing and ``[]`` produce the same record, as do a
    missing ``created_by`` and ``None``.
    """
    asset_id = _field(event, "asset_id")
    event_type = _field(event, "type")
    if asset_id is None:
        raise CanonicalizationError("could not canonicalize event data: asset_id is required")
    if not isinstance(event_type, str) or not event_type:
        raise CanonicalizationError("could not canonicalize event data: type must be a non-empty string")

    photo_urls = _field(event, "photo_urls")
    if isinstance(photo_urls, (str, bytes)):
        raise CanonicalizationError("could not canonicalize event data: photo_urls must be a list")

    created_at = _field(event, "created_at")
    if created_at is None:
        raise CanonicalizationError("could not canonicalize event data: created_at is required")

    return {
        "assetId": str(asset_id),
        "type": event_type,
        "data": _field(event, "data"),
        "photoUrls": list(photo_urls or []),
        "createdBy": _field(event, "created_by"),
        "createdAt": format_timestamp(created_at),
        "prevHash": prev_hash or GENESIS,
    }


def compute_event_hash(prev_hash: Optional[str], event: Any) -> str:
    """Compute the lowercase hex SHA-256 digest of an event's chain position."""
    serialized = canonical_bytes(canonical_event(prev_hash, event))
    return hashlib.sha256(serialized).hexdigest()


def mint_event(
    prev_hash: Optional[str],
    asset_id: str,
    event_type: str,
    data: Optional[dict] = None,
    photo_urls: Optional[list[str]] = None,
    created_by: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> dict[str, Any]:
    """Create a new event record linked to ``prev_hash``.

    ``created_at`` is fixed (and truncated to milliseconds) before hashing;
    the returned record must be persisted exactly as returned.
    """
    if created_at is None:
        created_at = datetime.now(timezone.utc)

    record: dict[str, Any] = {
        "asset_id": str(asset_id),
        "type": event_type,
        "data": data,
        "photo_urls": list(photo_urls or []),
        "created_by": created_by,
        "created_at": truncate_to_millis(created_at),
        "prev_hash": prev_hash,
    }
    record["hash"] = compute_event_hash(prev_hash, record)
    return record


def _show(value: Optional[str]) -> str:
    return "null" if value is None else str(value)


@dataclass(frozen=True)
class ChainIssue:
    """A single broken link found while validating a chain."""

    index: int
    kind: str  # linkage, content
    expected: Optional[str]
    actual: Optional[str]
    detail: Optional[str] = None

    def __str__(self) -> str:
        if self.kind == LINKAGE:
            return (
                f"Event {self.index}: Invalid prevHash. "
                f"Expected: {_show(self.expected)}, Got: {_show(self.actual)}"
            )
        if self.detail:
            return (
                f"Event {self.index}: Hash mismatch. "
                f"Could not recompute digest ({self.detail}), Got: {_show(self.actual)}"
            )
        return (
            f"Event {self.index}: Hash mismatch. "
            f"Expected: {_show(self.expected)}, Got: {_show(self.actual)}"
        )


@dataclass
class ChainValidation:
    """Outcome of validating one asset chain."""

    event_count: int
    issues: list[ChainIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    @property
    def errors(self) -> list[str]:
        return [str(issue) for issue in self.issues]

    @property
    def first_broken_index(self) -> Optional[int]:
        if not self.issues:
            return None
        return min(issue.index for issue in self.issues)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_count": self.event_count,
            "is_valid": self.is_valid,
            "errors": self.errors,
            "first_broken_index": self.first_broken_index,
        }


def validate_hash_chain(events: Iterable[Any]) -> ChainValidation:
    """Recompute an asset chain and report every broken link.

    ``events`` must be one asset's events in creation order; they are not
    re-sorted. Each event is checked for linkage (its ``prev_hash`` equals the
    previous event's stored ``hash``, or is null for the first event) and for
    content integrity (its stored ``hash`` equals the digest recomputed from
    its own fields and stored ``prev_hash``). Checking continues past
    failures so cascading and independent breaks are all reported.
    """
    events = list(events)
    issues: list[ChainIssue] = []

    for index, event in enumerate(events):
        stored_prev = _field(event, "prev_hash")
        expected_prev = None if index == 0 else _field(events[index - 1], "hash")
        if stored_prev != expected_prev:
            issues.append(ChainIssue(index, LINKAGE, expected_prev, stored_prev))

        stored_hash = _field(event, "hash")
        try:
            expected_hash = compute_event_hash(stored_prev, event)
        except CanonicalizationError as e:
            issues.append(ChainIssue(index, CONTENT, None, stored_hash, detail=str(e)))
            continue

        if stored_hash != expected_hash:
            issues.append(ChainIssue(index, CONTENT, expected_hash, stored_hash))

    return ChainValidation(event_count=len(events), issues=issues)


__all__ = [
    "GENESIS",
    "EVENT_TYPES",
    "ChainIssue",
    "ChainValidation",
    "canonical_bytes",
    "canonical_event",
    "canonical_json",
    "compute_event_hash",
    "format_timestamp",
    "mint_event",
    "to_utc",
    "truncate_to_millis",
    "validate_hash_chain",
]
