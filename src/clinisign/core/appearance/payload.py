"""Stamp descriptor and text formatting for signature appearances.

Everything the stamp shows (QR payload and text lines) is derived here
from a :class:`StampDescriptor`.  The functions are pure, so the stamp
drawn into the placeholder and any later redraw agree byte for byte.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone

__all__ = [
    "DEFAULT_STYLE",
    "StampDescriptor",
    "StampStyle",
    "build_qr_payload",
    "build_text_lines",
    "clean_registry_id",
    "format_stamp_timestamp",
    "strip_title",
]

RGB = tuple[float, float, float]

_TITLE_PATTERN = re.compile(r"^(Dr\(a\)\.\s*|Dra\.\s*|Dr\.\s*|Dr\s+)", re.IGNORECASE)
_REGISTRY_PATTERN = re.compile(r"^CRM\s*-?\s*", re.IGNORECASE)


@dataclass(frozen=True)
class StampDescriptor:
    """Who signed, and when -- the content of the visual stamp.

    Attributes:
        name: Signer display name.
        registry_id: Professional registry identifier (e.g. CRM number).
        role: Role or specialty shown next to the registry id.
        contact: Contact string (usually e-mail).
        location: Signing location (signature dictionary only).
        reason: Signing reason (signature dictionary only).
        signing_time: Nominal time before signing, actual time after.
    """

    name: str = ""
    registry_id: str = ""
    role: str = ""
    contact: str = ""
    location: str = ""
    reason: str = ""
    signing_time: datetime | None = None


@dataclass(frozen=True)
class StampStyle:
    """Fixed texts and colours of the stamp."""

    title: str = "ASSINADO DIGITALMENTE"
    trust_mark: str = "ICP-Brasil"
    disclaimer: str = "Validade juridica nos termos da MP 2.200-2/2001 e Lei 14.063/2020."
    qr_heading: str = "Assinado Digitalmente"
    name_label: str = "Medico"
    registry_label: str = "CRM"
    contact_label: str = "Email"
    time_label: str = "Data"
    name_prefix: str = "Dr(a). "
    display_offset: timezone | None = None
    navy: RGB = (0.07, 0.19, 0.46)
    blue: RGB = (0.20, 0.45, 0.78)
    background: RGB = (0.95, 0.97, 1.00)
    dark_text: RGB = (0.10, 0.10, 0.12)
    gray_text: RGB = (0.40, 0.42, 0.46)
    white: RGB = (1.0, 1.0, 1.0)
    gold: RGB = (0.98, 0.82, 0.22)
    qr_dark: RGB = (0x11 / 255, 0x22 / 255, 0x77 / 255)
    qr_light: RGB = (0xF2 / 255, 0xF5 / 255, 0xFF / 255)


DEFAULT_STYLE = StampStyle()


def strip_title(name: str) -> str:
    """Remove a leading medical title (Dr., Dra., Dr(a).) from a name."""
    return _TITLE_PATTERN.sub("", name).strip() or name


def clean_registry_id(registry_id: str) -> str:
    """Remove a duplicated ``CRM-`` prefix from a registry identifier."""
    return _REGISTRY_PATTERN.sub("", registry_id).strip() or registry_id


def format_stamp_timestamp(dt: datetime | None, display_offset: timezone | None = None) -> str:
    """Format a signing time as ``dd/mm/yyyy HH:MM``.

    Naive datetimes are taken as UTC.  When ``display_offset`` is given
    the time is converted to it first; otherwise the datetime's own
    offset is used.  Returns "" for None.
    """
    if dt is None:
        return ""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    if display_offset is not None:
        dt = dt.astimezone(display_offset)
    return f"{dt.day:02d}/{dt.month:02d}/{dt.year:04d} {dt.hour:02d}:{dt.minute:02d}"


def build_qr_payload(descriptor: StampDescriptor, style: StampStyle = DEFAULT_STYLE) -> str:
    """Build the newline-joined ``key: value`` text encoded in the QR code.

    Empty values are omitted.  The payload depends only on its inputs.
    """
    timestamp = format_stamp_timestamp(descriptor.signing_time, style.display_offset)
    lines = [
        style.qr_heading,
        descriptor.name and f"{style.name_label}: {descriptor.name}",
        descriptor.registry_id and f"{style.registry_label}: {descriptor.registry_id}",
        descriptor.contact and f"{style.contact_label}: {descriptor.contact}",
        timestamp and f"{style.time_label}: {timestamp}",
    ]
    return "\n".join(line for line in lines if line)


def build_text_lines(descriptor: StampDescriptor, style: StampStyle = DEFAULT_STYLE) -> list[str]:
    """Build the (up to four) text lines shown next to the QR code.

    Order: name, registry + role, contact, timestamp.  Empty parts are
    skipped; the name line, when present, is rendered bold by the layout.
    """
    lines: list[str] = []
    if descriptor.name:
        lines.append(f"{style.name_prefix}{strip_title(descriptor.name)}")

    registry_parts = [
        descriptor.registry_id
        and f"{style.registry_label} {clean_registry_id(descriptor.registry_id)}",
        descriptor.role,
    ]
    registry_line = "  |  ".join(part for part in registry_parts if part)
    if registry_line:
        lines.append(registry_line)

    if descriptor.contact:
        lines.append(descriptor.contact)

    timestamp = format_stamp_timestamp(descriptor.signing_time, style.display_offset)
    if timestamp:
        lines.append(timestamp)
    return lines
