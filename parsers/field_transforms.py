"""
Field transforms and the column mapping engine shared by every source.

Transforms are plain functions registered under a name, so a
ColumnMapping can reference one by string and stay JSON-serializable.
A transform may raise; apply_column_mappings turns that into a note
and omits the field.
"""

import math
import random
import re
import string
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import structlog

from exceptions import FieldTransformError
from models.import_mapping import ColumnMapping, TargetBucket, TransformationResult
from utils.date_utils import parse_timestamp, format_iso
from utils.location_matcher import city_for_abbreviation

logger = structlog.get_logger(__name__)


FieldTransform = Callable[[str], Any]

FIELD_TRANSFORMS: dict[str, FieldTransform] = {}


def field_transform(name: str) -> Callable[[FieldTransform], FieldTransform]:
    """Register a transform under `name`."""
    def decorator(func: FieldTransform) -> FieldTransform:
        FIELD_TRANSFORMS[name] = func
        return func
    return decorator


def get_transform(name: str) -> FieldTransform:
    try:
        return FIELD_TRANSFORMS[name]
    except KeyError:
        raise KeyError(f"Unknown field transform: {name}") from None


# ===================
# CONSTANTS
# ===================

NINJA_ROLE_TO_ASSET_TYPE: dict[str, str] = {
    "WINDOWS_DESKTOP": "DESKTOP",
    "WINDOWS_LAPTOP": "LAPTOP",
    "WINDOWS WORKSTATION": "LAPTOP",  # NinjaOne's label for Windows laptops
    "MAC_DESKTOP": "DESKTOP",
    "MAC_LAPTOP": "LAPTOP",
    "LINUX_DESKTOP": "DESKTOP",
    "LINUX_LAPTOP": "LAPTOP",
    "WINDOWS_SERVER": "SERVER",
    "LINUX_SERVER": "SERVER",
    "HYPER-V_SERVER": "SERVER",
    "VMWARE_SERVER": "SERVER",
    "SERVER": "SERVER",
    "TABLET": "TABLET",
    "MOBILE": "OTHER",
    "NETWORK_DEVICE": "OTHER",
    "PRINTER": "OTHER",
}

# (threshold GiB, label): first rung whose threshold the value exceeds
MEMORY_LADDER: list[tuple[float, str]] = [
    (120, "128 GB"),
    (90, "96 GB"),
    (60, "64 GB"),
    (30, "32 GB"),
    (14, "16 GB"),
    (6, "8 GB"),
    (2, "4 GB"),
]

STORAGE_LADDER: list[tuple[float, str]] = [
    (1800, "2 TB"),
    (900, "1 TB"),
    (450, "512 GB"),
    (230, "256 GB"),
    (110, "128 GB"),
    (55, "64 GB"),
    (28, "32 GB"),
    (14, "16 GB"),
    (6, "8 GB"),
]

SERVER_STORAGE_LADDER: list[tuple[float, str]] = [
    (3800, "4 TB"),
    (1800, "2 TB"),
    (900, "1 TB"),
    (450, "512 GB"),
    (230, "256 GB"),
    (110, "128 GB"),
    (50, "64 GB"),
]

VIRTUAL_MODEL_MARKERS = ("virtual", "vmware", "kvm", "qemu", "hvm domu", "hyper-v", "xen")

_VOLUME_PATTERN = re.compile(r'Type: "(.*?)"(?:[^\(]*)\((\d+\.?\d*)\s*GiB\)')
_STORAGE_TOKEN = re.compile(r"(\d+)(GB|TB)")
_NON_DIGITS = re.compile(r"[^\d]+")


# ===================
# NUMERIC HELPERS
# ===================

def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def snap_to_ladder(value: float, ladder: list[tuple[float, str]]) -> str:
    """
    Round down to the largest rung strictly below the value.

    Below the smallest rung the rounded raw value is used, so 1.0 stays
    "1 GB" rather than jumping to a rung.
    """
    for threshold, label in ladder:
        if value > threshold:
            return label
    return f"{_round_half_up(value)} GB"


def _title_word(word: str) -> str:
    return word[:1] + word[1:].lower()


def _title_words(text: str) -> str:
    return " ".join(_title_word(w) for w in text.split(" ") if w)


# ===================
# GENERIC TRANSFORMS
# ===================

@field_transform("strip")
def strip_value(value: str) -> Optional[str]:
    cleaned = (value or "").strip()
    return cleaned or None


@field_transform("to_iso")
def to_iso(value: str) -> Optional[str]:
    """ISO 8601 UTC string from any supported date cell, or None."""
    return format_iso(parse_timestamp(value))


@field_transform("simplify_ram")
def simplify_ram(value: str) -> Optional[str]:
    """
    Memory size class from a raw GiB reading.

    16.0 -> "16 GB", 17.5 -> "16 GB", 1.0 -> "1 GB".
    """
    if value is None or str(value).strip() == "":
        return None
    try:
        gib = float(str(value).strip())
    except ValueError:
        return None
    if math.isnan(gib):
        return None
    return snap_to_ladder(gib, MEMORY_LADDER)


def round_to_storage_size(gib: float) -> str:
    return snap_to_ladder(gib, STORAGE_LADDER)


def round_to_server_storage_size(gib: float) -> str:
    return snap_to_ladder(gib, SERVER_STORAGE_LADDER)


def sum_local_volumes(value: str) -> float:
    """Total GiB across volumes in a NinjaOne Volumes cell, removable disks excluded."""
    total = 0.0
    for volume_type, capacity in _VOLUME_PATTERN.findall(value or ""):
        if volume_type.lower() != "removable disk":
            total += float(capacity)
    return total


@field_transform("aggregate_volumes")
def aggregate_volumes(value: str) -> Optional[str]:
    total = sum_local_volumes(value)
    return round_to_storage_size(total) if total > 0 else None


@field_transform("aggregate_server_volumes")
def aggregate_server_volumes(value: str) -> Optional[str]:
    total = sum_local_volumes(value)
    return round_to_server_storage_size(total) if total > 0 else None


@field_transform("digits_only")
def clean_phone_number(value: str) -> Optional[str]:
    if not value:
        return None
    return _NON_DIGITS.sub("", value) or None


@field_transform("asset_tag")
def normalize_asset_tag(value: str) -> Optional[str]:
    """Numeric tags get the BGC prefix and six-digit padding."""
    trimmed = (value or "").strip()
    if not trimmed:
        return None
    if trimmed.isdigit():
        return f"BGC{trimmed.zfill(6)}"
    return trimmed.upper()


@field_transform("ninja_role")
def map_ninja_role(value: str) -> str:
    return NINJA_ROLE_TO_ASSET_TYPE.get((value or "").strip().upper(), "OTHER")


@field_transform("ninja_server_role")
def map_ninja_server_role(value: str) -> str:
    return "SERVER" if map_ninja_role(value) == "SERVER" else "OTHER"


@field_transform("virtualization")
def detect_virtualization(value: str) -> Optional[str]:
    """Virtual or Physical, judged from the system model string."""
    model = (value or "").strip().lower()
    if not model:
        return None
    if any(marker in model for marker in VIRTUAL_MODEL_MARKERS):
        return "Virtual"
    return "Physical"


@field_transform("server_location")
def resolve_server_location(value: str) -> Optional[str]:
    """
    City from the site code a server name starts with.

    "CAL-FS01" -> "Calgary", "yvrdc02" -> "Vancouver".
    """
    name = (value or "").strip()
    if not name:
        return None
    first = re.split(r"[-_\s.]+", name)[0]
    return city_for_abbreviation(first) or city_for_abbreviation(first[:3])


# ===================
# DEVICE NAMES
# ===================

@dataclass
class DeviceInfo:
    """Make, model and storage parsed from a carrier device description."""
    make: str
    model: str
    storage: Optional[str] = None


_IPAD_NOISE = re.compile(r"SPACE|SPC|GRAY|GRY|GREY|SILVER|SLV|ARTL|TL|ML|AL|TI|BLK|MID|ROSE|GOLD")
_WATCH_NOISE = re.compile(
    r"SPACE|SPC|GRAY|GRY|GREY|BLACK|BLK|MID|BLUE|RED|PINK|ORANGE|YELLOW|WHITE|SILVER|STAINLESS"
)


def parse_device_name(device_name: str) -> DeviceInfo:
    """
    Parse a carrier device description.

    "IPHONE 14 PRO 128GB SPACE BLACK" -> Apple / iPhone 14 Pro / 128GB
    "SS GALAXY S23 256GB"             -> Samsung / Galaxy S23 / 256GB
    Unknown shapes keep the original string as model.
    """
    if not device_name or not device_name.strip():
        return DeviceInfo(make="Unknown", model="Unknown")

    normalized = device_name.strip().upper()
    if normalized.startswith("SWAP "):
        normalized = normalized[5:]

    storage = None
    storage_match = _STORAGE_TOKEN.search(normalized)
    if storage_match:
        storage = f"{storage_match.group(1)}{storage_match.group(2)}"
        normalized = normalized.replace(storage_match.group(0), "", 1).strip()

    if "IPHONE" in normalized:
        match = re.search(r"IPHONE\s+(\d+(?:\s+(?:PRO|PLUS|MINI|MAX))*)", normalized)
        if match:
            return DeviceInfo("Apple", f"iPhone {_title_words(match.group(1))}", storage)
        return DeviceInfo("Apple", "iPhone", storage)

    if "IPAD" in normalized:
        model_part = re.sub(r"^APPLE\s+", "", normalized)
        model_part = _IPAD_NOISE.sub("", model_part).strip()
        return DeviceInfo("Apple", _title_words(model_part), storage)

    if "WATCH" in normalized:
        model_part = re.sub(r"^APPLE\s+", "", normalized)
        model_part = _WATCH_NOISE.sub("", model_part).strip()
        return DeviceInfo("Apple", _title_words(model_part), storage)

    if normalized.startswith("SS "):
        normalized = "SAMSUNG " + normalized[3:]

    if "SAMSUNG" in normalized and "GALAXY" in normalized:
        match = re.search(r"GALAXY\s+([A-Z]\d+(?:\s+(?:PLUS|ULTRA|FE))*)", normalized)
        if match:
            return DeviceInfo("Samsung", f"Galaxy {_title_words(match.group(1))}", storage)
        return DeviceInfo("Samsung", "Galaxy", storage)

    if "PIXEL" in normalized:
        match = re.search(r"PIXEL\s+(\d+[A-Z]*(?:\s+(?:PRO|XL))*)", normalized)
        if match:
            return DeviceInfo("Google", f"Pixel {_title_words(match.group(1))}", storage)
        return DeviceInfo("Google", "Pixel", storage)

    first_word = normalized.split(" ")[0]
    make = _title_word(first_word) if first_word else "Unknown"
    return DeviceInfo(make, device_name.strip(), storage)


@field_transform("device_model")
def device_model(value: str) -> str:
    return parse_device_name(value).model


@field_transform("device_make")
def device_make(value: str) -> str:
    return parse_device_name(value).make


@field_transform("device_storage")
def device_storage(value: str) -> Optional[str]:
    return parse_device_name(value).storage


# ===================
# MAPPING ENGINE
# ===================

@dataclass
class RowDraft:
    """Mutable working copy of a TransformationResult."""
    direct: dict[str, Any] = field(default_factory=dict)
    extended: dict[str, Any] = field(default_factory=dict)
    notes: list[str] = field(default_factory=list)
    validation_errors: list[str] = field(default_factory=list)

    def freeze(self) -> TransformationResult:
        return TransformationResult(
            direct_fields=dict(self.direct),
            extended_attributes=dict(self.extended),
            notes=list(self.notes),
            validation_errors=list(self.validation_errors),
        )


def _header_key(column: str) -> str:
    return column.strip().lower()


def find_cell(row: dict[str, Any], column: str) -> Optional[str]:
    """Cell for a column, matching headers case- and whitespace-insensitively."""
    if column in row:
        value = row[column]
    else:
        wanted = _header_key(column)
        value = None
        for key, cell in row.items():
            if isinstance(key, str) and _header_key(key) == wanted:
                value = cell
                break
        else:
            return None
    if value is None:
        return None
    return str(value)


def has_any_column(row: dict[str, Any], mappings: list[ColumnMapping]) -> bool:
    """True if the row carries at least one mapped source column."""
    headers = {_header_key(k) for k in row if isinstance(k, str)}
    return any(_header_key(m.source_column) in headers for m in mappings)


def validate_required(raw_row: dict[str, Any], mappings: list[ColumnMapping]) -> list[str]:
    """
    Target fields of required mappings whose source cell is absent or blank.

    Each field is reported once, in mapping order.
    """
    missing: list[str] = []
    for mapping in mappings:
        if not mapping.required:
            continue
        value = find_cell(raw_row, mapping.source_column)
        if (value is None or not value.strip()) and mapping.target_field not in missing:
            missing.append(mapping.target_field)
    return missing


def apply_column_mappings(
    row: dict[str, Any],
    mappings: list[ColumnMapping],
) -> RowDraft:
    """
    Run every mapping over one raw row.

    - Missing required cell: "Required field X is missing"
    - Blank optional cell: skipped
    - Transform failure: note "Failed to process <column>: <error>", field omitted
    - Transform returning None: field omitted
    """
    draft = RowDraft()

    for mapping in mappings:
        value = find_cell(row, mapping.source_column)
        blank = value is None or not value.strip()

        if blank:
            if mapping.required:
                message = f"Required field {mapping.target_field} is missing"
                if message not in draft.validation_errors:
                    draft.validation_errors.append(message)
            continue

        if mapping.target_bucket == TargetBucket.IGNORE:
            continue

        transformed: Any = value.strip()
        if mapping.transform:
            try:
                transformed = get_transform(mapping.transform)(value)
            except Exception as e:
                error = FieldTransformError(mapping.source_column, value, str(e))
                draft.notes.append(error.message)
                logger.debug(
                    "field_transform_failed",
                    column=mapping.source_column,
                    transform=mapping.transform,
                    error=str(e),
                )
                continue

        if transformed is None:
            continue

        if mapping.target_bucket == TargetBucket.DIRECT:
            draft.direct[mapping.target_field] = transformed
        else:
            draft.extended[mapping.target_field] = transformed

    return draft


def generated_tag(prefix: str) -> str:
    """Placeholder tag: PREFIX-<6 digits of clock>-<3 random chars>."""
    stamp = str(int(time.time() * 1000))[-6:]
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=3))
    return f"{prefix}-{stamp}-{suffix}"


def phone_tag_for(name: Optional[str]) -> Optional[str]:
    """
    "PH-First Last" for a display name; "PH-name" for a bare username.

    Returns None when there is no name.
    """
    cleaned = (name or "").strip()
    if not cleaned:
        return None
    parts = cleaned.split()
    if len(parts) >= 2:
        return f"PH-{parts[0]} {parts[-1]}"
    return f"PH-{cleaned}"


def column(
    source: str,
    target: str,
    bucket: TargetBucket = TargetBucket.DIRECT,
    transform: Optional[str] = None,
    required: bool = False,
    description: str = "",
) -> ColumnMapping:
    """Shorthand for building mapping tables."""
    return ColumnMapping(
        source_column=source,
        target_field=target,
        target_bucket=bucket,
        transform=transform,
        required=required,
        description=description,
    )
