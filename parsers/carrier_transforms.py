"""
Carrier invoice transforms for phone lines (Telus and Rogers).

Both carriers produce PHONE assets keyed by IMEI. Tags follow the
"PH-First Last" convention when a subscriber name is present.
"""

import re
from typing import Optional

import structlog

from models.import_mapping import ColumnMapping, TargetBucket, TransformationResult
from parsers.field_transforms import (
    apply_column_mappings,
    column as _m,
    field_transform,
    generated_tag,
    parse_device_name,
    phone_tag_for,
    DeviceInfo,
    RowDraft,
)
from utils.date_utils import parse_compact_date, format_iso

logger = structlog.get_logger(__name__)

DIRECT = TargetBucket.DIRECT
EXTENDED = TargetBucket.EXTENDED
IGNORE = TargetBucket.IGNORE

_STORAGE_SIZES = re.compile(r"\b(32|64|128|256|512)\b")
_IPHONE_STORAGE_SIZES = re.compile(r"\b(64|128|256|512)\b")

_FALLBACK_BRANDS: list[tuple[tuple[str, ...], str]] = [
    (("SAMSUNG",), "Samsung"),
    (("APPLE", "IPHONE", "IPAD"), "Apple"),
    (("GOOGLE", "PIXEL"), "Google"),
    (("ONEPLUS",), "OnePlus"),
    (("HUAWEI",), "Huawei"),
]


# ===================
# ROGERS DEVICE NAMES
# ===================

def _brand_fallback(info: DeviceInfo, upper: str) -> DeviceInfo:
    if info.make not in ("Unknown", "Other"):
        return info
    if upper.startswith("SS "):
        return DeviceInfo("Samsung", info.model, info.storage)
    for markers, brand in _FALLBACK_BRANDS:
        if any(marker in upper for marker in markers):
            return DeviceInfo(brand, info.model, info.storage)
    return info


def parse_rogers_device_name(device_name: str) -> DeviceInfo:
    """
    Parse Rogers' abbreviated device descriptions.

    "APLE IP11PM 6425651GR" -> iPhone 11 Pro Max
    "APPLE IPADAIR128 GSM"  -> iPad Air / 128GB
    "S21 Grey - 128GB"      -> Samsung / Galaxy S21 / 128GB
    Anything else goes through the shared parser.
    """
    if not device_name or not device_name.strip():
        return DeviceInfo("Unknown", "Unknown")

    upper = device_name.upper()
    compact = re.sub(r"[^A-Z0-9]", "", upper)

    ipad_pro = re.search(r"IPDP(\d{1,2})?", compact)
    if ipad_pro:
        size = ipad_pro.group(1)
        storage = _STORAGE_SIZES.search(upper)
        return DeviceInfo(
            "Apple",
            f'iPad Pro {size}"' if size else "iPad Pro",
            f"{storage.group(1)}GB" if storage else None,
        )

    ipad_air = re.search(r"IPADAIR(\d{2,3})?", upper)
    if ipad_air:
        storage = ipad_air.group(1)
        return DeviceInfo("Apple", "iPad Air", f"{storage}GB" if storage else None)

    ipad_pro_full = re.search(r"IPAD\s+PRO\s+(\d{1,2}(?:\.\d+)?)?", upper)
    if ipad_pro_full:
        size = ipad_pro_full.group(1)
        storage = _STORAGE_SIZES.search(upper)
        return DeviceInfo(
            "Apple",
            f"iPad Pro {size}" if size else "iPad Pro",
            f"{storage.group(1)}GB" if storage else None,
        )

    ipad = re.search(r"IPAD([A-Z]*)(\d{2,3})?", upper)
    if ipad:
        subtype = {"PRO": "Pro", "MINI": "mini"}.get(ipad.group(1), ipad.group(1))
        storage = ipad.group(2)
        return DeviceInfo(
            "Apple",
            f"iPad {subtype}".strip(),
            f"{storage}GB" if storage else None,
        )

    iphone = re.search(r"IP(\d{2})(PROMAX|PRO|PM|P)?", upper)
    if iphone:
        suffix = {"P": " Pro", "PRO": " Pro", "PM": " Pro Max", "PROMAX": " Pro Max"}.get(
            iphone.group(2) or "", ""
        )
        storage = _IPHONE_STORAGE_SIZES.search(upper)
        return DeviceInfo(
            "Apple",
            f"iPhone {iphone.group(1)}{suffix}",
            f"{storage.group(1)}GB" if storage else None,
        )

    galaxy = re.match(r"^(S\d+[A-Z]*)", upper)
    if galaxy:
        storage = re.search(r"(\d+)GB", upper)
        return DeviceInfo(
            "Samsung",
            f"Galaxy {galaxy.group(1)}",
            f"{storage.group(1)}GB" if storage else None,
        )

    return _brand_fallback(parse_device_name(device_name), upper)


@field_transform("rogers_device_model")
def rogers_device_model(value: str) -> str:
    return parse_rogers_device_name(value).model


@field_transform("rogers_device_make")
def rogers_device_make(value: str) -> str:
    return parse_rogers_device_name(value).make


@field_transform("rogers_device_storage")
def rogers_device_storage(value: str) -> Optional[str]:
    return parse_rogers_device_name(value).storage


@field_transform("compact_date")
def compact_date_to_iso(value: str) -> Optional[str]:
    """ISO string from a date cell that may be written as YYYYMMDD."""
    return format_iso(parse_compact_date(value))


@field_transform("yes_no")
def parse_yes_no(value: str) -> Optional[bool]:
    cleaned = (value or "").strip().lower()
    if not cleaned:
        return None
    return cleaned in ("y", "yes", "true")


@field_transform("phone_type")
def phone_asset_type(value: str) -> str:
    return "PHONE"


# ===================
# MAPPING TABLES
# ===================

TELUS_MAPPINGS: list[ColumnMapping] = [
    _m("Subscriber Name", "assigned_to", description="Subscriber (directory lookup)"),
    _m("Phone Number", "phone_number", EXTENDED, transform="digits_only", description="Phone number"),
    _m("Rate Plan", "plan_type", EXTENDED, description="Plan type"),
    _m("Device Name", "model", transform="device_model", required=True, description="Device model"),
    _m("Device Name", "make", transform="device_make", description="Manufacturer from device name"),
    _m("Device Name", "storage", EXTENDED, transform="device_storage", description="Storage from device name"),
    _m("IMEI", "imei", EXTENDED, required=True, description="IMEI"),
    _m("IMEI", "serial_number", transform="strip", description="IMEI as serial number"),
    _m("Contract end date", "contract_end_date", EXTENDED, transform="to_iso", description="Contract end"),
    _m("BAN", "asset_type", transform="phone_type", required=True, description="Billing account marks a phone"),
    _m("Status", "", IGNORE, description="Line status (ignored)"),
]

ROGERS_MAPPINGS: list[ColumnMapping] = [
    _m("Usernames", "assigned_to", description="Username (directory lookup)"),
    _m("Subscriber Number", "phone_number", EXTENDED, transform="digits_only", description="Phone number"),
    _m("Price Plan Description", "plan_type", EXTENDED, description="Plan type"),
    _m("Device Description", "model", transform="rogers_device_model", required=True,
       description="Device model"),
    _m("Device Description", "make", transform="rogers_device_make", description="Manufacturer"),
    _m("Device Description", "storage", EXTENDED, transform="rogers_device_storage",
       description="Storage from device description"),
    _m("IMEI", "imei", EXTENDED, required=True, description="IMEI"),
    _m("IMEI", "serial_number", transform="strip", description="IMEI as serial number"),
    _m("SIM Card", "sim_card", EXTENDED, description="SIM card number"),
    _m("Commit Start Date", "purchase_date", transform="compact_date", description="Commitment start"),
    _m("Commit End Date", "contract_end_date", EXTENDED, transform="compact_date",
       description="Commitment end"),
    _m("HUP Eligible (y/n)", "hup_eligible", EXTENDED, transform="yes_no",
       description="Hardware upgrade eligible"),
    _m("Account Number", "asset_type", transform="phone_type", required=True,
       description="Account number marks a phone"),
    _m("Status", "", IGNORE, description="Line status (ignored)"),
    _m("# of Months Remaining", "", IGNORE, description="Months remaining (ignored)"),
    _m("Early Cancellation Fee", "", IGNORE, description="Cancellation fee (ignored)"),
    _m("Applicable Pre-HUP", "", IGNORE, description="Pre-HUP credit (ignored)"),
    _m("Available HUP Date(s)", "", IGNORE, description="HUP dates (ignored)"),
]


# ===================
# ROW TRANSFORMS
# ===================

def _finish_phone_row(draft: RowDraft, raw_device: Optional[str], source: str, carrier: str) -> TransformationResult:
    draft.direct["asset_type"] = "PHONE"
    draft.direct.setdefault("condition", "GOOD")
    draft.direct["source"] = source
    draft.extended.setdefault("carrier", carrier)

    assignee = draft.direct.get("assigned_to")
    draft.direct["asset_tag"] = phone_tag_for(assignee) or generated_tag("PH")

    # IMEI doubles as serial when the export has no serial column
    imei = draft.extended.get("imei")
    if imei and not draft.direct.get("serial_number"):
        draft.direct["serial_number"] = imei

    draft.direct["status"] = "ASSIGNED" if assignee else "AVAILABLE"

    if raw_device:
        draft.extended["operating_system"] = raw_device.strip()

    if assignee:
        draft.notes.append(f'Username "{assignee}" requires directory lookup')
    return draft.freeze()


def transform_telus_row(row: dict[str, str]) -> TransformationResult:
    draft = apply_column_mappings(row, TELUS_MAPPINGS)
    return _finish_phone_row(draft, row.get("Device Name"), "TELUS", "Telus")


def transform_rogers_row(row: dict[str, str]) -> TransformationResult:
    draft = apply_column_mappings(row, ROGERS_MAPPINGS)
    return _finish_phone_row(draft, row.get("Device Description"), "ROGERS", "Rogers")
