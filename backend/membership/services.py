from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
import json
import logging
import re
from types import MappingProxyType
from typing import Iterable, Mapping

import pandas as pd
from django.db import DatabaseError, transaction

from .models import (
    ATTENDANCE_PRESENT,
    UPLOAD_TYPE_WEEKLY,
    Activity,
    ColumnMappingTemplate,
    Member,
    WeeklyReport,
)
from .spreadsheets import (
    ACTIVITY_FIELD_DEFAULTS,
    ACTIVITY_FIELDS,
    DEFAULT_WEEKLY_MAPPING,
    INTEGER_ACTIVITY_FIELDS,
    mapping_pairs,
    normalize_row,
    to_amount,
    to_int,
    to_text,
    validate_activity_row,
    validate_mapped_activity_row,
    validate_member_row,
)

logger = logging.getLogger(__name__)

LEADERBOARD_SIZE = 5

# Column limits: IntegerField counters, DecimalField(max_digits=14, decimal_places=2).
INTEGER_MIN = -(2 ** 31)
INTEGER_MAX = 2 ** 31 - 1
TYFCB_LIMIT = Decimal("1e12")
EXCEL_EPOCH = date(1899, 12, 30)
ACTIVITY_DATE_PATTERN = re.compile(r"^\d{8}$")


class ActivityUploadError(Exception):
    """Raised when a weekly activity upload is rejected as a whole."""


class MemberUploadError(Exception):
    """Raised when a member roster upload is rejected as a whole."""


@dataclass(frozen=True)
class MemberRef:
    id: int
    phone_id: str
    name: str


@dataclass
class WeeklyUploadSummary:
    uploaded: int
    week_number: int
    year: int
    activity_date: date
    rows_read: int
    rows_invalid: int
    rows_unmatched: int

    def as_dict(self) -> dict:
        return {
            "uploaded": self.uploaded,
            "week_number": self.week_number,
            "year": self.year,
            "activity_date": self.activity_date.isoformat(),
            "rows_read": self.rows_read,
            "rows_invalid": self.rows_invalid,
            "rows_unmatched": self.rows_unmatched,
        }


@dataclass
class MemberUploadSummary:
    success: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "failed": self.failed,
            "errors": self.errors,
        }


# ---------------------------------------------------------------------------
# Weeks
# ---------------------------------------------------------------------------

def parse_activity_date(value: str | None) -> date:
    """Parse the ``YYYYMMDD`` activity date sent with an upload."""
    if not value:
        raise ActivityUploadError("Activity date is required (YYYYMMDD format)")
    value = str(value).strip()
    if not ACTIVITY_DATE_PATTERN.match(value):
        raise ActivityUploadError(f"Invalid activity date: {value} (expected YYYYMMDD)")
    try:
        return datetime.strptime(value, "%Y%m%d").date()
    except ValueError as exc:
        raise ActivityUploadError(f"Invalid activity date: {value}") from exc


def iso_week(activity_date: date) -> tuple[int, int]:
    """Return ``(year, week_number)`` of the ISO week containing the date."""
    iso_year, iso_week_number, _ = activity_date.isocalendar()
    return iso_year, iso_week_number


def week_bounds(week_number: int, year: int) -> tuple[date, date]:
    """Monday and Sunday of ISO week ``week_number`` of ``year``."""
    start_date = date.fromisocalendar(year, week_number, 1)
    return start_date, start_date + timedelta(days=6)


# ---------------------------------------------------------------------------
# Column mappings
# ---------------------------------------------------------------------------

def parse_column_mapping(raw) -> dict[str, str]:
    """Validate a ``{canonical field: column header}`` mapping (dict or JSON text)."""
    if raw is None or raw == "":
        raise ActivityUploadError("Column mapping is required")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise ActivityUploadError(f"Column mapping is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ActivityUploadError("Column mapping must be an object")

    unknown = sorted(key for key in raw if key not in ACTIVITY_FIELDS)
    if unknown:
        raise ActivityUploadError(f"Unknown fields in column mapping: {unknown}")

    mapping = {}
    for database_field, excel_column in raw.items():
        if excel_column in (None, ""):
            continue
        if not isinstance(excel_column, str):
            raise ActivityUploadError(
                f"Column mapping for {database_field} must be a column name"
            )
        mapping[database_field] = excel_column
    return mapping


def list_mapping_templates(upload_type: str = UPLOAD_TYPE_WEEKLY):
    return ColumnMappingTemplate.objects.filter(upload_type=upload_type).order_by("-created_at", "-id")


def default_mapping_template(upload_type: str = UPLOAD_TYPE_WEEKLY) -> ColumnMappingTemplate | None:
    return (
        ColumnMappingTemplate.objects.filter(upload_type=upload_type, is_default=True)
        .order_by("-updated_at", "-id")
        .first()
    )


@transaction.atomic
def save_mapping_template(
    name: str,
    mapping: dict[str, str],
    *,
    is_default: bool = False,
    upload_type: str = UPLOAD_TYPE_WEEKLY,
) -> tuple[ColumnMappingTemplate, bool]:
    """Create or update the named template; at most one default per upload type."""
    if is_default:
        ColumnMappingTemplate.objects.filter(upload_type=upload_type).update(is_default=False)

    template, created = ColumnMappingTemplate.objects.update_or_create(
        name=name,
        upload_type=upload_type,
        defaults={
            "mapping": mapping,
            "is_default": bool(is_default),
        },
    )
    logger.info(
        "%s mapping template %r (upload_type=%s, default=%s)",
        "Created" if created else "Updated",
        name,
        upload_type,
        template.is_default,
    )
    return template, created


# ---------------------------------------------------------------------------
# Member roster
# ---------------------------------------------------------------------------

def build_member_roster(members: Iterable[Member] | None = None) -> Mapping[str, MemberRef]:
    """Read-only ``display name -> MemberRef`` table for one batch.

    Members of any status are included. When two members share a name the one
    loaded last wins.
    """
    if members is None:
        members = Member.objects.only("id", "phone_id", "name").order_by("id")
    table = {
        member.name: MemberRef(id=member.id, phone_id=member.phone_id, name=member.name)
        for member in members
    }
    return MappingProxyType(table)


def resolve_member(roster: Mapping[str, MemberRef], member_name) -> MemberRef | None:
    """Exact, case-sensitive lookup; ``None`` when the name is not on the roster."""
    if not isinstance(member_name, str):
        member_name = to_text(member_name)
    if not member_name:
        return None
    return roster.get(member_name)


# ---------------------------------------------------------------------------
# Weekly activity ingestion
# ---------------------------------------------------------------------------

def ingest_weekly_activities(
    rows: list[dict],
    *,
    activity_date: date,
    uploaded_by: str = "admin",
    mapping: dict[str, str] | None = None,
) -> WeeklyUploadSummary:
    """Insert one upload's activity rows and rebuild that week's report.

    Without ``mapping`` rows are expected to carry the default export headers
    and are validated before renaming. With a ``mapping`` rows are renamed
    first and validated on the canonical names. Invalid and unmatched rows are
    dropped and logged. Rows colliding with an existing (member, date) record
    are skipped by the insert and not counted as uploaded.
    """
    if activity_date is None:
        raise ActivityUploadError("Activity date is required (YYYYMMDD format)")

    year, week_number = iso_week(activity_date)
    roster = build_member_roster()
    uploaded_by = uploaded_by or "admin"

    if mapping is None:
        pairs = mapping_pairs(DEFAULT_WEEKLY_MAPPING)
    else:
        pairs = mapping_pairs(mapping)

    records: list[Activity] = []
    rows_invalid = 0
    rows_unmatched = 0

    for row_number, row in enumerate(rows, start=2):
        try:
            if mapping is None:
                validation = validate_activity_row(row)
                record = normalize_row(row, pairs, ACTIVITY_FIELD_DEFAULTS)
            else:
                record = normalize_row(row, pairs, ACTIVITY_FIELD_DEFAULTS)
                validation = validate_mapped_activity_row(record)

            if not validation.valid:
                rows_invalid += 1
                logger.warning("Row %s rejected: %s", row_number, "; ".join(validation.errors))
                continue

            coerced = coerce_activity_record(record)
            member = resolve_member(roster, coerced["member_name"])
            if member is None:
                rows_unmatched += 1
                logger.warning("Row %s: member not found: %s", row_number, coerced["member_name"])
                continue

            records.append(
                _build_activity(
                    coerced,
                    member,
                    activity_date=activity_date,
                    week_number=week_number,
                    year=year,
                    uploaded_by=uploaded_by,
                )
            )
        except (ValueError, TypeError, ArithmeticError) as exc:
            rows_invalid += 1
            logger.warning("Row %s dropped: %s", row_number, exc)

    with transaction.atomic():
        uploaded = _insert_activities(records, activity_date=activity_date)
        rebuild_weekly_report(week_number, year)

    logger.info(
        "Weekly upload %s (week %s/%s): %s rows read, %s inserted, %s invalid, %s unmatched",
        activity_date.isoformat(),
        week_number,
        year,
        len(rows),
        uploaded,
        rows_invalid,
        rows_unmatched,
    )

    return WeeklyUploadSummary(
        uploaded=uploaded,
        week_number=week_number,
        year=year,
        activity_date=activity_date,
        rows_read=len(rows),
        rows_invalid=rows_invalid,
        rows_unmatched=rows_unmatched,
    )


def coerce_activity_record(record: dict) -> dict:
    """Type the canonical record; blank or non-numeric counters become zero.

    Values that do not fit the stored columns raise ``ValueError`` so the row
    is dropped instead of failing the whole insert.
    """
    coerced = {
        "member_name": to_text(record.get("member_name")),
        "identity": to_text(record.get("identity")) or None,
        "attendance": to_text(record.get("attendance")),
        "tyfcb": to_amount(record.get("tyfcb")),
    }
    if coerced["tyfcb"] >= TYFCB_LIMIT:
        raise ValueError(f"tyfcb out of range: {coerced['tyfcb']}")

    for name in INTEGER_ACTIVITY_FIELDS:
        value = to_int(record.get(name))
        if not INTEGER_MIN <= value <= INTEGER_MAX:
            raise ValueError(f"{name} out of range: {value}")
        coerced[name] = value
    return coerced


def _build_activity(
    record: dict,
    member: MemberRef,
    *,
    activity_date: date,
    week_number: int,
    year: int,
    uploaded_by: str,
) -> Activity:
    return Activity(
        member_id=member.id,
        phone_id=member.phone_id,
        member_name=record["member_name"],
        identity=record["identity"],
        activity_date=activity_date,
        week_number=week_number,
        year=year,
        attendance=record["attendance"] or ATTENDANCE_PRESENT,
        provide_inside_ref=record["provide_inside_ref"],
        provide_outside_ref=record["provide_outside_ref"],
        received_inside_ref=record["received_inside_ref"],
        received_outside_ref=record["received_outside_ref"],
        visitors=record["visitors"],
        one_to_one_visit=record["one_to_one_visit"],
        tyfcb=record["tyfcb"],
        ceu=record["ceu"],
        uploaded_by=uploaded_by,
    )


def _insert_activities(records: list[Activity], *, activity_date: date) -> int:
    if not records:
        return 0

    existing = Activity.objects.filter(activity_date=activity_date).count()
    Activity.objects.bulk_create(records, batch_size=1000, ignore_conflicts=True)
    return Activity.objects.filter(activity_date=activity_date).count() - existing


# ---------------------------------------------------------------------------
# Weekly report
# ---------------------------------------------------------------------------

def summarize_activities(activities: Iterable[Activity], *, top_n: int = LEADERBOARD_SIZE) -> dict:
    """Totals, attendance rate and per-member leaderboards for a set of activities."""
    activities = list(activities)

    total_inside = 0
    total_outside = 0
    total_tyfcb = Decimal("0")
    total_one_to_ones = 0
    total_visitors = 0
    total_ceu = 0
    present = 0
    member_stats: dict[int, dict] = {}

    for activity in activities:
        total_inside += activity.provide_inside_ref
        total_outside += activity.provide_outside_ref
        total_tyfcb += Decimal(activity.tyfcb)
        total_one_to_ones += activity.one_to_one_visit
        total_visitors += activity.visitors
        total_ceu += activity.ceu
        if activity.attendance == ATTENDANCE_PRESENT:
            present += 1

        stats = member_stats.get(activity.member_id)
        if stats is None:
            stats = {
                "member_id": activity.member_id,
                "member_name": activity.member_name,
                "referrals": 0,
                "tyfcb": Decimal("0"),
                "one_to_ones": 0,
            }
            member_stats[activity.member_id] = stats
        stats["referrals"] += activity.provide_inside_ref + activity.provide_outside_ref
        stats["tyfcb"] += Decimal(activity.tyfcb)
        stats["one_to_ones"] += activity.one_to_one_visit

    attendance_rate = (present / len(activities)) * 100 if activities else 0.0
    ranked = list(member_stats.values())

    def top(metric: str) -> list[dict]:
        return sorted(ranked, key=lambda stats: stats[metric], reverse=True)[:top_n]

    return {
        "total_members": len(member_stats),
        "total_inside_referrals": total_inside,
        "total_outside_referrals": total_outside,
        "total_tyfcb": total_tyfcb,
        "total_one_to_one_visits": total_one_to_ones,
        "total_visitors": total_visitors,
        "total_ceu": total_ceu,
        "attendance_rate": attendance_rate,
        "total_activities": len(activities),
        "top_referrers": top("referrals"),
        "top_tyfcb": top("tyfcb"),
        "top_one_to_ones": top("one_to_ones"),
    }


def rebuild_weekly_report(week_number: int, year: int) -> WeeklyReport:
    """Recompute the (week, year) report from every stored activity of that week."""
    start_date, end_date = week_bounds(week_number, year)
    activities = Activity.objects.filter(week_number=week_number, year=year).order_by("id")
    summary = summarize_activities(activities)

    report, created = WeeklyReport.objects.update_or_create(
        week_number=week_number,
        year=year,
        defaults={
            "start_date": start_date,
            "end_date": end_date,
            "total_members": summary["total_members"],
            "total_inside_referrals": summary["total_inside_referrals"],
            "total_outside_referrals": summary["total_outside_referrals"],
            "total_tyfcb": summary["total_tyfcb"],
            "total_one_to_one_visits": summary["total_one_to_one_visits"],
            "total_visitors": summary["total_visitors"],
            "total_ceu": summary["total_ceu"],
            "attendance_rate": summary["attendance_rate"],
            "top_referrers": [
                {"member_id": s["member_id"], "referrals": s["referrals"]}
                for s in summary["top_referrers"]
            ],
            "top_tyfcb": [
                {"member_id": s["member_id"], "tyfcb": float(s["tyfcb"])}
                for s in summary["top_tyfcb"]
            ],
            "top_one_to_ones": [
                {"member_id": s["member_id"], "one_to_ones": s["one_to_ones"]}
                for s in summary["top_one_to_ones"]
            ],
        },
    )
    logger.info(
        "%s weekly report %s-W%02d from %s activities",
        "Created" if created else "Rebuilt",
        year,
        week_number,
        summary["total_activities"],
    )
    return report


# ---------------------------------------------------------------------------
# Member roster upload
# ---------------------------------------------------------------------------

def parse_join_date(value) -> date | None:
    """Accept Excel serial numbers, datetimes and date strings."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        return EXCEL_EPOCH + timedelta(days=int(value))

    parsed = pd.to_datetime(str(value).strip(), errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.date()


def import_members(rows: list[dict]) -> MemberUploadSummary:
    """Upsert roster rows keyed on ``Phone_ID``; failures are collected per row."""
    if not rows:
        raise MemberUploadError("Excel file is empty")

    summary = MemberUploadSummary()
    for row_number, row in enumerate(rows, start=2):
        validation = validate_member_row(row)
        if not validation.valid:
            summary.failed += 1
            summary.errors.append(f"Row {row_number}: Missing required fields")
            logger.warning("Member row %s rejected: %s", row_number, "; ".join(validation.errors))
            continue

        join_date = parse_join_date(row.get("Join_Date"))
        if join_date is None:
            summary.failed += 1
            summary.errors.append(f"Row {row_number}: Invalid date format")
            continue

        status = row.get("Status")
        try:
            with transaction.atomic():
                Member.objects.update_or_create(
                    phone_id=to_text(row["Phone_ID"]),
                    defaults={
                        "member_number": to_text(row["Member_Number"]),
                        "name": to_text(row["Name"]),
                        "industry": to_text(row["Industry"]),
                        "master": to_text(row.get("Master")) or None,
                        "join_date": join_date,
                        "status": (
                            Member.STATUS_ACTIVE
                            if status in ("ACTIVE", "Active")
                            else Member.STATUS_INACTIVE
                        ),
                    },
                )
        except (DatabaseError, ValueError) as exc:
            summary.failed += 1
            summary.errors.append(f"Row {row_number}: {exc}")
            continue

        summary.success += 1

    logger.info("Member upload: %s imported, %s failed", summary.success, summary.failed)
    return summary
