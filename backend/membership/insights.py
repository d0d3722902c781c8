from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
import hashlib
import logging

import numpy as np
import pandas as pd
from django.db import transaction

from .models import ATTENDANCE_PRESENT, Insight, Member

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_WINDOW = 10

TOP_REFERRER_THRESHOLD = 5
TYFCB_GOAL = Decimal("50000")
ATTENDANCE_FLOOR = 70
ONE_TO_ONE_FLOOR = 2

REFERRAL_TARGET = 10
TYFCB_TARGET = 10000
ONE_TO_ONE_TARGET = 5

MATCH_SEED = "chapter-member-match"
MAX_MATCHES = 10
PERFORMANCE_LIMIT = 10
COMPLEMENTARY_INDUSTRIES = [
    ("real estate", "mortgage"),
    ("insurance", "financial planning"),
    ("web design", "marketing"),
    ("accounting", "tax services"),
    ("legal", "business consulting"),
]


@dataclass(frozen=True)
class RecentStats:
    referrals: int
    tyfcb: Decimal
    one_to_ones: int
    attendance_rate: float
    activity_count: int


def recent_stats(member: Member, window: int = RECENT_ACTIVITY_WINDOW) -> RecentStats:
    activities = list(member.activities.order_by("-activity_date", "-id")[:window])
    present = sum(1 for activity in activities if activity.attendance == ATTENDANCE_PRESENT)
    return RecentStats(
        referrals=sum(activity.total_referrals for activity in activities),
        tyfcb=sum((activity.tyfcb for activity in activities), Decimal("0")),
        one_to_ones=sum(activity.one_to_one_visit for activity in activities),
        attendance_rate=(present / len(activities)) * 100 if activities else 0.0,
        activity_count=len(activities),
    )


def _format_amount(amount: Decimal) -> str:
    if amount == amount.to_integral_value():
        return f"{int(amount):,}"
    return f"{amount:,.2f}"


def evaluate_insight_rules(name: str, stats: RecentStats) -> list[dict]:
    """Rule hits for one member; every rule is checked independently."""
    hits = []

    if stats.referrals > TOP_REFERRER_THRESHOLD:
        hits.append({
            "insight_type": Insight.TYPE_PERFORMANCE,
            "title": f"{name} is a Top Referrer",
            "content": (
                f"{name} has generated {stats.referrals} referrals in recent activities, "
                "placing them among the top performers in the chapter."
            ),
            "recommendations": [
                "Consider recognizing this member at the next meeting",
                "Ask them to share their referral strategies with the group",
                "Feature their success story in chapter communications",
            ],
        })

    if stats.tyfcb > TYFCB_GOAL:
        hits.append({
            "insight_type": Insight.TYPE_PERFORMANCE,
            "title": f"{name} is Exceeding TYFCB Goals",
            "content": (
                f"{name} has achieved ${_format_amount(stats.tyfcb)} in TYFCB, "
                "demonstrating strong business generation capabilities."
            ),
            "recommendations": [
                "Celebrate this milestone publicly",
                "Encourage them to mentor other members",
                "Use their success as a case study",
            ],
        })

    if stats.attendance_rate < ATTENDANCE_FLOOR:
        hits.append({
            "insight_type": Insight.TYPE_OPPORTUNITY,
            "title": f"Improve {name}'s Attendance",
            "content": (
                f"{name}'s attendance rate is {stats.attendance_rate:.1f}%, "
                "which is below the recommended 80% threshold."
            ),
            "recommendations": [
                "Schedule a one-to-one to discuss any barriers",
                "Offer to help with meeting preparation",
                "Ensure they feel valued and engaged",
            ],
        })

    if stats.one_to_ones < ONE_TO_ONE_FLOOR:
        hits.append({
            "insight_type": Insight.TYPE_OPPORTUNITY,
            "title": f"{name} Needs More One-to-Ones",
            "content": (
                f"{name} has only completed {stats.one_to_ones} one-to-one meetings recently. "
                "Regular one-to-ones are essential for building referral relationships."
            ),
            "recommendations": [
                "Encourage them to schedule more one-to-ones",
                "Offer to help them identify good matches",
                "Track their one-to-one progress",
            ],
        })

    if stats.referrals > 0 and stats.tyfcb == 0:
        hits.append({
            "insight_type": Insight.TYPE_PATTERN,
            "title": f"{name} Gives Referrals But No TYFCB",
            "content": (
                f"{name} is actively giving referrals but hasn't reported any TYFCB. "
                "This may indicate a need for better follow-up tracking."
            ),
            "recommendations": [
                "Educate on the importance of TYFCB tracking",
                "Help them understand the referral-to-closed business process",
                "Provide tools for better follow-up management",
            ],
        })

    return hits


def _active_members():
    return Member.objects.filter(status=Member.STATUS_ACTIVE).order_by("id")


def generate_insights() -> int:
    """Replace every stored insight with a fresh rule evaluation of the active members."""
    with transaction.atomic():
        deleted, _ = Insight.objects.all().delete()

        to_create = []
        for member in _active_members():
            stats = recent_stats(member)
            for hit in evaluate_insight_rules(member.name, stats):
                to_create.append(Insight(member=member, **hit))

        Insight.objects.bulk_create(to_create)

    logger.info("Regenerated insights: %s removed, %s created", deleted, len(to_create))
    return len(to_create)


def _round_half_up(values):
    return np.floor(np.asarray(values, dtype=float) + 0.5).astype(int)


def analyze_member_performance(limit: int | None = PERFORMANCE_LIMIT) -> list[dict]:
    """Composite 0-100 score per active member from the recent activity window."""
    records = []
    for member in _active_members():
        stats = recent_stats(member)
        records.append({
            "memberId": member.id,
            "memberName": member.name,
            "industry": member.industry,
            "referrals": stats.referrals,
            "tyfcb": float(stats.tyfcb),
            "oneToOnes": stats.one_to_ones,
            "attendanceRate": stats.attendance_rate,
        })
    if not records:
        return []

    df = pd.DataFrame.from_records(records)
    df["referralScore"] = np.minimum(100.0, df["referrals"] / REFERRAL_TARGET * 100)
    df["tyfcbScore"] = np.minimum(100.0, df["tyfcb"] / TYFCB_TARGET * 100)
    df["attendanceScore"] = np.minimum(100.0, df["attendanceRate"])
    df["oneToOneScore"] = np.minimum(100.0, df["oneToOnes"] / ONE_TO_ONE_TARGET * 100)
    score_columns = ["referralScore", "tyfcbScore", "attendanceScore", "oneToOneScore"]
    df["overallScore"] = df[score_columns].mean(axis=1)

    for column in score_columns + ["overallScore"]:
        df[column] = _round_half_up(df[column])
    df["trend"] = "STABLE"

    df = df.sort_values("overallScore", ascending=False, kind="stable")
    if limit is not None:
        df = df.head(limit)

    columns = ["memberId", "memberName", "industry", "overallScore"] + score_columns + ["trend"]
    return [
        {
            key: (value.item() if hasattr(value, "item") else value)
            for key, value in row.items()
        }
        for row in df[columns].to_dict(orient="records")
    ]


def match_score(first_id: int, second_id: int, seed: str = MATCH_SEED) -> int:
    """Stable score in [80, 99] for a member pair."""
    digest = hashlib.sha256(f"{seed}:{first_id}:{second_id}".encode("utf-8")).hexdigest()
    return 80 + int(digest[:8], 16) % 20


def _member_summary(member: Member) -> dict:
    return {"id": member.id, "name": member.name, "industry": member.industry}


def suggest_member_matches(limit: int = MAX_MATCHES) -> list[dict]:
    """Pair members across complementary industries, i-th with i-th."""
    groups: dict[str, list[Member]] = {}
    for member in _active_members():
        groups.setdefault(member.industry.strip().lower(), []).append(member)

    matches = []
    for left_industry, right_industry in COMPLEMENTARY_INDUSTRIES:
        left_group = groups.get(left_industry, [])
        right_group = groups.get(right_industry, [])
        for left, right in zip(left_group, right_group):
            matches.append({
                "member1": _member_summary(left),
                "member2": _member_summary(right),
                "matchScore": match_score(left.id, right.id),
                "reason": (
                    f"Complementary industries: {left.industry} and {right.industry} "
                    "often work together on client projects."
                ),
            })
    return matches[:limit]


def latest_insights(limit: int = 50):
    return Insight.objects.select_related("member").order_by("-created_at", "-id")[:limit]
