from __future__ import annotations

from decimal import Decimal

from .models import ATTENDANCE_PRESENT, Activity, Member, WeeklyReport
from .services import summarize_activities

DASHBOARD_LEADERBOARD_SIZE = 10
TREND_WEEKS = 52


def industry_report(year: int, week_number: int | None = None) -> list[dict]:
    """Per-industry rollup of the year's (or one week's) activities, most referrals first."""
    activities = Activity.objects.filter(year=year).select_related("member").order_by("id")
    if week_number is not None:
        activities = activities.filter(week_number=week_number)

    by_industry: dict[str, dict] = {}
    for activity in activities:
        industry = activity.member.industry
        stats = by_industry.get(industry)
        if stats is None:
            stats = {
                "industry": industry,
                "members": set(),
                "rows": 0,
                "totalReferrals": 0,
                "totalTYFCB": Decimal("0"),
                "totalOneToOneVisits": 0,
                "totalVisitors": 0,
                "totalCEU": 0,
                "attendanceCount": 0,
            }
            by_industry[industry] = stats

        stats["members"].add(activity.member_id)
        stats["rows"] += 1
        stats["totalReferrals"] += activity.total_referrals
        stats["totalTYFCB"] += activity.tyfcb
        stats["totalOneToOneVisits"] += activity.one_to_one_visit
        stats["totalVisitors"] += activity.visitors
        stats["totalCEU"] += activity.ceu
        if activity.is_present:
            stats["attendanceCount"] += 1

    result = []
    for stats in by_industry.values():
        rows = stats.pop("rows")
        stats["totalMembers"] = len(stats.pop("members"))
        stats["totalTYFCB"] = float(stats["totalTYFCB"])
        stats["attendanceRate"] = (stats["attendanceCount"] / rows) * 100 if rows else 0.0
        result.append(stats)

    return sorted(result, key=lambda stats: stats["totalReferrals"], reverse=True)


def member_activity_report(week_number: int, year: int) -> list[dict]:
    """One entry per member with the week's summed counters and latest attendance."""
    activities = (
        Activity.objects.filter(week_number=week_number, year=year)
        .select_related("member")
        .order_by("activity_date", "id")
    )

    by_member: dict[int, dict] = {}
    for activity in activities:
        entry = by_member.get(activity.member_id)
        if entry is None:
            entry = {
                "memberId": activity.member_id,
                "memberName": activity.member_name,
                "memberNumber": activity.member.member_number,
                "industry": activity.member.industry,
                "referrals": 0,
                "tyfcb": Decimal("0"),
                "oneToOnes": 0,
                "visitors": 0,
                "attendance": ATTENDANCE_PRESENT,
            }
            by_member[activity.member_id] = entry

        entry["referrals"] += activity.total_referrals
        entry["tyfcb"] += activity.tyfcb
        entry["oneToOnes"] += activity.one_to_one_visit
        entry["visitors"] += activity.visitors
        entry["attendance"] = activity.attendance

    for entry in by_member.values():
        entry["tyfcb"] = float(entry["tyfcb"])
    return list(by_member.values())


def weekly_reports_for_year(year: int):
    return WeeklyReport.objects.filter(year=year).order_by("week_number")


def dashboard_summary(year: int, week_number: int | None = None) -> dict:
    """Totals and top-10 leaderboards for a year or one week, plus the year's weekly trend.

    ``trends`` holds ``WeeklyReport`` instances; callers serialize them.
    """
    activities = Activity.objects.filter(year=year).order_by("id")
    if week_number is not None:
        activities = activities.filter(week_number=week_number)

    summary = summarize_activities(activities, top_n=DASHBOARD_LEADERBOARD_SIZE)

    member_ids = {
        stats["member_id"]
        for key in ("top_referrers", "top_tyfcb", "top_one_to_ones")
        for stats in summary[key]
    }
    industries = dict(Member.objects.filter(id__in=member_ids).values_list("id", "industry"))

    def leaderboard(key: str) -> list[dict]:
        return [
            {
                "memberId": stats["member_id"],
                "memberName": stats["member_name"],
                "industry": industries.get(stats["member_id"], ""),
                "referrals": stats["referrals"],
                "tyfcb": float(stats["tyfcb"]),
                "oneToOnes": stats["one_to_ones"],
            }
            for stats in summary[key]
        ]

    total_inside = summary["total_inside_referrals"]
    total_outside = summary["total_outside_referrals"]

    return {
        "summary": {
            "totalMembers": summary["total_members"],
            "totalInsideReferrals": total_inside,
            "totalOutsideReferrals": total_outside,
            "totalReferrals": total_inside + total_outside,
            "totalTYFCB": float(summary["total_tyfcb"]),
            "totalOneToOneVisits": summary["total_one_to_one_visits"],
            "totalVisitors": summary["total_visitors"],
            "totalCEU": summary["total_ceu"],
            "attendanceRate": round(summary["attendance_rate"], 2),
            "totalActivities": summary["total_activities"],
        },
        "topPerformers": {
            "referrers": leaderboard("top_referrers"),
            "tyfcb": leaderboard("top_tyfcb"),
            "oneToOnes": leaderboard("top_one_to_ones"),
        },
        "trends": list(weekly_reports_for_year(year)[:TREND_WEEKS]),
        "period": {"weekNumber": week_number, "year": year},
    }
