from datetime import date, timedelta
from decimal import Decimal
from io import StringIO
from pathlib import Path
from tempfile import NamedTemporaryFile

import pandas as pd
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import SimpleTestCase, TestCase

from .insights import (
    RecentStats,
    analyze_member_performance,
    evaluate_insight_rules,
    generate_insights,
    match_score,
    suggest_member_matches,
)
from .models import Activity, ColumnMappingTemplate, Insight, Member, WeeklyReport
from .reports import dashboard_summary, industry_report, member_activity_report
from .services import (
    ActivityUploadError,
    build_member_roster,
    import_members,
    ingest_weekly_activities,
    iso_week,
    parse_activity_date,
    parse_column_mapping,
    parse_join_date,
    rebuild_weekly_report,
    resolve_member,
    save_mapping_template,
    week_bounds,
)
from .spreadsheets import (
    ACTIVITY_FIELD_DEFAULTS,
    DEFAULT_WEEKLY_MAPPING,
    auto_map_columns,
    mapping_pairs,
    normalize_row,
    read_spreadsheet,
    to_amount,
    to_int,
    validate_activity_row,
    validate_mapped_activity_row,
)


def weekly_row(name, attendance='出席', **values):
    row = {header: None for header in DEFAULT_WEEKLY_MAPPING.values()}
    row['名称'] = name
    row['出席情况'] = attendance
    for field, value in values.items():
        row[DEFAULT_WEEKLY_MAPPING[field]] = value
    return row


def write_xlsx(rows):
    temp_file = NamedTemporaryFile(suffix='.xlsx', delete=False)
    temp_file.close()
    pd.DataFrame(rows).to_excel(temp_file.name, index=False, engine='openpyxl')
    return temp_file.name


class MemberFixturesMixin:
    def make_member(self, name, phone_id, industry='Real Estate', status=Member.STATUS_ACTIVE):
        return Member.objects.create(
            phone_id=phone_id,
            member_number=f'M-{phone_id}',
            name=name,
            industry=industry,
            join_date=date(2024, 1, 1),
            status=status,
        )


class RowNormalizerTests(SimpleTestCase):
    def test_explicit_pairs_copy_raw_values(self):
        row = {'Name': '张三', 'Att': '出席', 'Inside': '3'}
        pairs = mapping_pairs({'member_name': 'Name', 'attendance': 'Att', 'provide_inside_ref': 'Inside'})

        record = normalize_row(row, pairs)

        self.assertEqual(record, {'member_name': '张三', 'attendance': '出席', 'provide_inside_ref': '3'})

    def test_missing_header_maps_to_none_then_default(self):
        pairs = mapping_pairs({'member_name': 'Name', 'visitors': 'Guests'})

        record = normalize_row({'Name': '张三'}, pairs, ACTIVITY_FIELD_DEFAULTS)

        self.assertEqual(record['member_name'], '张三')
        self.assertEqual(record['visitors'], 0)
        self.assertEqual(record['tyfcb'], 0)
        self.assertIsNone(record['identity'])

    def test_defaults_do_not_override_mapped_values(self):
        pairs = mapping_pairs({'ceu': 'CEU'})
        record = normalize_row({'CEU': 4}, pairs, ACTIVITY_FIELD_DEFAULTS)
        self.assertEqual(record['ceu'], 4)

    def test_auto_map_matches_default_headers_only(self):
        suggested = auto_map_columns(['名称', '出席情况', 'Unknown'])
        self.assertEqual(suggested, {'member_name': '名称', 'attendance': '出席情况'})


class CoercionTests(SimpleTestCase):
    def test_to_int_treats_blank_and_garbage_as_zero(self):
        self.assertEqual(to_int(None), 0)
        self.assertEqual(to_int(''), 0)
        self.assertEqual(to_int('  '), 0)
        self.assertEqual(to_int('n/a'), 0)
        self.assertEqual(to_int(float('nan')), 0)
        self.assertEqual(to_int('1,200'), 1200)
        self.assertEqual(to_int(3.0), 3)

    def test_to_amount_is_non_negative_decimal(self):
        self.assertEqual(to_amount('1,234.5'), Decimal('1234.50'))
        self.assertEqual(to_amount(-10), Decimal('0.00'))
        self.assertEqual(to_amount('abc'), Decimal('0.00'))
        self.assertEqual(to_amount(None), Decimal('0.00'))


class RowValidatorTests(SimpleTestCase):
    def test_raw_row_requires_name_and_attendance(self):
        result = validate_activity_row({'名称': '', '出席情况': None})

        self.assertFalse(result.valid)
        self.assertEqual(
            result.errors,
            ['名称 (Name) is required', '出席情况 (Attendance) is required'],
        )

    def test_raw_row_passes_with_required_fields(self):
        self.assertTrue(validate_activity_row(weekly_row('张三')).valid)

    def test_mapped_record_errors_use_canonical_names(self):
        result = validate_mapped_activity_row({'member_name': '张三', 'attendance': ''})

        self.assertFalse(result.valid)
        self.assertEqual(result.errors, ['attendance is required'])


class WeekTests(SimpleTestCase):
    def test_activity_date_parses_strict_yyyymmdd(self):
        self.assertEqual(parse_activity_date('20260205'), date(2026, 2, 5))
        for bad in ('', None, '2026-02-05', '20261305', '202602'):
            with self.assertRaises(ActivityUploadError):
                parse_activity_date(bad)

    def test_iso_week_and_bounds_agree(self):
        self.assertEqual(iso_week(date(2026, 2, 5)), (2026, 6))
        self.assertEqual(week_bounds(6, 2026), (date(2026, 2, 2), date(2026, 2, 8)))

    def test_year_boundary_uses_iso_week_year(self):
        year, week = iso_week(date(2025, 12, 30))
        self.assertEqual((year, week), (2026, 1))
        start, end = week_bounds(week, year)
        self.assertTrue(start <= date(2025, 12, 30) <= end)

    def test_column_mapping_validation(self):
        self.assertEqual(
            parse_column_mapping('{"member_name": "Name", "visitors": ""}'),
            {'member_name': 'Name'},
        )
        with self.assertRaises(ActivityUploadError):
            parse_column_mapping('{"not_a_field": "X"}')
        with self.assertRaises(ActivityUploadError):
            parse_column_mapping('not json')
        with self.assertRaises(ActivityUploadError):
            parse_column_mapping('["member_name"]')


class MemberResolverTests(MemberFixturesMixin, TestCase):
    def test_exact_match_only(self):
        member = self.make_member('张三', '1001')
        roster = build_member_roster()

        self.assertEqual(resolve_member(roster, '张三').id, member.id)
        self.assertIsNone(resolve_member(roster, '张三 '))
        self.assertIsNone(resolve_member(roster, '李四'))
        self.assertIsNone(resolve_member(roster, None))

    def test_inactive_members_still_resolve(self):
        member = self.make_member('王五', '1002', status=Member.STATUS_INACTIVE)
        self.assertEqual(resolve_member(build_member_roster(), '王五').id, member.id)

    def test_roster_is_read_only(self):
        self.make_member('张三', '1001')
        roster = build_member_roster()
        with self.assertRaises(TypeError):
            roster['李四'] = None


class WeeklyIngestionTests(MemberFixturesMixin, TestCase):
    def setUp(self):
        self.zhang = self.make_member('张三', '1001')
        self.li = self.make_member('李四', '1002', industry='Mortgage')

    def test_scenario_inserts_and_aggregates_week(self):
        rows = [
            weekly_row(
                '张三',
                provide_inside_ref=3,
                provide_outside_ref=2,
                tyfcb=None,
                one_to_one_visit=1,
            ),
        ]

        summary = ingest_weekly_activities(rows, activity_date=date(2026, 2, 5), uploaded_by='alice')

        self.assertEqual(summary.uploaded, 1)
        self.assertEqual((summary.week_number, summary.year), (6, 2026))

        activity = Activity.objects.get()
        self.assertEqual(activity.member_id, self.zhang.id)
        self.assertEqual(activity.phone_id, '1001')
        self.assertEqual(activity.total_referrals, 5)
        self.assertEqual(activity.tyfcb, Decimal('0'))
        self.assertEqual(activity.visitors, 0)
        self.assertEqual(activity.uploaded_by, 'alice')

        report = WeeklyReport.objects.get(week_number=6, year=2026)
        self.assertEqual(report.start_date, date(2026, 2, 2))
        self.assertEqual(report.end_date, date(2026, 2, 8))
        self.assertEqual(report.total_members, 1)
        self.assertEqual(report.total_inside_referrals, 3)
        self.assertEqual(report.total_outside_referrals, 2)
        self.assertEqual(report.attendance_rate, 100.0)
        self.assertEqual(report.top_referrers, [{'member_id': self.zhang.id, 'referrals': 5}])

    def test_blank_counters_default_to_zero(self):
        ingest_weekly_activities(
            [weekly_row('张三', visitors='', ceu=None, tyfcb='')],
            activity_date=date(2026, 2, 5),
        )
        activity = Activity.objects.get()
        self.assertEqual(activity.visitors, 0)
        self.assertEqual(activity.ceu, 0)
        self.assertEqual(activity.tyfcb, Decimal('0'))
        self.assertIsNone(activity.identity)

    def test_invalid_and_unmatched_rows_are_not_counted(self):
        rows = [
            weekly_row('张三'),
            weekly_row('李四', attendance=None),
            weekly_row('Nobody'),
        ]

        summary = ingest_weekly_activities(rows, activity_date=date(2026, 2, 5))

        self.assertEqual(summary.uploaded, 1)
        self.assertEqual(summary.rows_read, 3)
        self.assertEqual(summary.rows_invalid, 1)
        self.assertEqual(summary.rows_unmatched, 1)
        self.assertEqual(Activity.objects.count(), 1)

    def test_duplicate_member_date_is_skipped(self):
        rows = [weekly_row('张三', provide_inside_ref=1)]
        first = ingest_weekly_activities(rows, activity_date=date(2026, 2, 5))
        second = ingest_weekly_activities(
            [weekly_row('张三', provide_inside_ref=9), weekly_row('李四')],
            activity_date=date(2026, 2, 5),
        )

        self.assertEqual(first.uploaded, 1)
        self.assertEqual(second.uploaded, 1)
        self.assertEqual(Activity.objects.get(member=self.zhang).provide_inside_ref, 1)

        report = WeeklyReport.objects.get(week_number=6, year=2026)
        self.assertEqual(report.total_members, 2)

    def test_custom_mapping_path(self):
        rows = [{'Member': '李四', 'Present': '缺席', 'Given In': '2', 'Closed': '1,500'}]
        mapping = {
            'member_name': 'Member',
            'attendance': 'Present',
            'provide_inside_ref': 'Given In',
            'tyfcb': 'Closed',
        }

        summary = ingest_weekly_activities(rows, activity_date=date(2026, 2, 5), mapping=mapping)

        self.assertEqual(summary.uploaded, 1)
        activity = Activity.objects.get()
        self.assertEqual(activity.attendance, '缺席')
        self.assertEqual(activity.provide_inside_ref, 2)
        self.assertEqual(activity.tyfcb, Decimal('1500.00'))
        self.assertEqual(WeeklyReport.objects.get().attendance_rate, 0.0)

    def test_custom_mapping_rejects_missing_required_field(self):
        rows = [{'Member': '李四'}]
        summary = ingest_weekly_activities(
            rows,
            activity_date=date(2026, 2, 5),
            mapping={'member_name': 'Member', 'attendance': 'Present'},
        )
        self.assertEqual(summary.uploaded, 0)
        self.assertEqual(summary.rows_invalid, 1)

    def test_out_of_range_values_drop_only_their_row(self):
        summary = ingest_weekly_activities(
            [
                weekly_row('张三', provide_inside_ref=1),
                weekly_row('李四', tyfcb=1e15),
            ],
            activity_date=date(2026, 2, 5),
        )

        self.assertEqual(summary.uploaded, 1)
        self.assertEqual(summary.rows_invalid, 1)
        self.assertEqual(Activity.objects.get().member_id, self.zhang.id)

        summary = ingest_weekly_activities(
            [
                weekly_row('张三', provide_inside_ref=1),
                weekly_row('李四', visitors='1e30'),
            ],
            activity_date=date(2026, 2, 12),
        )

        self.assertEqual(summary.uploaded, 1)
        self.assertEqual(summary.rows_invalid, 1)
        self.assertFalse(Activity.objects.filter(member=self.li).exists())
        self.assertEqual(WeeklyReport.objects.get(week_number=7, year=2026).total_members, 1)

    def test_largest_storable_values_are_kept(self):
        summary = ingest_weekly_activities(
            [weekly_row('张三', visitors=2 ** 31 - 1, tyfcb='999999999999.99')],
            activity_date=date(2026, 2, 5),
        )

        self.assertEqual(summary.uploaded, 1)
        activity = Activity.objects.get()
        self.assertEqual(activity.visitors, 2 ** 31 - 1)
        self.assertEqual(activity.tyfcb, Decimal('999999999999.99'))

    def test_empty_upload_still_writes_empty_week(self):
        summary = ingest_weekly_activities([], activity_date=date(2026, 2, 5))

        self.assertEqual(summary.uploaded, 0)
        report = WeeklyReport.objects.get(week_number=6, year=2026)
        self.assertEqual(report.total_members, 0)
        self.assertEqual(report.attendance_rate, 0.0)
        self.assertEqual(report.top_referrers, [])


class WeeklyAggregatorTests(MemberFixturesMixin, TestCase):
    def setUp(self):
        self.zhang = self.make_member('张三', '1001')
        self.li = self.make_member('李四', '1002')
        ingest_weekly_activities(
            [
                weekly_row('张三', provide_inside_ref=2, tyfcb=100, one_to_one_visit=1),
                weekly_row('李四', attendance='缺席', provide_outside_ref=4, tyfcb=50, one_to_one_visit=3),
            ],
            activity_date=date(2026, 2, 5),
        )

    def test_totals_and_leaderboards(self):
        report = WeeklyReport.objects.get(week_number=6, year=2026)

        self.assertEqual(report.total_members, 2)
        self.assertEqual(report.total_tyfcb, Decimal('150.00'))
        self.assertEqual(report.total_one_to_one_visits, 4)
        self.assertEqual(report.attendance_rate, 50.0)
        self.assertEqual([entry['member_id'] for entry in report.top_referrers], [self.li.id, self.zhang.id])
        self.assertEqual(report.top_tyfcb[0], {'member_id': self.zhang.id, 'tyfcb': 100.0})
        self.assertEqual(report.top_one_to_ones[0]['member_id'], self.li.id)

    def test_rebuild_is_idempotent(self):
        fields = [
            'total_members',
            'total_inside_referrals',
            'total_outside_referrals',
            'total_tyfcb',
            'attendance_rate',
            'top_referrers',
            'top_tyfcb',
            'top_one_to_ones',
        ]
        first = WeeklyReport.objects.values(*fields).get(week_number=6, year=2026)
        rebuild_weekly_report(6, 2026)
        rebuild_weekly_report(6, 2026)
        second = WeeklyReport.objects.values(*fields).get(week_number=6, year=2026)

        self.assertEqual(first, second)
        self.assertEqual(WeeklyReport.objects.count(), 1)

    def test_rebuild_for_week_without_activities(self):
        report = rebuild_weekly_report(10, 2026)
        self.assertEqual(report.total_members, 0)
        self.assertEqual(report.total_tyfcb, Decimal('0'))
        self.assertEqual(report.attendance_rate, 0.0)


class ReportTests(MemberFixturesMixin, TestCase):
    def setUp(self):
        self.zhang = self.make_member('张三', '1001', industry='Real Estate')
        self.li = self.make_member('李四', '1002', industry='Mortgage')
        self.wang = self.make_member('王五', '1003', industry='Real Estate')
        ingest_weekly_activities(
            [
                weekly_row('张三', provide_inside_ref=1),
                weekly_row('李四', provide_inside_ref=5, tyfcb=200),
                weekly_row('王五', attendance='缺席', provide_outside_ref=1),
            ],
            activity_date=date(2026, 2, 5),
        )
        ingest_weekly_activities(
            [weekly_row('张三', provide_inside_ref=2)],
            activity_date=date(2026, 2, 12),
        )

    def test_industry_report_sorted_by_referrals(self):
        data = industry_report(2026)

        self.assertEqual([entry['industry'] for entry in data], ['Mortgage', 'Real Estate'])
        real_estate = data[1]
        self.assertEqual(real_estate['totalMembers'], 2)
        self.assertEqual(real_estate['totalReferrals'], 4)
        self.assertAlmostEqual(real_estate['attendanceRate'], 200 / 3)

    def test_industry_report_for_single_week(self):
        data = industry_report(2026, 7)
        self.assertEqual(len(data), 1)
        self.assertEqual(data[0]['totalReferrals'], 2)

    def test_member_activity_report(self):
        data = member_activity_report(6, 2026)
        by_name = {entry['memberName']: entry for entry in data}

        self.assertEqual(by_name['李四']['referrals'], 5)
        self.assertEqual(by_name['李四']['tyfcb'], 200.0)
        self.assertEqual(by_name['王五']['attendance'], '缺席')

    def test_dashboard_summary(self):
        payload = dashboard_summary(2026)

        self.assertEqual(payload['summary']['totalMembers'], 3)
        self.assertEqual(payload['summary']['totalActivities'], 4)
        self.assertEqual(payload['summary']['totalReferrals'], 9)
        self.assertEqual(payload['summary']['attendanceRate'], 75.0)
        self.assertEqual(payload['topPerformers']['referrers'][0]['memberName'], '李四')
        self.assertEqual(payload['topPerformers']['referrers'][0]['industry'], 'Mortgage')
        self.assertEqual([report.week_number for report in payload['trends']], [6, 7])
        self.assertEqual(payload['period'], {'weekNumber': None, 'year': 2026})


class InsightTests(MemberFixturesMixin, TestCase):
    def test_rules_fire_independently(self):
        stats = RecentStats(
            referrals=6,
            tyfcb=Decimal('0'),
            one_to_ones=3,
            attendance_rate=100.0,
            activity_count=1,
        )
        hits = evaluate_insight_rules('张三', stats)

        self.assertEqual(
            [(hit['insight_type'], hit['title']) for hit in hits],
            [
                (Insight.TYPE_PERFORMANCE, '张三 is a Top Referrer'),
                (Insight.TYPE_PATTERN, '张三 Gives Referrals But No TYFCB'),
            ],
        )
        self.assertTrue(all(len(hit['recommendations']) == 3 for hit in hits))

    def test_opportunity_rules(self):
        stats = RecentStats(
            referrals=0,
            tyfcb=Decimal('60000'),
            one_to_ones=1,
            attendance_rate=50.0,
            activity_count=2,
        )
        titles = [hit['title'] for hit in evaluate_insight_rules('李四', stats)]

        self.assertEqual(
            titles,
            [
                '李四 is Exceeding TYFCB Goals',
                "Improve 李四's Attendance",
                '李四 Needs More One-to-Ones',
            ],
        )

    def test_generation_replaces_previous_insights(self):
        member = self.make_member('张三', '1001')
        self.make_member('Old', '1099', status=Member.STATUS_INACTIVE)
        ingest_weekly_activities(
            [weekly_row('张三', provide_inside_ref=6, one_to_one_visit=3)],
            activity_date=date(2026, 2, 5),
        )

        first = generate_insights()
        second = generate_insights()

        self.assertEqual(first, 2)
        self.assertEqual(second, 2)
        self.assertEqual(Insight.objects.count(), 2)
        self.assertEqual(
            set(Insight.objects.values_list('insight_type', flat=True)),
            {Insight.TYPE_PERFORMANCE, Insight.TYPE_PATTERN},
        )
        self.assertTrue(all(insight.member_id == member.id for insight in Insight.objects.all()))

    def test_only_ten_most_recent_activities_count(self):
        member = self.make_member('张三', '1001')
        # Oldest week carries the referrals; the ten later weeks carry none.
        dates = [date(2026, 1, 1) + timedelta(weeks=offset) for offset in range(11)]
        ingest_weekly_activities(
            [weekly_row('张三', provide_inside_ref=9, one_to_one_visit=1)],
            activity_date=dates[0],
        )
        for activity_date in dates[1:]:
            ingest_weekly_activities(
                [weekly_row('张三', one_to_one_visit=1)],
                activity_date=activity_date,
            )
        self.assertEqual(Activity.objects.filter(member=member).count(), 11)

        generate_insights()

        titles = set(Insight.objects.filter(member=member).values_list('title', flat=True))
        self.assertNotIn('张三 is a Top Referrer', titles)
        self.assertNotIn('张三 Gives Referrals But No TYFCB', titles)

        entry = next(item for item in analyze_member_performance() if item['memberId'] == member.id)
        self.assertEqual(entry['referralScore'], 0)
        self.assertEqual(entry['oneToOneScore'], 100)
        self.assertEqual(entry['overallScore'], 50)

    def test_member_without_activity(self):
        self.make_member('张三', '1001')
        generate_insights()
        titles = set(Insight.objects.values_list('title', flat=True))
        self.assertEqual(titles, {"Improve 张三's Attendance", '张三 Needs More One-to-Ones'})

    def test_performance_scores(self):
        self.make_member('张三', '1001')
        ingest_weekly_activities(
            [weekly_row('张三', provide_inside_ref=5, tyfcb=20000, one_to_one_visit=1)],
            activity_date=date(2026, 2, 5),
        )

        [entry] = analyze_member_performance()

        self.assertEqual(entry['referralScore'], 50)
        self.assertEqual(entry['tyfcbScore'], 100)
        self.assertEqual(entry['attendanceScore'], 100)
        self.assertEqual(entry['oneToOneScore'], 20)
        self.assertEqual(entry['overallScore'], 68)
        self.assertEqual(entry['trend'], 'STABLE')

    def test_matches_are_deterministic(self):
        realtor = self.make_member('张三', '1001', industry='Real Estate')
        lender = self.make_member('李四', '1002', industry='mortgage')
        self.make_member('王五', '1003', industry='Plumbing')

        matches = suggest_member_matches()

        self.assertEqual(len(matches), 1)
        self.assertEqual(matches[0]['member1']['id'], realtor.id)
        self.assertEqual(matches[0]['member2']['id'], lender.id)
        self.assertEqual(matches[0]['matchScore'], match_score(realtor.id, lender.id))
        self.assertEqual(suggest_member_matches(), matches)
        self.assertTrue(80 <= match_score(1, 2) <= 99)


class MappingTemplateTests(TestCase):
    def test_only_one_default_template(self):
        first, created = save_mapping_template('A', {'member_name': 'Name'}, is_default=True)
        self.assertTrue(created)
        save_mapping_template('B', {'member_name': 'Member'}, is_default=True)

        defaults = ColumnMappingTemplate.objects.filter(is_default=True)
        self.assertEqual([template.name for template in defaults], ['B'])
        first.refresh_from_db()
        self.assertFalse(first.is_default)

    def test_saving_same_name_updates(self):
        save_mapping_template('A', {'member_name': 'Name'})
        template, created = save_mapping_template('A', {'member_name': 'Other'})

        self.assertFalse(created)
        self.assertEqual(ColumnMappingTemplate.objects.count(), 1)
        self.assertEqual(template.mapping, {'member_name': 'Other'})


class MemberImportTests(MemberFixturesMixin, TestCase):
    def test_join_date_formats(self):
        self.assertEqual(parse_join_date(45000), date(2023, 3, 15))
        self.assertEqual(parse_join_date('2024-05-01'), date(2024, 5, 1))
        self.assertIsNone(parse_join_date('not a date'))

    def test_upsert_by_phone_id_and_row_errors(self):
        self.make_member('Old Name', '1001')
        rows = [
            {
                'Phone_ID': 1001,
                'Member_Number': 'A1',
                'Name': '张三',
                'Industry': 'Legal',
                'Master': None,
                'Join_Date': '2024-05-01',
                'Status': 'Active',
            },
            {
                'Phone_ID': '1002',
                'Member_Number': 'A2',
                'Name': '李四',
                'Industry': 'Insurance',
                'Join_Date': 45000,
                'Status': 'Left',
            },
            {'Phone_ID': '1003', 'Name': 'Missing'},
            {
                'Phone_ID': '1004',
                'Member_Number': 'A4',
                'Name': '赵六',
                'Industry': 'Legal',
                'Join_Date': 'someday',
                'Status': 'ACTIVE',
            },
        ]

        summary = import_members(rows)

        self.assertEqual(summary.success, 2)
        self.assertEqual(summary.failed, 2)
        self.assertEqual(
            summary.errors,
            ['Row 4: Missing required fields', 'Row 5: Invalid date format'],
        )
        updated = Member.objects.get(phone_id='1001')
        self.assertEqual(updated.name, '张三')
        self.assertEqual(updated.status, Member.STATUS_ACTIVE)
        self.assertEqual(Member.objects.get(phone_id='1002').status, Member.STATUS_INACTIVE)


class SpreadsheetReaderTests(SimpleTestCase):
    def test_blank_cells_become_none(self):
        path = write_xlsx([
            {'名称': '张三', '出席情况': '出席', '来宾': None},
            {'名称': None, '出席情况': None, '来宾': None},
        ])
        try:
            rows = read_spreadsheet(path)
        finally:
            Path(path).unlink(missing_ok=True)

        self.assertEqual(rows, [{'名称': '张三', '出席情况': '出席', '来宾': None}])


class WeeklyImportCommandTests(MemberFixturesMixin, TestCase):
    def test_command_imports_spreadsheet(self):
        self.make_member('张三', '1001')
        path = write_xlsx([weekly_row('张三', provide_inside_ref=3, provide_outside_ref=2)])
        out = StringIO()
        try:
            call_command(
                'import_weekly_activities',
                '--xlsx',
                path,
                '--date',
                '20260205',
                stdout=out,
            )
        finally:
            Path(path).unlink(missing_ok=True)

        self.assertIn("'uploaded': 1", out.getvalue())
        self.assertEqual(Activity.objects.get().total_referrals, 5)
        self.assertTrue(WeeklyReport.objects.filter(week_number=6, year=2026).exists())

    def test_command_rejects_bad_date(self):
        path = write_xlsx([weekly_row('张三')])
        try:
            with self.assertRaises(CommandError):
                call_command('import_weekly_activities', '--xlsx', path, '--date', '2026-02-05')
        finally:
            Path(path).unlink(missing_ok=True)

    def test_rebuild_and_generate_commands(self):
        self.make_member('张三', '1001')
        ingest_weekly_activities([weekly_row('张三')], activity_date=date(2026, 2, 5))
        WeeklyReport.objects.all().delete()

        call_command('rebuild_weekly_report', stdout=StringIO())
        call_command('generate_insights', stdout=StringIO())

        self.assertTrue(WeeklyReport.objects.filter(week_number=6, year=2026).exists())
        self.assertEqual(Insight.objects.count(), 1)
