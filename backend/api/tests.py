from datetime import date
from io import BytesIO
import json

import pandas as pd
from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase
from rest_framework.test import APIClient

from membership.models import Activity, ColumnMappingTemplate, Insight, Member, WeeklyReport
from membership.services import ingest_weekly_activities

XLSX_CONTENT_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def xlsx_upload(rows, name='weekly.xlsx'):
    buffer = BytesIO()
    pd.DataFrame(rows).to_excel(buffer, index=False, engine='openpyxl')
    return SimpleUploadedFile(name, buffer.getvalue(), content_type=XLSX_CONTENT_TYPE)


class ApiTestCase(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(username='admin', password='secret-pass')
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

    def make_member(self, name, phone_id, industry='Real Estate'):
        return Member.objects.create(
            phone_id=phone_id,
            member_number=f'M-{phone_id}',
            name=name,
            industry=industry,
            join_date=date(2024, 1, 1),
        )


class AuthApiTests(TestCase):
    def test_login_sets_refresh_cookie(self):
        get_user_model().objects.create_user(username='admin', password='secret-pass')
        client = APIClient()

        response = client.post(
            '/api/auth/login/',
            {'username': 'admin', 'password': 'secret-pass'},
            format='json',
        )

        self.assertEqual(response.status_code, 200)
        self.assertIn('access', response.json())
        self.assertIn('refresh_token', response.cookies)

    def test_requests_without_token_are_rejected(self):
        response = APIClient().get('/api/members/')
        self.assertEqual(response.status_code, 401)
        self.assertIn('error', response.json())

    def test_logout_clears_cookie_and_blacklists_token(self):
        get_user_model().objects.create_user(username='admin', password='secret-pass')
        client = APIClient()
        client.post(
            '/api/auth/login/',
            {'username': 'admin', 'password': 'secret-pass'},
            format='json',
        )
        refresh_token = client.cookies['refresh_token'].value

        response = client.post('/api/auth/logout/', {}, format='json')

        self.assertEqual(response.status_code, 204)
        self.assertEqual(response.cookies['refresh_token'].value, '')

        response = APIClient().post('/api/auth/refresh/', {'refresh': refresh_token}, format='json')
        self.assertEqual(response.status_code, 401)
        self.assertIn('error', response.json())

    def test_logout_with_invalid_token(self):
        response = APIClient().post('/api/auth/logout/', {'refresh': 'not-a-token'}, format='json')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {'error': 'Invalid refresh token.'})
        self.assertEqual(response.cookies['refresh_token'].value, '')

    def test_logout_without_token(self):
        response = APIClient().post('/api/auth/logout/', {}, format='json')
        self.assertEqual(response.status_code, 204)

    def test_refresh_without_token(self):
        response = APIClient().post('/api/auth/refresh/', {}, format='json')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json(), {'error': 'Refresh token not provided.'})


class WeeklyUploadApiTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.zhang = self.make_member('张三', '1001')

    def test_upload_weekly_spreadsheet(self):
        upload = xlsx_upload([
            {'名称': '张三', '出席情况': '出席', '提供内部引荐': 3, '提供外部引荐': 2, '交易价值': None},
            {'名称': 'Nobody', '出席情况': '出席', '提供内部引荐': 1, '提供外部引荐': 0, '交易价值': 10},
            {'名称': None, '出席情况': '出席', '提供内部引荐': 1, '提供外部引荐': 0, '交易价值': 10},
        ])

        response = self.client.post(
            '/api/activities/upload/weekly/',
            {'file': upload, 'activityDate': '20260205', 'uploadedBy': 'alice'},
            format='multipart',
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {
                'success': True,
                'uploaded': 1,
                'weekNumber': 6,
                'year': 2026,
                'activityDate': '2026-02-05',
            },
        )
        activity = Activity.objects.get()
        self.assertEqual(activity.total_referrals, 5)
        self.assertEqual(activity.uploaded_by, 'alice')
        self.assertTrue(WeeklyReport.objects.filter(week_number=6, year=2026).exists())

    def test_upload_requires_activity_date(self):
        response = self.client.post(
            '/api/activities/upload/weekly/',
            {'file': xlsx_upload([{'名称': '张三', '出席情况': '出席'}])},
            format='multipart',
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Activity date is required (YYYYMMDD format)')
        self.assertEqual(Activity.objects.count(), 0)

    def test_upload_rejects_malformed_date(self):
        response = self.client.post(
            '/api/activities/upload/weekly/',
            {'file': xlsx_upload([{'名称': '张三', '出席情况': '出席'}]), 'activityDate': '2026-02-05'},
            format='multipart',
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn('2026-02-05', response.json()['error'])

    def test_upload_requires_file(self):
        response = self.client.post(
            '/api/activities/upload/weekly/',
            {'activityDate': '20260205'},
            format='multipart',
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'No file provided')

    def test_unreadable_file(self):
        upload = SimpleUploadedFile('weekly.xlsx', b'not a workbook', content_type=XLSX_CONTENT_TYPE)
        response = self.client.post(
            '/api/activities/upload/weekly/',
            {'file': upload, 'activityDate': '20260205'},
            format='multipart',
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn('error', response.json())

    def test_upload_with_mapping(self):
        upload = xlsx_upload([{'Member': '张三', 'Present': '出席', 'Given In': 4}])
        mapping = {'member_name': 'Member', 'attendance': 'Present', 'provide_inside_ref': 'Given In'}

        response = self.client.post(
            '/api/activities/upload/weekly/with-mapping/',
            {'file': upload, 'activityDate': '20260205', 'mapping': json.dumps(mapping)},
            format='multipart',
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['uploaded'], 1)
        self.assertEqual(Activity.objects.get().provide_inside_ref, 4)
        self.assertEqual(Activity.objects.get().uploaded_by, 'admin')

    def test_upload_with_unknown_mapping_field(self):
        upload = xlsx_upload([{'Member': '张三', 'Present': '出席'}])
        response = self.client.post(
            '/api/activities/upload/weekly/with-mapping/',
            {
                'file': upload,
                'activityDate': '20260205',
                'mapping': json.dumps({'member_name': 'Member', 'nickname': 'Present'}),
            },
            format='multipart',
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn('nickname', response.json()['error'])

    def test_upload_with_mapping_requires_mapping(self):
        upload = xlsx_upload([{'Member': '张三', 'Present': '出席'}])
        response = self.client.post(
            '/api/activities/upload/weekly/with-mapping/',
            {'file': upload, 'activityDate': '20260205'},
            format='multipart',
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Column mapping is required')

    def test_parse_returns_columns_and_suggestion(self):
        ColumnMappingTemplate.objects.create(
            name='export',
            mapping={'visitors': 'Guests', 'ceu': 'Missing Column'},
            is_default=True,
        )
        rows = [{'名称': f'member {i}', '出席情况': '出席', 'Guests': i} for i in range(7)]

        response = self.client.post(
            '/api/activities/upload/weekly/parse/',
            {'file': xlsx_upload(rows)},
            format='multipart',
        )

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload['success'])
        self.assertEqual(
            payload['columns'],
            [
                {'name': '名称', 'index': 0},
                {'name': '出席情况', 'index': 1},
                {'name': 'Guests', 'index': 2},
            ],
        )
        self.assertEqual(payload['totalRows'], 7)
        self.assertEqual(len(payload['sampleData']), 5)
        self.assertEqual(
            payload['suggestedMapping'],
            {'member_name': '名称', 'attendance': '出席情况', 'visitors': 'Guests'},
        )

    def test_save_and_list_mappings(self):
        response = self.client.post(
            '/api/activities/upload/weekly/save-mapping/',
            {'name': 'first', 'mapping': {'member_name': 'Name'}, 'isDefault': True},
            format='json',
        )
        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.json()['template']['is_default'])

        response = self.client.post(
            '/api/activities/upload/weekly/save-mapping/',
            {'name': 'second', 'mapping': {'member_name': 'Member'}, 'isDefault': True},
            format='json',
        )
        self.assertEqual(response.status_code, 201)

        response = self.client.get('/api/activities/upload/weekly/mappings/')
        self.assertEqual(response.status_code, 200)
        templates = response.json()['templates']
        self.assertEqual([template['name'] for template in templates], ['second', 'first'])
        self.assertEqual([template['is_default'] for template in templates], [True, False])

    def test_save_mapping_requires_name(self):
        response = self.client.post(
            '/api/activities/upload/weekly/save-mapping/',
            {'mapping': {'member_name': 'Name'}},
            format='json',
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Template name is required')


class ResourceApiTests(ApiTestCase):
    def test_member_crud_and_upload(self):
        response = self.client.post(
            '/api/members/',
            {
                'phone_id': '2001',
                'member_number': 'B1',
                'name': '孙七',
                'industry': 'Legal',
                'join_date': '2024-02-01',
            },
            format='json',
        )
        self.assertEqual(response.status_code, 201)
        member_id = response.json()['id']

        response = self.client.patch(f'/api/members/{member_id}/', {'status': 'INACTIVE'}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Member.objects.get(pk=member_id).status, 'INACTIVE')

        upload = xlsx_upload(
            [
                {
                    'Phone_ID': '2001',
                    'Member_Number': 'B1',
                    'Name': '孙七',
                    'Industry': 'Legal',
                    'Master': None,
                    'Join_Date': '2024-02-01',
                    'Status': 'ACTIVE',
                },
                {
                    'Phone_ID': '2002',
                    'Member_Number': None,
                    'Name': '周八',
                    'Industry': 'Legal',
                    'Master': None,
                    'Join_Date': '2024-02-01',
                    'Status': 'ACTIVE',
                },
            ],
            name='members.xlsx',
        )
        response = self.client.post('/api/members/upload/', {'file': upload}, format='multipart')

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload['results'], {
            'success': 1,
            'failed': 1,
            'errors': ['Row 3: Missing required fields'],
        })
        self.assertEqual(payload['message'], 'Upload completed. 1 members imported, 1 failed.')
        self.assertEqual(Member.objects.get(pk=member_id).status, 'ACTIVE')

        response = self.client.delete(f'/api/members/{member_id}/')
        self.assertEqual(response.status_code, 204)

    def test_activity_create_derives_week(self):
        member = self.make_member('张三', '1001')

        response = self.client.post(
            '/api/activities/',
            {'member': member.id, 'activity_date': '2026-02-05', 'provide_inside_ref': 2},
            format='json',
        )

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload['week_number'], 6)
        self.assertEqual(payload['year'], 2026)
        self.assertEqual(payload['attendance'], '出席')
        self.assertEqual(payload['phone_id'], '1001')
        self.assertEqual(payload['member_name'], '张三')
        self.assertEqual(payload['member_detail']['name'], '张三')

    def test_activity_list_filters(self):
        zhang = self.make_member('张三', '1001')
        li = self.make_member('李四', '1002')
        ingest_weekly_activities(
            [
                {'名称': '张三', '出席情况': '出席'},
                {'名称': '李四', '出席情况': '出席'},
            ],
            activity_date=date(2026, 2, 5),
        )
        ingest_weekly_activities([{'名称': '张三', '出席情况': '出席'}], activity_date=date(2026, 2, 12))

        response = self.client.get('/api/activities/', {'memberId': zhang.id})
        self.assertEqual([item['activity_date'] for item in response.json()], ['2026-02-12', '2026-02-05'])

        response = self.client.get('/api/activities/', {'weekNumber': 6, 'year': 2026})
        self.assertEqual(len(response.json()), 2)

        response = self.client.get('/api/activities/', {'phoneId': li.phone_id})
        self.assertEqual(len(response.json()), 1)

        response = self.client.get('/api/activities/', {'weekNumber': 'six'})
        self.assertEqual(response.status_code, 400)
        self.assertIn('weekNumber', response.json()['error'])

    def test_terms_crud(self):
        response = self.client.post(
            '/api/terms/',
            {
                'term': '2026 Spring',
                'start_time': '2026-02-05T07:00:00Z',
                'end_time': '2026-02-05T08:30:00Z',
                'week_number': 6,
                'date': '2026-02-05',
            },
            format='json',
        )
        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.json()['is_meeting'])
        self.assertEqual(len(self.client.get('/api/terms/').json()), 1)


class ReportApiTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.make_member('张三', '1001', industry='Real Estate')
        self.make_member('李四', '1002', industry='Mortgage')
        ingest_weekly_activities(
            [
                {'名称': '张三', '出席情况': '出席', '提供内部引荐': 6, '一对一会面': 3},
                {'名称': '李四', '出席情况': '缺席', '交易价值': 800},
            ],
            activity_date=date(2026, 2, 5),
        )

    def test_weekly_reports(self):
        response = self.client.get('/api/reports/weekly/', {'year': 2026})
        self.assertEqual(response.status_code, 200)
        [report] = response.json()
        self.assertEqual(report['week_number'], 6)
        self.assertEqual(report['attendance_rate'], 50.0)

    def test_industry_report(self):
        response = self.client.get('/api/reports/industry/', {'year': 2026, 'weekNumber': 6})
        payload = response.json()
        self.assertEqual(payload['weekNumber'], 6)
        self.assertEqual(payload['year'], 2026)
        self.assertEqual(payload['data'][0]['industry'], 'Real Estate')
        self.assertEqual(payload['data'][1]['totalTYFCB'], 800.0)

    def test_activity_report_requires_week(self):
        response = self.client.get('/api/reports/activities/', {'year': 2026})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {'error': 'Week number is required'})

        response = self.client.get('/api/reports/activities/', {'year': 2026, 'weekNumber': 6})
        self.assertEqual(len(response.json()), 2)

    def test_dashboard_summary(self):
        response = self.client.get('/api/dashboard/summary/', {'year': 2026, 'weekNumber': 6})
        payload = response.json()

        self.assertEqual(payload['summary']['totalMembers'], 2)
        self.assertEqual(payload['summary']['attendanceRate'], 50.0)
        self.assertEqual(payload['topPerformers']['tyfcb'][0]['memberName'], '李四')
        self.assertEqual(len(payload['trends']), 1)
        self.assertEqual(payload['period'], {'weekNumber': 6, 'year': 2026})

    def test_generate_and_list_insights(self):
        response = self.client.post('/api/ai-insights/generate/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'success': True, 'insightsCreated': 4})

        payload = self.client.get('/api/ai-insights/').json()
        self.assertEqual(len(payload['insights']), Insight.objects.count())
        self.assertEqual(len(payload['matches']), 1)
        self.assertEqual(payload['matches'][0]['member1']['name'], '张三')
        self.assertEqual(payload['performance'][0]['memberName'], '张三')
