import logging

from django.conf import settings
from django.utils import timezone
from rest_framework import status, viewsets
from rest_framework.exceptions import ValidationError
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from membership.insights import (
    analyze_member_performance,
    generate_insights,
    latest_insights,
    suggest_member_matches,
)
from membership.models import Activity, Member, Term, UPLOAD_TYPE_WEEKLY
from membership.reports import (
    dashboard_summary,
    industry_report,
    member_activity_report,
    weekly_reports_for_year,
)
from membership.services import (
    ActivityUploadError,
    MemberUploadError,
    default_mapping_template,
    import_members,
    ingest_weekly_activities,
    list_mapping_templates,
    save_mapping_template,
)
from membership.spreadsheets import (
    SpreadsheetError,
    auto_map_columns,
    get_excel_columns,
    read_spreadsheet,
)

from .serializers import (
    ActivitySerializer,
    ColumnMappingTemplateSerializer,
    InsightSerializer,
    MappedWeeklyUploadRequestSerializer,
    MemberSerializer,
    SaveMappingRequestSerializer,
    SpreadsheetUploadSerializer,
    TermSerializer,
    WeeklyReportSerializer,
    WeeklyUploadRequestSerializer,
)

logger = logging.getLogger(__name__)

SAMPLE_ROWS = 5


def _set_refresh_cookie(response: Response, refresh_token: str) -> None:
    """Attach the refresh token to an HttpOnly cookie for web clients."""
    cookie_name = getattr(settings, 'REFRESH_TOKEN_COOKIE_NAME', 'refresh_token')
    max_age = int(settings.SIMPLE_JWT['REFRESH_TOKEN_LIFETIME'].total_seconds())
    response.set_cookie(
        cookie_name,
        refresh_token,
        max_age=max_age,
        secure=getattr(settings, 'REFRESH_TOKEN_COOKIE_SECURE', True),
        httponly=getattr(settings, 'REFRESH_TOKEN_COOKIE_HTTPONLY', True),
        samesite=getattr(settings, 'REFRESH_TOKEN_COOKIE_SAMESITE', 'Strict'),
        path='/',
    )


def _clear_refresh_cookie(response: Response) -> None:
    cookie_name = getattr(settings, 'REFRESH_TOKEN_COOKIE_NAME', 'refresh_token')
    response.delete_cookie(
        cookie_name,
        path='/',
        samesite=getattr(settings, 'REFRESH_TOKEN_COOKIE_SAMESITE', 'Strict'),
    )


def _error(message: str, status_code=status.HTTP_400_BAD_REQUEST) -> Response:
    return Response({'error': message}, status=status_code)


def _int_param(params, name: str, default=None):
    value = params.get(name)
    if value in (None, ''):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError({name: [f'{name} must be an integer']})


def _current_year() -> int:
    return timezone.localdate().year


class CookieTokenObtainPairView(TokenObtainPairView):
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        response = super().post(request, *args, **kwargs)
        refresh_token = response.data.get('refresh')
        if refresh_token:
            _set_refresh_cookie(response, refresh_token)
        return response


class CookieTokenRefreshView(TokenRefreshView):
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        cookie_name = getattr(settings, 'REFRESH_TOKEN_COOKIE_NAME', 'refresh_token')
        refresh_token = request.data.get('refresh') or request.COOKIES.get(cookie_name)

        if not refresh_token:
            return _error('Refresh token not provided.', status.HTTP_401_UNAUTHORIZED)

        serializer = self.get_serializer(data={'refresh': refresh_token})
        try:
            serializer.is_valid(raise_exception=True)
        except TokenError as exc:
            raise InvalidToken(exc.args[0]) from exc
        data = serializer.validated_data

        response = Response(data, status=status.HTTP_200_OK)
        new_refresh = data.get('refresh')
        if new_refresh:
            _set_refresh_cookie(response, new_refresh)
        return response


class LogoutView(APIView):
    permission_classes = [AllowAny]

    def post(self, request):
        cookie_name = getattr(settings, 'REFRESH_TOKEN_COOKIE_NAME', 'refresh_token')
        refresh_token = request.data.get('refresh') or request.COOKIES.get(cookie_name)

        response = Response(status=status.HTTP_204_NO_CONTENT)
        _clear_refresh_cookie(response)

        if not refresh_token:
            return response

        try:
            token = RefreshToken(refresh_token)
            token.blacklist()
        except TokenError:
            response.status_code = status.HTTP_400_BAD_REQUEST
            response.data = {'error': 'Invalid refresh token.'}

        return response


class MemberViewSet(viewsets.ModelViewSet):
    queryset = Member.objects.all().order_by('-created_at', '-id')
    serializer_class = MemberSerializer


class TermViewSet(viewsets.ModelViewSet):
    queryset = Term.objects.all().order_by('-created_at', '-id')
    serializer_class = TermSerializer


class ActivityViewSet(viewsets.ModelViewSet):
    serializer_class = ActivitySerializer

    def get_queryset(self):
        queryset = Activity.objects.select_related('member').order_by('-activity_date', '-id')
        if self.action != 'list':
            return queryset

        params = self.request.query_params
        member_id = _int_param(params, 'memberId')
        phone_id = params.get('phoneId')
        week_number = _int_param(params, 'weekNumber')
        year = _int_param(params, 'year')

        if member_id is not None:
            queryset = queryset.filter(member_id=member_id)
        if phone_id:
            queryset = queryset.filter(phone_id=phone_id.strip())
        if week_number is not None:
            queryset = queryset.filter(week_number=week_number)
        if year is not None:
            queryset = queryset.filter(year=year)
        return queryset


class MemberUploadView(APIView):
    parser_classes = (MultiPartParser, FormParser)

    def post(self, request):
        serializer = SpreadsheetUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            rows = read_spreadsheet(serializer.validated_data['file'])
            results = import_members(rows)
        except (SpreadsheetError, MemberUploadError) as exc:
            return _error(str(exc))

        return Response(
            {
                'message': (
                    f'Upload completed. {results.success} members imported, '
                    f'{results.failed} failed.'
                ),
                'results': results.as_dict(),
            },
            status=status.HTTP_200_OK,
        )


class WeeklyActivityUploadView(APIView):
    parser_classes = (MultiPartParser, FormParser)
    request_serializer_class = WeeklyUploadRequestSerializer

    def get_mapping(self, validated_data):
        return None

    def post(self, request):
        serializer = self.request_serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        validated = serializer.validated_data

        try:
            rows = read_spreadsheet(validated['file'])
            if not rows:
                return _error('Excel file is empty or could not be parsed')
            summary = ingest_weekly_activities(
                rows,
                activity_date=validated['activityDate'],
                uploaded_by=validated.get('uploadedBy') or 'admin',
                mapping=self.get_mapping(validated),
            )
        except (SpreadsheetError, ActivityUploadError) as exc:
            return _error(str(exc))

        return Response(
            {
                'success': True,
                'uploaded': summary.uploaded,
                'weekNumber': summary.week_number,
                'year': summary.year,
                'activityDate': summary.activity_date.isoformat(),
            },
            status=status.HTTP_200_OK,
        )


class MappedWeeklyActivityUploadView(WeeklyActivityUploadView):
    request_serializer_class = MappedWeeklyUploadRequestSerializer

    def get_mapping(self, validated_data):
        return validated_data['mapping']


class WeeklyUploadParseView(APIView):
    parser_classes = (MultiPartParser, FormParser)

    def post(self, request):
        serializer = SpreadsheetUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            rows = read_spreadsheet(serializer.validated_data['file'])
        except SpreadsheetError as exc:
            return _error(str(exc))
        if not rows:
            return _error('Excel file is empty or could not be parsed')

        columns = get_excel_columns(rows)
        headers = {column.name for column in columns}
        suggested = auto_map_columns(columns)

        template = default_mapping_template()
        if template is not None:
            suggested.update({
                field: header
                for field, header in template.mapping.items()
                if header in headers
            })

        return Response(
            {
                'success': True,
                'columns': [column.as_dict() for column in columns],
                'sampleData': rows[:SAMPLE_ROWS],
                'totalRows': len(rows),
                'suggestedMapping': suggested,
            },
            status=status.HTTP_200_OK,
        )


class MappingTemplateListView(APIView):
    def get(self, request):
        upload_type = request.query_params.get('uploadType') or UPLOAD_TYPE_WEEKLY
        templates = list_mapping_templates(upload_type)
        return Response(
            {
                'success': True,
                'templates': ColumnMappingTemplateSerializer(templates, many=True).data,
            },
            status=status.HTTP_200_OK,
        )


class SaveMappingTemplateView(APIView):
    parser_classes = (JSONParser, FormParser, MultiPartParser)

    def post(self, request):
        serializer = SaveMappingRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        validated = serializer.validated_data

        template, created = save_mapping_template(
            validated['name'],
            validated['mapping'],
            is_default=validated['isDefault'],
            upload_type=validated['uploadType'],
        )
        return Response(
            {
                'success': True,
                'template': ColumnMappingTemplateSerializer(template).data,
            },
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


class WeeklyReportListView(APIView):
    def get(self, request):
        year = _int_param(request.query_params, 'year', _current_year())
        reports = weekly_reports_for_year(year)
        return Response(WeeklyReportSerializer(reports, many=True).data, status=status.HTTP_200_OK)


class IndustryReportView(APIView):
    def get(self, request):
        year = _int_param(request.query_params, 'year', _current_year())
        week_number = _int_param(request.query_params, 'weekNumber')
        return Response(
            {
                'success': True,
                'data': industry_report(year, week_number),
                'weekNumber': week_number,
                'year': year,
            },
            status=status.HTTP_200_OK,
        )


class MemberActivityReportView(APIView):
    def get(self, request):
        week_number = _int_param(request.query_params, 'weekNumber')
        year = _int_param(request.query_params, 'year', _current_year())
        if not week_number:
            return _error('Week number is required')
        return Response(member_activity_report(week_number, year), status=status.HTTP_200_OK)


class DashboardSummaryView(APIView):
    def get(self, request):
        week_number = _int_param(request.query_params, 'weekNumber')
        year = _int_param(request.query_params, 'year', _current_year())

        payload = dashboard_summary(year, week_number)
        payload['trends'] = WeeklyReportSerializer(payload['trends'], many=True).data
        return Response(payload, status=status.HTTP_200_OK)


class InsightOverviewView(APIView):
    def get(self, request):
        return Response(
            {
                'insights': InsightSerializer(latest_insights(), many=True).data,
                'matches': suggest_member_matches(),
                'performance': analyze_member_performance(),
            },
            status=status.HTTP_200_OK,
        )


class GenerateInsightsView(APIView):
    def post(self, request):
        created = generate_insights()
        return Response(
            {'success': True, 'insightsCreated': created},
            status=status.HTTP_200_OK,
        )
