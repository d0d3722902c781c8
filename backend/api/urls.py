# backend/api/urls.py
from django.urls import include, path
from rest_framework.routers import DefaultRouter
from .views import (
    ActivityViewSet,
    CookieTokenObtainPairView,
    CookieTokenRefreshView,
    DashboardSummaryView,
    GenerateInsightsView,
    IndustryReportView,
    InsightOverviewView,
    LogoutView,
    MappedWeeklyActivityUploadView,
    MappingTemplateListView,
    MemberActivityReportView,
    MemberUploadView,
    MemberViewSet,
    SaveMappingTemplateView,
    TermViewSet,
    WeeklyActivityUploadView,
    WeeklyReportListView,
    WeeklyUploadParseView,
)

urlpatterns = [
    path('auth/login/', CookieTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/refresh/', CookieTokenRefreshView.as_view(), name='token_refresh'),
    path('auth/logout/', LogoutView.as_view(), name='token_logout'),

    # Registered ahead of the router so they are not read as detail routes.
    path('members/upload/', MemberUploadView.as_view(), name='member-upload'),
    path('activities/upload/weekly/', WeeklyActivityUploadView.as_view(), name='weekly-upload'),
    path(
        'activities/upload/weekly/with-mapping/',
        MappedWeeklyActivityUploadView.as_view(),
        name='weekly-upload-with-mapping',
    ),
    path('activities/upload/weekly/parse/', WeeklyUploadParseView.as_view(), name='weekly-upload-parse'),
    path('activities/upload/weekly/mappings/', MappingTemplateListView.as_view(), name='weekly-upload-mappings'),
    path(
        'activities/upload/weekly/save-mapping/',
        SaveMappingTemplateView.as_view(),
        name='weekly-upload-save-mapping',
    ),

    path('reports/weekly/', WeeklyReportListView.as_view(), name='report-weekly'),
    path('reports/industry/', IndustryReportView.as_view(), name='report-industry'),
    path('reports/activities/', MemberActivityReportView.as_view(), name='report-activities'),
    path('dashboard/summary/', DashboardSummaryView.as_view(), name='dashboard-summary'),
    path('ai-insights/', InsightOverviewView.as_view(), name='ai-insights'),
    path('ai-insights/generate/', GenerateInsightsView.as_view(), name='ai-insights-generate'),
]

router = DefaultRouter()
router.register('members', MemberViewSet, basename='member')
router.register('terms', TermViewSet, basename='term')
router.register('activities', ActivityViewSet, basename='activity')

urlpatterns += [
    path('', include(router.urls)),
]
