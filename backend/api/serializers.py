from rest_framework import serializers

from membership.models import (
    Activity,
    ColumnMappingTemplate,
    Insight,
    Member,
    Term,
    UPLOAD_TYPE_WEEKLY,
    WeeklyReport,
)
from membership.services import ActivityUploadError, iso_week, parse_activity_date, parse_column_mapping


class MemberSerializer(serializers.ModelSerializer):
    class Meta:
        model = Member
        fields = (
            'id',
            'phone_id',
            'member_number',
            'name',
            'industry',
            'master',
            'join_date',
            'status',
            'created_at',
            'updated_at',
        )
        read_only_fields = ('created_at', 'updated_at')


class MemberSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Member
        fields = ('id', 'name', 'member_number', 'industry')


class TermSerializer(serializers.ModelSerializer):
    class Meta:
        model = Term
        fields = (
            'id',
            'term',
            'start_time',
            'end_time',
            'week_number',
            'date',
            'is_meeting',
            'remarks',
            'created_at',
        )
        read_only_fields = ('created_at',)


class ActivitySerializer(serializers.ModelSerializer):
    member = serializers.PrimaryKeyRelatedField(queryset=Member.objects.all())
    member_detail = MemberSummarySerializer(source='member', read_only=True)
    week_number = serializers.IntegerField(required=False)
    year = serializers.IntegerField(required=False)

    class Meta:
        model = Activity
        fields = (
            'id',
            'member',
            'member_detail',
            'phone_id',
            'member_name',
            'identity',
            'activity_date',
            'week_number',
            'year',
            'attendance',
            'provide_inside_ref',
            'provide_outside_ref',
            'received_inside_ref',
            'received_outside_ref',
            'visitors',
            'one_to_one_visit',
            'tyfcb',
            'ceu',
            'uploaded_at',
            'uploaded_by',
        )
        read_only_fields = ('phone_id', 'member_name', 'uploaded_at')

    def validate_tyfcb(self, value):
        if value < 0:
            raise serializers.ValidationError('TYFCB cannot be negative.')
        return value

    def create(self, validated_data):
        member = validated_data['member']
        validated_data['phone_id'] = member.phone_id
        validated_data['member_name'] = member.name

        year, week_number = iso_week(validated_data['activity_date'])
        validated_data.setdefault('week_number', week_number)
        validated_data.setdefault('year', year)
        return super().create(validated_data)

    def update(self, instance, validated_data):
        member = validated_data.get('member')
        if member is not None and member.pk != instance.member_id:
            validated_data['phone_id'] = member.phone_id
            validated_data['member_name'] = member.name
        return super().update(instance, validated_data)


class ColumnMappingTemplateSerializer(serializers.ModelSerializer):
    class Meta:
        model = ColumnMappingTemplate
        fields = (
            'id',
            'name',
            'upload_type',
            'mapping',
            'is_default',
            'created_at',
            'updated_at',
        )


class WeeklyReportSerializer(serializers.ModelSerializer):
    class Meta:
        model = WeeklyReport
        fields = (
            'id',
            'week_number',
            'year',
            'start_date',
            'end_date',
            'total_members',
            'total_inside_referrals',
            'total_outside_referrals',
            'total_tyfcb',
            'total_one_to_one_visits',
            'total_visitors',
            'total_ceu',
            'attendance_rate',
            'top_referrers',
            'top_tyfcb',
            'top_one_to_ones',
            'created_at',
            'updated_at',
        )


class InsightSerializer(serializers.ModelSerializer):
    member = MemberSummarySerializer(read_only=True)

    class Meta:
        model = Insight
        fields = (
            'id',
            'member',
            'insight_type',
            'title',
            'content',
            'recommendations',
            'created_at',
        )


class SpreadsheetUploadSerializer(serializers.Serializer):
    file = serializers.FileField(
        required=True,
        error_messages={'required': 'No file provided', 'empty': 'No file provided'},
    )


class WeeklyUploadRequestSerializer(SpreadsheetUploadSerializer):
    activityDate = serializers.CharField(
        required=True,
        error_messages={
            'required': 'Activity date is required (YYYYMMDD format)',
            'blank': 'Activity date is required (YYYYMMDD format)',
        },
    )
    uploadedBy = serializers.CharField(required=False, allow_blank=True, default='admin')

    def validate_activityDate(self, value):
        try:
            return parse_activity_date(value)
        except ActivityUploadError as exc:
            raise serializers.ValidationError(str(exc)) from exc


class MappedWeeklyUploadRequestSerializer(WeeklyUploadRequestSerializer):
    # Multipart bodies carry the mapping as JSON text.
    mapping = serializers.CharField(
        required=True,
        error_messages={'required': 'Column mapping is required', 'blank': 'Column mapping is required'},
    )

    def validate_mapping(self, value):
        try:
            return parse_column_mapping(value)
        except ActivityUploadError as exc:
            raise serializers.ValidationError(str(exc)) from exc


class SaveMappingRequestSerializer(serializers.Serializer):
    name = serializers.CharField(
        required=True,
        max_length=255,
        error_messages={'required': 'Template name is required', 'blank': 'Template name is required'},
    )
    mapping = serializers.JSONField(
        required=True,
        error_messages={'required': 'Mapping is required and must be an object'},
    )
    isDefault = serializers.BooleanField(required=False, default=False)
    uploadType = serializers.CharField(required=False, default=UPLOAD_TYPE_WEEKLY)

    def validate_mapping(self, value):
        try:
            return parse_column_mapping(value)
        except ActivityUploadError as exc:
            raise serializers.ValidationError(str(exc)) from exc
