from django.db import models

ATTENDANCE_PRESENT = "出席"
UPLOAD_TYPE_WEEKLY = "weekly"


class Member(models.Model):
    STATUS_ACTIVE = "ACTIVE"
    STATUS_INACTIVE = "INACTIVE"

    phone_id = models.CharField(max_length=64, unique=True)
    member_number = models.CharField(max_length=64)
    name = models.CharField(max_length=255, db_index=True)
    industry = models.CharField(max_length=255)
    master = models.CharField(max_length=255, null=True, blank=True)
    join_date = models.DateField()
    status = models.CharField(
        max_length=16,
        default=STATUS_ACTIVE,
        choices=[
            (STATUS_ACTIVE, STATUS_ACTIVE),
            (STATUS_INACTIVE, STATUS_INACTIVE),
        ],
        db_index=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "members"
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.name} ({self.member_number})"


class Term(models.Model):
    term = models.CharField(max_length=255)
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    week_number = models.IntegerField()
    date = models.DateField()
    is_meeting = models.BooleanField(default=True)
    remarks = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "terms"
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.term} week={self.week_number} date={self.date}"


class Activity(models.Model):
    member = models.ForeignKey(Member, on_delete=models.CASCADE, related_name="activities")
    phone_id = models.CharField(max_length=64)
    member_name = models.CharField(max_length=255)
    identity = models.CharField(max_length=64, null=True, blank=True)
    activity_date = models.DateField()

    # Stamped once at ingestion; not recomputed when activity_date is edited.
    week_number = models.IntegerField()
    year = models.IntegerField()

    attendance = models.CharField(max_length=32, default=ATTENDANCE_PRESENT)
    provide_inside_ref = models.IntegerField(default=0)
    provide_outside_ref = models.IntegerField(default=0)
    received_inside_ref = models.IntegerField(default=0)
    received_outside_ref = models.IntegerField(default=0)
    visitors = models.IntegerField(default=0)
    one_to_one_visit = models.IntegerField(default=0)
    tyfcb = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    ceu = models.IntegerField(default=0)

    uploaded_at = models.DateTimeField(auto_now_add=True)
    uploaded_by = models.CharField(max_length=255, blank=True, default="system")

    class Meta:
        db_table = "activities"
        constraints = [
            models.UniqueConstraint(
                fields=["member", "activity_date"],
                name="uniq_activity_member_date",
            ),
        ]
        indexes = [
            models.Index(fields=["week_number", "year"], name="activities_week_year_idx"),
            models.Index(fields=["member", "activity_date"], name="activities_member_date_idx"),
        ]

    @property
    def total_referrals(self) -> int:
        return self.provide_inside_ref + self.provide_outside_ref

    @property
    def is_present(self) -> bool:
        return self.attendance == ATTENDANCE_PRESENT

    def __str__(self):
        return f"activity member={self.member_id} date={self.activity_date}"


class ColumnMappingTemplate(models.Model):
    name = models.CharField(max_length=255)
    upload_type = models.CharField(max_length=32, default=UPLOAD_TYPE_WEEKLY, db_index=True)
    # {canonical field: source column header}
    mapping = models.JSONField(default=dict)
    is_default = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "column_mapping_templates"
        constraints = [
            models.UniqueConstraint(
                fields=["name", "upload_type"],
                name="uniq_mapping_template_name_type",
            ),
        ]

    def __str__(self):
        return f"{self.upload_type}:{self.name}{' (default)' if self.is_default else ''}"


class WeeklyReport(models.Model):
    week_number = models.IntegerField()
    year = models.IntegerField()
    start_date = models.DateField()
    end_date = models.DateField()

    total_members = models.IntegerField(default=0)
    total_inside_referrals = models.IntegerField(default=0)
    total_outside_referrals = models.IntegerField(default=0)
    total_tyfcb = models.DecimalField(max_digits=16, decimal_places=2, default=0)
    total_one_to_one_visits = models.IntegerField(default=0)
    total_visitors = models.IntegerField(default=0)
    total_ceu = models.IntegerField(default=0)
    attendance_rate = models.FloatField(default=0)

    # Leaderboards: [{"member_id": ..., "<metric>": ...}, ...]
    top_referrers = models.JSONField(default=list, blank=True)
    top_tyfcb = models.JSONField(default=list, blank=True)
    top_one_to_ones = models.JSONField(default=list, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "weekly_reports"
        ordering = ["year", "week_number"]
        constraints = [
            models.UniqueConstraint(
                fields=["week_number", "year"],
                name="uniq_weekly_report_week_year",
            ),
        ]

    def __str__(self):
        return f"weekly report {self.year}-W{self.week_number:02d}"


class Insight(models.Model):
    TYPE_PERFORMANCE = "PERFORMANCE"
    TYPE_OPPORTUNITY = "OPPORTUNITY"
    TYPE_RECOMMENDATION = "RECOMMENDATION"
    TYPE_PATTERN = "PATTERN"

    member = models.ForeignKey(Member, on_delete=models.CASCADE, related_name="insights")
    insight_type = models.CharField(
        max_length=20,
        choices=[
            (TYPE_PERFORMANCE, TYPE_PERFORMANCE),
            (TYPE_OPPORTUNITY, TYPE_OPPORTUNITY),
            (TYPE_RECOMMENDATION, TYPE_RECOMMENDATION),
            (TYPE_PATTERN, TYPE_PATTERN),
        ],
    )
    title = models.CharField(max_length=255)
    content = models.TextField()
    recommendations = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "insights"
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.insight_type}: {self.title}"
