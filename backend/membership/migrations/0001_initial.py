from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Member',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('phone_id', models.CharField(max_length=64, unique=True)),
                ('member_number', models.CharField(max_length=64)),
                ('name', models.CharField(db_index=True, max_length=255)),
                ('industry', models.CharField(max_length=255)),
                ('master', models.CharField(blank=True, max_length=255, null=True)),
                ('join_date', models.DateField()),
                ('status', models.CharField(choices=[('ACTIVE', 'ACTIVE'), ('INACTIVE', 'INACTIVE')], db_index=True, default='ACTIVE', max_length=16)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'members',
                'ordering': ['-created_at', '-id'],
            },
        ),
        migrations.CreateModel(
            name='Term',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('term', models.CharField(max_length=255)),
                ('start_time', models.DateTimeField()),
                ('end_time', models.DateTimeField()),
                ('week_number', models.IntegerField()),
                ('date', models.DateField()),
                ('is_meeting', models.BooleanField(default=True)),
                ('remarks', models.TextField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'db_table': 'terms',
                'ordering': ['-created_at', '-id'],
            },
        ),
        migrations.CreateModel(
            name='ColumnMappingTemplate',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('upload_type', models.CharField(db_index=True, default='weekly', max_length=32)),
                ('mapping', models.JSONField(default=dict)),
                ('is_default', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'column_mapping_templates',
                'constraints': [
                    models.UniqueConstraint(fields=('name', 'upload_type'), name='uniq_mapping_template_name_type'),
                ],
            },
        ),
        migrations.CreateModel(
            name='WeeklyReport',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('week_number', models.IntegerField()),
                ('year', models.IntegerField()),
                ('start_date', models.DateField()),
                ('end_date', models.DateField()),
                ('total_members', models.IntegerField(default=0)),
                ('total_inside_referrals', models.IntegerField(default=0)),
                ('total_outside_referrals', models.IntegerField(default=0)),
                ('total_tyfcb', models.DecimalField(decimal_places=2, default=0, max_digits=16)),
                ('total_one_to_one_visits', models.IntegerField(default=0)),
                ('total_visitors', models.IntegerField(default=0)),
                ('total_ceu', models.IntegerField(default=0)),
                ('attendance_rate', models.FloatField(default=0)),
                ('top_referrers', models.JSONField(blank=True, default=list)),
                ('top_tyfcb', models.JSONField(blank=True, default=list)),
                ('top_one_to_ones', models.JSONField(blank=True, default=list)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'weekly_reports',
                'ordering': ['year', 'week_number'],
                'constraints': [
                    models.UniqueConstraint(fields=('week_number', 'year'), name='uniq_weekly_report_week_year'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Activity',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('phone_id', models.CharField(max_length=64)),
                ('member_name', models.CharField(max_length=255)),
                ('identity', models.CharField(blank=True, max_length=64, null=True)),
                ('activity_date', models.DateField()),
                ('week_number', models.IntegerField()),
                ('year', models.IntegerField()),
                ('attendance', models.CharField(default='出席', max_length=32)),
                ('provide_inside_ref', models.IntegerField(default=0)),
                ('provide_outside_ref', models.IntegerField(default=0)),
                ('received_inside_ref', models.IntegerField(default=0)),
                ('received_outside_ref', models.IntegerField(default=0)),
                ('visitors', models.IntegerField(default=0)),
                ('one_to_one_visit', models.IntegerField(default=0)),
                ('tyfcb', models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ('ceu', models.IntegerField(default=0)),
                ('uploaded_at', models.DateTimeField(auto_now_add=True)),
                ('uploaded_by', models.CharField(blank=True, default='system', max_length=255)),
                ('member', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='activities', to='membership.member')),
            ],
            options={
                'db_table': 'activities',
                'indexes': [
                    models.Index(fields=['week_number', 'year'], name='activities_week_year_idx'),
                    models.Index(fields=['member', 'activity_date'], name='activities_member_date_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('member', 'activity_date'), name='uniq_activity_member_date'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Insight',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('insight_type', models.CharField(choices=[('PERFORMANCE', 'PERFORMANCE'), ('OPPORTUNITY', 'OPPORTUNITY'), ('RECOMMENDATION', 'RECOMMENDATION'), ('PATTERN', 'PATTERN')], max_length=20)),
                ('title', models.CharField(max_length=255)),
                ('content', models.TextField()),
                ('recommendations', models.JSONField(blank=True, default=list)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('member', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='insights', to='membership.member')),
            ],
            options={
                'db_table': 'insights',
                'ordering': ['-created_at', '-id'],
            },
        ),
    ]
