# Generated manually for the Secret Santa engine

import uuid
from decimal import Decimal
from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import migrations, models
import django.db.models.deletion

import apps.secret_santa.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Event',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('title', models.CharField(max_length=100)),
                ('draw_date', models.DateTimeField()),
                ('exchange_date', models.DateTimeField()),
                ('budget', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True, validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('100000'))])),
                ('currency', models.CharField(default=apps.secret_santa.models.default_currency, max_length=3)),
                ('status', models.CharField(choices=[('PENDING', 'Pending'), ('DRAWN', 'Drawn'), ('IN_PROGRESS', 'In progress'), ('COMPLETED', 'Completed')], default='PENDING', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('organizer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='organized_secret_santa_events', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'secret_santa_events',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['organizer', 'created_at'], name='ss_event_organizer_idx'),
                    models.Index(fields=['status'], name='ss_event_status_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('draw_date__lt', models.F('exchange_date'))), name='ss_event_draw_before_exchange'),
                    models.CheckConstraint(condition=models.Q(('budget__isnull', True), ('budget__gte', 0), _connector='OR'), name='ss_event_budget_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Participant',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('status', models.CharField(choices=[('INVITED', 'Invited'), ('ACCEPTED', 'Accepted'), ('DECLINED', 'Declined')], default='INVITED', max_length=20)),
                ('is_organizer', models.BooleanField(default=False)),
                ('invited_at', models.DateTimeField(auto_now_add=True)),
                ('responded_at', models.DateTimeField(blank=True, null=True)),
                ('event', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='participants', to='secret_santa.event')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='secret_santa_participations', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'secret_santa_participants',
                'ordering': ['-is_organizer', 'invited_at'],
                'indexes': [
                    models.Index(fields=['event', 'status'], name='ss_participant_status_idx'),
                    models.Index(fields=['user', 'status'], name='ss_participant_user_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('event', 'user'), name='ss_participant_unique_user'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Assignment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('revealed', models.BooleanField(default=False)),
                ('revealed_at', models.DateTimeField(blank=True, null=True)),
                ('gift_done', models.BooleanField(default=False)),
                ('gift_done_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('event', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='assignments', to='secret_santa.event')),
                ('giver', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='secret_santa_given', to=settings.AUTH_USER_MODEL)),
                ('receiver', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='secret_santa_received', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'secret_santa_assignments',
                'constraints': [
                    models.UniqueConstraint(fields=('event', 'giver'), name='ss_assignment_unique_giver'),
                    models.UniqueConstraint(fields=('event', 'receiver'), name='ss_assignment_unique_receiver'),
                    models.CheckConstraint(condition=models.Q(('giver', models.F('receiver')), _negated=True), name='ss_assignment_no_self_gift'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ExclusionRule',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('event', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='exclusions', to='secret_santa.event')),
                ('giver', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('receiver', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'secret_santa_exclusions',
                'ordering': ['created_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('event', 'giver', 'receiver'), name='ss_exclusion_unique_pair'),
                    models.CheckConstraint(condition=models.Q(('giver', models.F('receiver')), _negated=True), name='ss_exclusion_distinct_users'),
                ],
            },
        ),
        migrations.CreateModel(
            name='EventActivity',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('kind', models.CharField(choices=[('EVENT_CREATED', 'Event created'), ('EVENT_UPDATED', 'Event updated'), ('PARTICIPANT_INVITED', 'Participant invited'), ('PARTICIPANT_RESPONDED', 'Participant responded'), ('PARTICIPANT_REMOVED', 'Participant removed'), ('NAMES_DRAWN', 'Names drawn'), ('NAMES_REDRAWN', 'Names redrawn'), ('ASSIGNMENT_REVEALED', 'Assignment revealed'), ('GIFT_MARKED_DONE', 'Gift marked done'), ('EVENT_COMPLETED', 'Event completed')], max_length=40)),
                ('payload', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('event', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='activity', to='secret_santa.event')),
                ('actor', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('subject', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'secret_santa_activity',
                'ordering': ['created_at'],
                'indexes': [
                    models.Index(fields=['event', 'created_at'], name='ss_activity_event_idx'),
                ],
            },
        ),
    ]
