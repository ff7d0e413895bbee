"""
Contact Submission Serializers

Query-parameter validation and response rendering for the admin API.
"""
from datetime import datetime, time

from django.conf import settings
from django.utils import timezone
from rest_framework import serializers

from .domain import FilterSpec, PageRequest, SubmissionStatus

STATUS_LABELS = dict(SubmissionStatus.CHOICES)

PREVIEW_LENGTH = 120


class SubmissionListQuerySerializer(serializers.Serializer):
    """
    Validates listing query parameters.

    start_date/end_date are calendar days in the server time zone; both
    bounds are inclusive.
    """

    page = serializers.IntegerField(required=False, default=1, min_value=1)

    page_size = serializers.IntegerField(required=False, min_value=1)

    status = serializers.ChoiceField(
        choices=SubmissionStatus.CHOICES + [(SubmissionStatus.ALL, 'All')],
        required=False,
        allow_blank=True,
        help_text="Exact status match; 'all' or blank for every status"
    )

    search = serializers.CharField(
        required=False,
        allow_blank=True,
        max_length=200,
        help_text="Case-insensitive match on name, email or subject"
    )

    start_date = serializers.DateField(required=False)

    end_date = serializers.DateField(required=False)

    def validate_page_size(self, value):
        max_size = settings.CONTACT_ADMIN_MAX_PAGE_SIZE
        if value > max_size:
            raise serializers.ValidationError(f"Must be at most {max_size}")
        return value

    def validate(self, attrs):
        start, end = attrs.get('start_date'), attrs.get('end_date')
        if start and end and start > end:
            raise serializers.ValidationError({'start_date': 'Must not be after end_date'})
        return attrs

    def to_page_request(self) -> PageRequest:
        data = self.validated_data
        return PageRequest(
            page=data.get('page', 1),
            page_size=data.get('page_size') or settings.CONTACT_ADMIN_DEFAULT_PAGE_SIZE,
        )

    def to_filter_spec(self) -> FilterSpec:
        data = self.validated_data
        start, end = data.get('start_date'), data.get('end_date')
        date_range = None
        if start or end:
            tz = timezone.get_current_timezone()
            date_range = (
                timezone.make_aware(datetime.combine(start, time.min), tz) if start else None,
                timezone.make_aware(datetime.combine(end, time.max), tz) if end else None,
            )
        return FilterSpec(
            status=data.get('status') or None,
            search=data.get('search') or None,
            date_range=date_range,
        )


class SubmissionListSerializer(serializers.Serializer):
    """
    Serializer for listing submissions in the admin.
    """

    id = serializers.CharField()
    name = serializers.CharField()
    email = serializers.EmailField()
    subject = serializers.CharField(allow_null=True)
    status = serializers.CharField()
    status_display = serializers.SerializerMethodField()
    message_preview = serializers.SerializerMethodField()
    is_unread = serializers.BooleanField()
    created_at = serializers.DateTimeField()
    updated_at = serializers.DateTimeField(allow_null=True)

    def get_status_display(self, obj):
        return STATUS_LABELS.get(obj.status, obj.status)

    def get_message_preview(self, obj):
        message = obj.message or ''
        if len(message) <= PREVIEW_LENGTH:
            return message
        return message[:PREVIEW_LENGTH].rstrip() + '...'


class SubmissionDetailSerializer(SubmissionListSerializer):
    """
    Detailed serializer for a single submission.
    """

    message = serializers.CharField()


class SubmissionStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=SubmissionStatus.CHOICES)


class DailyCountSerializer(serializers.Serializer):
    date = serializers.DateField()
    count = serializers.IntegerField()


class ContactStatsSerializer(serializers.Serializer):
    """
    Serializer for dashboard statistics.
    """

    total = serializers.IntegerField()
    unread = serializers.IntegerField()
    replied = serializers.IntegerField()
    last_24_hours = serializers.IntegerField()
    last_7_days = serializers.IntegerField()
    daily_counts = serializers.SerializerMethodField()
    recent_submissions = SubmissionListSerializer(many=True)

    def get_daily_counts(self, obj):
        return DailyCountSerializer(
            [{'date': day, 'count': count} for day, count in obj['daily_counts']],
            many=True,
        ).data
