"""
Contact Submission Views

Admin API endpoints for triaging contact form submissions.
"""
from asgiref.sync import async_to_sync
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.authentication import OperatorTokenAuthentication

from .permissions import IsOperatorSession
from .serializers import (
    ContactStatsSerializer,
    SubmissionDetailSerializer,
    SubmissionListQuerySerializer,
    SubmissionListSerializer,
    SubmissionStatusUpdateSerializer,
)
from .services import get_statistics_aggregator, get_submission_repository

RECENT_SUBMISSIONS = 5


def validation_error(errors):
    return Response(
        {'success': False, 'error': 'Validation failed', 'code': 'validation_error', 'fields': errors},
        status=status.HTTP_400_BAD_REQUEST
    )


class ContactSubmissionListView(APIView):
    """
    List contact submissions, newest first.

    GET /api/admin/contact-submissions/

    Query Parameters:
    - status: unread, read, replied, archived, or all
    - search: Search in name, email or subject
    - start_date / end_date: Inclusive creation-date range (YYYY-MM-DD)
    - page: Page number (default: 1)
    - page_size: Items per page (default: CONTACT_ADMIN_DEFAULT_PAGE_SIZE)
    """

    authentication_classes = [OperatorTokenAuthentication]
    permission_classes = [IsOperatorSession]

    def get(self, request):
        query = SubmissionListQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return validation_error(query.errors)

        result = async_to_sync(get_submission_repository().list)(
            query.to_page_request(),
            query.to_filter_spec(),
        )

        return Response({
            'count': result.total_count,
            'total_pages': result.total_pages,
            'page': result.page,
            'page_size': result.page_size,
            'has_next': result.has_next,
            'has_previous': result.has_previous,
            'results': SubmissionListSerializer(result.items, many=True).data,
        })


class ContactSubmissionDetailView(APIView):
    """
    Single submission: view, change status, or delete.

    GET    /api/admin/contact-submissions/:id/
    PATCH  /api/admin/contact-submissions/:id/   {"status": "read"}
    DELETE /api/admin/contact-submissions/:id/
    """

    authentication_classes = [OperatorTokenAuthentication]
    permission_classes = [IsOperatorSession]

    def get(self, request, id):
        submission = async_to_sync(get_submission_repository().get)(id)
        return Response(SubmissionDetailSerializer(submission).data)

    def patch(self, request, id):
        serializer = SubmissionStatusUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error(serializer.errors)

        submission = async_to_sync(get_submission_repository().update_status)(
            id, serializer.validated_data['status']
        )
        return Response(SubmissionDetailSerializer(submission).data)

    def delete(self, request, id):
        async_to_sync(get_submission_repository().delete)(id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ContactSubmissionActionView(APIView):
    """
    One-click status actions.

    POST /api/admin/contact-submissions/:id/mark-read/
    POST /api/admin/contact-submissions/:id/mark-replied/
    POST /api/admin/contact-submissions/:id/archive/
    """

    authentication_classes = [OperatorTokenAuthentication]
    permission_classes = [IsOperatorSession]
    action = None

    def post(self, request, id):
        repository = get_submission_repository()
        submission = async_to_sync(getattr(repository, self.action))(id)
        return Response(SubmissionDetailSerializer(submission).data)


class ContactStatsView(APIView):
    """
    Dashboard statistics plus the most recent submissions.

    GET /api/admin/contact-stats/
    """

    authentication_classes = [OperatorTokenAuthentication]
    permission_classes = [IsOperatorSession]

    def get(self, request):
        snapshot = async_to_sync(get_statistics_aggregator().compute)()
        recent = async_to_sync(get_submission_repository().recent)(RECENT_SUBMISSIONS)

        stats = {
            'total': snapshot.total,
            'unread': snapshot.unread,
            'replied': snapshot.replied,
            'last_24_hours': snapshot.last_24_hours,
            'last_7_days': snapshot.last_7_days,
            'daily_counts': snapshot.daily_counts,
            'recent_submissions': recent,
        }

        serializer = ContactStatsSerializer(stats)
        return Response(serializer.data)
