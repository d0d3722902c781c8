import logging

from django.http import Http404
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


def _first_message(data):
    if isinstance(data, dict):
        if 'detail' in data:
            return _first_message(data['detail'])
        for value in data.values():
            return _first_message(value)
        return ''
    if isinstance(data, (list, tuple)):
        return _first_message(data[0]) if data else ''
    return str(data)


def error_exception_handler(exc, context):
    """Answer every failure as ``{"error": "<message>"}``.

    Validation failures keep their per-field messages under ``fields``.
    Anything DRF does not know how to render is logged and answered with 500.
    """
    response = exception_handler(exc, context)

    if response is None:
        view = context.get('view')
        logger.exception('Unhandled error in %s', type(view).__name__ if view else 'view', exc_info=exc)
        return Response({'error': 'Internal server error'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    payload = {'error': _first_message(response.data) or 'Request failed'}
    if isinstance(response.data, dict) and 'detail' not in response.data and not isinstance(exc, Http404):
        payload['fields'] = response.data
    response.data = payload
    return response
