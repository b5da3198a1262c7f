from rest_framework import status
from rest_framework.response import Response

from marketplace.services.base import ErrorCodes, ServiceResult

ERROR_STATUS = {
    ErrorCodes.GIG_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCodes.ORDER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCodes.NOT_ORDER_PARTY: status.HTTP_403_FORBIDDEN,
    ErrorCodes.INVALID_ORDER_STATE: status.HTTP_400_BAD_REQUEST,
    ErrorCodes.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorCodes.INVALID_SIGNATURE: status.HTTP_400_BAD_REQUEST,
    ErrorCodes.MISSING_METADATA: status.HTTP_400_BAD_REQUEST,
    ErrorCodes.PAYMENT_NOT_COMPLETED: status.HTTP_400_BAD_REQUEST,
    ErrorCodes.PAYMENT_PROVIDER_ERROR: status.HTTP_502_BAD_GATEWAY,
    ErrorCodes.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def error_response(result: ServiceResult) -> Response:
    """Translate a failed ServiceResult into a {"detail", "code"} response."""
    http_status = ERROR_STATUS.get(result.error, status.HTTP_500_INTERNAL_SERVER_ERROR)
    return Response({"detail": result.error_detail, "code": result.error}, status=http_status)


def invalid_body_response(serializer) -> Response:
    """Reject a request body that failed serializer validation as invalid_input."""
    field, messages = next(iter(serializer.errors.items()))
    detail = str(messages[0]) if field == "non_field_errors" else f"{field}: {messages[0]}"
    return Response({"detail": detail, "code": ErrorCodes.INVALID_INPUT}, status=status.HTTP_400_BAD_REQUEST)
