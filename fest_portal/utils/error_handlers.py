from fastapi import Request, status

from fest_portal.utils.responses import ResponseBuilder


# Error code -> HTTP status
ERROR_STATUS_MAPPING = {
    # Identity errors
    "INVALID_CREDENTIALS": status.HTTP_401_UNAUTHORIZED,
    "ACCOUNT_DISABLED": status.HTTP_403_FORBIDDEN,
    "INVALID_CURRENT_PASSWORD": status.HTTP_400_BAD_REQUEST,
    "PASSWORD_UNCHANGED": status.HTTP_400_BAD_REQUEST,
    "USER_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "PROFILE_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "EMAIL_EXISTS": status.HTTP_409_CONFLICT,
    "ROLES_REQUIRED": status.HTTP_400_BAD_REQUEST,
    "STUDENT_ALREADY_LINKED": status.HTTP_409_CONFLICT,
    "CANNOT_REMOVE_OWN_ADMIN_ROLE": status.HTTP_400_BAD_REQUEST,
    # Role errors
    "INVALID_ROLE": status.HTTP_400_BAD_REQUEST,
    "ACTIVE_ROLE_NOT_AVAILABLE": status.HTTP_403_FORBIDDEN,
    "INSUFFICIENT_ROLE": status.HTTP_403_FORBIDDEN,
    # Student errors
    "STUDENT_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "ROLL_NUMBER_EXISTS": status.HTTP_409_CONFLICT,
    "ACADEMIC_YEAR_CHANGE_FORBIDDEN": status.HTTP_403_FORBIDDEN,
    "STUDENT_OUTSIDE_COORDINATOR_YEAR": status.HTTP_403_FORBIDDEN,
    "STUDENT_RECORD_NOT_LINKED": status.HTTP_404_NOT_FOUND,
    # Event errors
    "EVENT_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    # Registration errors
    "REGISTRATION_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "REGISTRATION_CLOSED": status.HTTP_400_BAD_REQUEST,
    "REGISTRATION_METHOD_MISMATCH": status.HTTP_403_FORBIDDEN,
    "DUPLICATE_REGISTRATION": status.HTTP_409_CONFLICT,
    "EVENT_CAPACITY_REACHED": status.HTTP_409_CONFLICT,
    "INVALID_STATUS_TRANSITION": status.HTTP_400_BAD_REQUEST,
    "NO_STUDENTS_SELECTED": status.HTTP_400_BAD_REQUEST,
    # Settings errors
    "INVALID_SETTING_VALUE": status.HTTP_400_BAD_REQUEST,
    "DATABASE_CONSTRAINT_VIOLATION": status.HTTP_400_BAD_REQUEST,
}

# Error code -> user-facing message
ERROR_MESSAGES = {
    # Identity errors
    "INVALID_CREDENTIALS": "Invalid roll number, email or password",
    "ACCOUNT_DISABLED": "This account has been disabled",
    "INVALID_CURRENT_PASSWORD": "Current password is incorrect",
    "PASSWORD_UNCHANGED": "New password must differ from the current password",
    "USER_NOT_FOUND": "User not found",
    "PROFILE_NOT_FOUND": "User profile not found",
    "EMAIL_EXISTS": "An account with this email already exists",
    "ROLES_REQUIRED": "At least one role must be assigned",
    "STUDENT_ALREADY_LINKED": "This student already has a login",
    "CANNOT_REMOVE_OWN_ADMIN_ROLE": "You cannot remove your own administrator role",
    "USERS_RETRIEVAL_FAILED": "Failed to retrieve users",
    # Role errors
    "INVALID_ROLE": "Unknown role",
    "ACTIVE_ROLE_NOT_AVAILABLE": "You do not hold the requested role",
    "INSUFFICIENT_ROLE": "Your active role does not allow this action",
    # Student errors
    "STUDENT_NOT_FOUND": "Student not found",
    "ROLL_NUMBER_EXISTS": "A student with this roll number already exists",
    "ACADEMIC_YEAR_CHANGE_FORBIDDEN": "Only administrators can change a student's academic year",
    "STUDENT_OUTSIDE_COORDINATOR_YEAR": "You can only manage students of the year you coordinate",
    "STUDENT_RECORD_NOT_LINKED": "No student record is linked to this account",
    "STUDENTS_RETRIEVAL_FAILED": "Failed to retrieve students",
    # Event errors
    "EVENT_NOT_FOUND": "Event not found",
    "EVENTS_RETRIEVAL_FAILED": "Failed to retrieve events",
    # Registration errors
    "REGISTRATION_NOT_FOUND": "Registration not found",
    "REGISTRATION_CLOSED": "Registration for this event is closed",
    "REGISTRATION_METHOD_MISMATCH": "This event does not accept registrations from your active role",
    "DUPLICATE_REGISTRATION": "One or more students are already registered for this event",
    "EVENT_CAPACITY_REACHED": "This event has no places left for the selected academic year",
    "INVALID_STATUS_TRANSITION": "Only pending registrations can be approved or rejected",
    "NO_STUDENTS_SELECTED": "Select at least one student",
    "REGISTRATIONS_RETRIEVAL_FAILED": "Failed to retrieve registrations",
    # Settings errors
    "INVALID_SETTING_VALUE": "Invalid setting value",
    "DATABASE_CONSTRAINT_VIOLATION": "Database constraint violation",
}


def handle_service_error(request: Request, error: Exception):
    """Convert a service ``ValueError("ERROR_CODE: detail")`` into an error response"""
    error_message = str(error)

    # Extract error code (format: "ERROR_CODE: message")
    if ":" in error_message:
        error_code, detail = error_message.split(":", 1)
        detail = detail.strip()
    else:
        error_code, detail = error_message, ""

    status_code = ERROR_STATUS_MAPPING.get(
        error_code, status.HTTP_500_INTERNAL_SERVER_ERROR
    )

    if error_code in ERROR_MESSAGES:
        message = ERROR_MESSAGES[error_code]
        # Business rule details name the offending records
        if detail and status_code < status.HTTP_500_INTERNAL_SERVER_ERROR:
            message = f"{message}: {detail}"
    else:
        message = "An unexpected error occurred"

    return ResponseBuilder.error(
        request=request,
        message=message,
        error_code=error_code,
        status_code=status_code,
    )
