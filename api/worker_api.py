"""
Worker self-service calls: incidents, change requests and password management.
"""
from datetime import date, datetime

from api.session_api import SessionManager, call_backend, parse_model
from config import (
    CHANGE_PASSWORD_URL,
    CHANGE_REQUESTS_URL,
    FORGOT_PASSWORD_URL,
    INCIDENTS_URL,
    PENDING_CHANGE_REQUEST_URL,
    RESET_PASSWORD_URL,
)
from core.models import ChangeRequest, Incident, PendingCheck, WorkerIdentity
from utils.datetime_conversion import to_utc_iso
from utils.logger import logger


class WorkerAPI:
    def __init__(self, session: SessionManager):
        self.session = session

    def create_incident(self, worker: WorkerIdentity, description: str) -> Incident:
        data = call_backend(
            self.session,
            "POST",
            INCIDENTS_URL,
            {
                400: "Bad request. Please check your input.",
                401: "Invalid worker credentials.",
                404: "Worker not found.",
            },
            "An unexpected error occurred.",
            json={**worker.as_payload(), "description": description},
        )
        incident = parse_model(data, Incident.from_payload)
        logger.info("Incident %s filed", incident.id)
        return incident

    def check_pending_change_request(self, worker: WorkerIdentity) -> PendingCheck:
        data = call_backend(
            self.session,
            "POST",
            PENDING_CHANGE_REQUEST_URL,
            {401: "Invalid credentials.", 404: "Worker not found."},
            "Error checking pending requests.",
            json=worker.as_payload(),
        )
        return parse_model(data, PendingCheck.from_payload)

    def create_change_request(
        self,
        worker: WorkerIdentity,
        day: date,
        company_id: str,
        time_record_id: str,
        new_timestamp: datetime,
        reason: str,
    ) -> ChangeRequest:
        """
        Propose a new timestamp for an existing entry/exit record.

        ``new_timestamp`` must already be a UTC instant; the backend decides
        whether the change is accepted.
        """
        payload = {
            **worker.as_payload(),
            "date": day.isoformat(),
            "company_id": company_id,
            "time_record_id": time_record_id,
            "new_timestamp": to_utc_iso(new_timestamp),
            "reason": reason,
        }
        data = call_backend(
            self.session,
            "POST",
            CHANGE_REQUESTS_URL,
            {
                400: "Invalid data. Please check your input.",
                401: "Invalid credentials.",
                404: "Record not found or does not belong to this worker.",
            },
            "Error creating the change request.",
            json=payload,
        )
        request = parse_model(data, ChangeRequest.from_payload)
        logger.info("Change request %s created for record %s", request.id, time_record_id)
        return request

    def change_password(self, email: str, current_password: str, new_password: str) -> str:
        data = call_backend(
            self.session,
            "PATCH",
            CHANGE_PASSWORD_URL,
            {400: "The new password is not valid.", 401: "Current password is incorrect."},
            "Unexpected error while changing the password.",
            json={"email": email, "current_password": current_password, "new_password": new_password},
        )
        return _message(data, "Password changed.")

    def forgot_password(self, email: str) -> str:
        data = call_backend(
            self.session,
            "POST",
            FORGOT_PASSWORD_URL,
            {429: "Too many attempts. Please wait an hour."},
            "Error processing the request.",
            json={"email": email},
        )
        return _message(data, "If the email exists, a recovery link has been sent.")

    def reset_password(self, token: str, new_password: str) -> str:
        data = call_backend(
            self.session,
            "POST",
            RESET_PASSWORD_URL,
            {400: "The recovery link is invalid or has expired."},
            "Error resetting the password.",
            json={"token": token, "new_password": new_password},
        )
        return _message(data, "Password reset.")


def _message(data, fallback: str) -> str:
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return fallback
