"""Tests for standardized error handling."""

from fastapi import FastAPI
from fastapi.testclient import TestClient


class TestAPIErrors:
    """Test custom API error classes."""

    def test_not_found_error_defaults(self):
        from meetgrid.errors import NotFoundError

        error = NotFoundError()
        assert error.status_code == 404
        assert error.error == "not_found"
        assert error.detail == "Resource not found"

    def test_not_found_error_with_context(self):
        from meetgrid.errors import NotFoundError

        error = NotFoundError(detail="Event not found", event_id="abc123")
        assert error.detail == "Event not found"
        assert error.context == {"event_id": "abc123"}

    def test_name_locked_is_forbidden(self):
        from meetgrid.errors import ForbiddenError, NameLockedError

        error = NameLockedError(name="Alice")
        assert isinstance(error, ForbiddenError)
        assert error.status_code == 403
        assert error.error == "name_locked"
        assert error.context == {"name": "Alice"}

    def test_validation_error(self):
        from meetgrid.errors import ValidationError

        error = ValidationError(error_code="password_required")
        assert error.status_code == 422
        assert error.error == "validation_error"
        assert error.error_code == "password_required"

    def test_remote_failure_is_database_error(self):
        from meetgrid.errors import DatabaseError, RemoteFailure

        error = RemoteFailure()
        assert isinstance(error, DatabaseError)
        assert error.status_code == 500
        assert error.error == "remote_failure"

    def test_gesture_lock_failure_message(self):
        from meetgrid.errors import GestureLockFailure

        error = GestureLockFailure(42.0, 30.0)
        assert error.jump_px == 42.0
        assert "42.0px" in str(error)


class TestErrorResponse:
    def test_error_response_minimal(self):
        from meetgrid.errors import ErrorResponse

        response = ErrorResponse(error="internal_error")
        assert response.model_dump(exclude_none=True) == {"error": "internal_error"}

    def test_api_error_to_response(self):
        from meetgrid.errors import NotFoundError

        response = NotFoundError(detail="Not found", event_id="abc").to_response()
        assert response.error == "not_found"
        assert response.detail == "Not found"
        assert response.context == {"event_id": "abc"}


class TestExceptionHandlers:
    """Test exception handlers integration."""

    def _client(self, exc):
        from meetgrid.errors import register_exception_handlers

        app = FastAPI()
        register_exception_handlers(app)

        @app.get("/boom")
        async def boom():
            raise exc

        return TestClient(app, raise_server_exceptions=False)

    def test_api_error_handler_integration(self):
        from meetgrid.errors import NameLockedError

        response = self._client(NameLockedError()).get("/boom")
        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "name_locked"
        assert "context" not in body

    def test_service_unavailable_handler(self):
        from meetgrid.errors import ServiceUnavailableError

        response = self._client(ServiceUnavailableError(detail="Redis offline")).get("/boom")
        assert response.status_code == 503
        assert response.json()["error"] == "service_unavailable"

    def test_unhandled_exception(self):
        response = self._client(RuntimeError("oops")).get("/boom")
        assert response.status_code == 500
        assert response.json() == {"error": "internal_error", "detail": "An unexpected error occurred"}


class TestStatusToErrorType:
    def test_common_status_codes(self):
        from meetgrid.errors import _status_to_error_type

        assert _status_to_error_type(400) == "bad_request"
        assert _status_to_error_type(403) == "forbidden"
        assert _status_to_error_type(404) == "not_found"
        assert _status_to_error_type(422) == "validation_error"
        assert _status_to_error_type(503) == "service_unavailable"

    def test_unknown_status_code(self):
        from meetgrid.errors import _status_to_error_type

        assert _status_to_error_type(418) == "error"
