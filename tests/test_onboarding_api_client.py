"""
TierPath Onboarding - Onboarding API Client Tests

Tests for the GraphQL client against a mocked HTTP transport.
"""

import json

import httpx
import pytest

from tierpath.services.onboarding_api_client import OnboardingAPIClient
from tierpath.utils.error_handling import OnboardingAPIException

API_URL = "http://onboarding.test/graphql"


def make_client(handler, token=None) -> OnboardingAPIClient:
    return OnboardingAPIClient(API_URL, token=token, transport=httpx.MockTransport(handler))


class TestRequests:
    """Test what the client sends."""

    @pytest.mark.asyncio
    async def test_posts_graphql_payload(self):
        """Test the GraphQL payload and bearer header."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": {"currentTier": {"tier": "medium"}}})

        client = make_client(handler, token="secret")
        tier = await client.get_current_tier("user-1")
        await client.close()

        assert tier == "medium"
        assert seen["url"] == API_URL
        assert seen["auth"] == "Bearer secret"
        assert seen["body"]["operationName"] == "GetCurrentTier"
        assert seen["body"]["variables"] == {"userId": "user-1"}
        assert "currentTier(userId: $userId)" in seen["body"]["query"]

    @pytest.mark.asyncio
    async def test_no_auth_header_without_token(self):
        """Test no auth header is sent without a token."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"data": {"onboardingStatus": {"currentStep": 1}}})

        client = make_client(handler)
        status = await client.get_onboarding_status("user-1")

        assert status == {"currentStep": 1}
        assert seen["auth"] is None

    @pytest.mark.asyncio
    async def test_step_update_flattens_data_into_input(self):
        """Test step data is flattened into the mutation input."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": {"updateOnboardingStep": {"currentStep": 1}}})

        client = make_client(handler)
        await client.update_onboarding_step("user-1", "business_profile", {"businessName": "Corner Shop"})

        assert seen["body"]["variables"]["input"] == {
            "userId": "user-1",
            "step": "business_profile",
            "businessName": "Corner Shop",
        }

    @pytest.mark.asyncio
    async def test_resume_from_failure_input(self):
        """Test the resume-from-failure input."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": {"resumeOnboardingFromFailure": {"success": True}}})

        client = make_client(handler)
        result = await client.resume_from_failure("recovery_1", "plan_selection", {"selectedPlan": "small"})

        assert result == {"success": True}
        assert seen["body"]["variables"]["input"] == {
            "recoverySessionId": "recovery_1",
            "resumeFromStep": "plan_selection",
            "onboardingData": {"selectedPlan": "small"},
        }


class TestResponses:
    """Test empty and missing results."""

    @pytest.mark.asyncio
    async def test_missing_recovery_session_is_none(self):
        """Test a missing recovery session reads as None."""
        client = make_client(lambda request: httpx.Response(200, json={"data": {"recoverySession": None}}))

        assert await client.get_recovery_session("recovery_1") is None

    @pytest.mark.asyncio
    async def test_no_active_sessions_is_empty_list(self):
        """Test no active sessions reads as an empty list."""
        client = make_client(lambda request: httpx.Response(200, json={"data": {"activeRecoverySessions": None}}))

        assert await client.get_active_recovery_sessions("user-1") == []

    @pytest.mark.asyncio
    async def test_validation_defaults_to_valid(self):
        """Test validation results default to valid."""
        client = make_client(lambda request: httpx.Response(200, json={"data": {}}))

        assert await client.validate_step_data("business_profile", {}) == {"isValid": True, "errors": {}}


class TestFailures:
    """Test that every failure becomes an OnboardingAPIException with a textual reason."""

    @pytest.mark.asyncio
    async def test_graphql_error_with_field_errors(self):
        """Test GraphQL errors expose field errors."""
        body = {
            "errors": [{
                "message": "Validation failed",
                "extensions": {"errors": {"businessName": ["Business name already taken"]}},
            }],
        }
        client = make_client(lambda request: httpx.Response(200, json=body))

        with pytest.raises(OnboardingAPIException) as exc_info:
            await client.update_onboarding_step("user-1", "business_profile", {})

        assert exc_info.value.message == "Validation failed"
        assert exc_info.value.field_errors == {"businessName": ["Business name already taken"]}
        assert exc_info.value.operation == "UpdateOnboardingStep"

    @pytest.mark.asyncio
    async def test_server_error(self):
        """Test 5xx responses become server errors."""
        client = make_client(lambda request: httpx.Response(503, text="unavailable"))

        with pytest.raises(OnboardingAPIException) as exc_info:
            await client.get_onboarding_status("user-1")

        assert exc_info.value.message == "Server error (503): internal error"

    @pytest.mark.asyncio
    async def test_client_error(self):
        """Test 4xx responses become rejected requests."""
        client = make_client(lambda request: httpx.Response(400, text="bad"))

        with pytest.raises(OnboardingAPIException) as exc_info:
            await client.get_onboarding_status("user-1")

        assert exc_info.value.message == "Request rejected (400): invalid request"

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test timeouts are reported as such."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler)

        with pytest.raises(OnboardingAPIException) as exc_info:
            await client.get_onboarding_status("user-1")

        assert exc_info.value.message == "Request timeout - onboarding API did not respond in time"

    @pytest.mark.asyncio
    async def test_network_error(self):
        """Test transport failures are network errors."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        with pytest.raises(OnboardingAPIException) as exc_info:
            await client.get_onboarding_status("user-1")

        assert exc_info.value.message == "Network error: connection refused"

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        """Test an unreadable response body."""
        client = make_client(lambda request: httpx.Response(200, content=b"<html>"))

        with pytest.raises(OnboardingAPIException) as exc_info:
            await client.get_onboarding_status("user-1")

        assert exc_info.value.message == "Invalid JSON response from onboarding API"


class TestSettings:
    """Test construction from settings."""

    def test_from_settings(self, settings):
        """Test building the client from settings."""
        client = OnboardingAPIClient.from_settings(settings)

        assert client.url == settings.onboarding_api_url
        assert client.timeout == settings.onboarding_api_timeout
        assert client.token == settings.onboarding_api_token
