"""
Tests for API dependencies (deps.py).

Covers capability decoding from bearer tokens and participant identification.
"""

from unittest.mock import MagicMock

import pytest
from fastapi.security import HTTPAuthorizationCredentials

from api.deps import (
    ANONYMOUS_CAPABILITY,
    Capability,
    get_capability,
    get_participant,
    require_debate_owner,
    require_operator,
    require_survey_owner,
)
from core.exceptions import UnauthorizedError
from core.identity import SaltedAddressIdentifier
from core.security import DEBATE_ADMIN_TOKEN, SURVEY_ADMIN_TOKEN, create_operator_token, create_owner_token


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


@pytest.mark.unit
class TestGetCapability:
    def test_no_credentials(self) -> None:
        assert get_capability(None) is ANONYMOUS_CAPABILITY

    def test_invalid_token(self) -> None:
        assert get_capability(_bearer("garbage")) is ANONYMOUS_CAPABILITY

    def test_debate_owner_token(self) -> None:
        capability = get_capability(_bearer(create_owner_token(DEBATE_ADMIN_TOKEN, "d1")))

        assert capability.can_manage_debate("d1") is True
        assert capability.can_manage_debate("d2") is False
        assert capability.can_manage_survey("d1") is False
        assert capability.is_operator is False

    def test_survey_owner_token(self) -> None:
        capability = get_capability(_bearer(create_owner_token(SURVEY_ADMIN_TOKEN, "s1")))
        assert capability.can_manage_survey("s1") is True
        assert capability.can_manage_debate("s1") is False

    def test_operator_token(self) -> None:
        capability = get_capability(_bearer(create_operator_token()))
        assert capability.is_operator is True
        assert capability.can_manage_debate("anything") is True
        assert capability.can_manage_survey("anything") is True


@pytest.mark.unit
class TestRequirements:
    def test_require_debate_owner(self) -> None:
        owner = Capability(token_type=DEBATE_ADMIN_TOKEN, target_id="d1")
        assert require_debate_owner("d1", owner) is owner
        with pytest.raises(UnauthorizedError):
            require_debate_owner("d2", owner)

    def test_require_survey_owner(self) -> None:
        with pytest.raises(UnauthorizedError):
            require_survey_owner("s1", ANONYMOUS_CAPABILITY)

    def test_require_operator(self) -> None:
        operator = Capability(is_operator=True)
        assert require_operator(operator) is operator
        with pytest.raises(UnauthorizedError):
            require_operator(Capability(token_type=SURVEY_ADMIN_TOKEN, target_id="s1"))


@pytest.mark.unit
class TestGetParticipant:
    def _request(self, forwarded_for=None, host="127.0.0.1"):
        request = MagicMock()
        request.headers = {"X-Forwarded-For": forwarded_for} if forwarded_for else {}
        request.client = MagicMock(host=host) if host else None
        return request

    def test_same_address_same_hash(self) -> None:
        identifier = SaltedAddressIdentifier("a-salt-that-is-long-enough-0123")
        first = get_participant(self._request("203.0.113.5"), identifier)
        second = get_participant(self._request("203.0.113.5, 10.0.0.2"), identifier)

        assert first.hash == second.hash
        assert "203.0.113.5" not in first.hash
        assert first.unknown_origin is False

    def test_unknown_origin(self) -> None:
        identifier = SaltedAddressIdentifier("a-salt-that-is-long-enough-0123")
        participant = get_participant(self._request(host=None), identifier)

        assert participant.unknown_origin is True
        assert identifier.is_unknown(participant.hash)
