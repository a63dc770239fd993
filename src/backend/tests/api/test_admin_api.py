"""
Tests for operator endpoints.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient

from conftest import FIXED_NOW, TEST_PASSWORD, cached_password_hash, make_questions
from core.config import settings
from core.security import SURVEY_ADMIN_TOKEN, create_owner_token

BOB = {"X-Forwarded-For": "192.0.2.7"}


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def operator_password(monkeypatch) -> str:
    monkeypatch.setattr(settings, "OPERATOR_PASSWORD_HASH", cached_password_hash())
    return TEST_PASSWORD


@pytest.fixture
async def operator_token(client: AsyncClient, operator_password: str) -> str:
    response = await client.post("/api/v1/admin/auth", json={"password": operator_password})
    assert response.status_code == 200
    return response.json()["token"]


async def _debate(client: AsyncClient) -> dict:
    response = await client.post(
        "/api/v1/debates",
        json={
            "title": "Remote or office?",
            "admin_password": TEST_PASSWORD,
            "vote_options": ["Remote", "Office"],
            "end_at": (FIXED_NOW + timedelta(days=1)).isoformat(),
        },
    )
    return response.json()


async def _survey(client: AsyncClient) -> dict:
    response = await client.post(
        "/api/v1/surveys",
        json={
            "title": "Lunch poll",
            "admin_password": TEST_PASSWORD,
            "questions": [q.model_dump(mode="json") for q in make_questions()],
        },
    )
    return response.json()


@pytest.mark.unit
class TestOperatorLogin:
    async def test_login_disabled_without_hash(self, client: AsyncClient, monkeypatch) -> None:
        monkeypatch.setattr(settings, "OPERATOR_PASSWORD_HASH", None)
        response = await client.post("/api/v1/admin/auth", json={"password": TEST_PASSWORD})
        assert response.status_code == 401

    async def test_wrong_password(self, client: AsyncClient, operator_password: str) -> None:
        response = await client.post("/api/v1/admin/auth", json={"password": "guess-guess"})
        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    async def test_login(self, client: AsyncClient, operator_password: str) -> None:
        response = await client.post("/api/v1/admin/auth", json={"password": operator_password})
        assert response.json()["expires_in"] == 8 * 3600


@pytest.mark.unit
class TestDebateOverride:
    async def test_override_and_clear(self, client: AsyncClient, operator_token: str) -> None:
        debate = await _debate(client)
        detail = (await client.get(f"/api/v1/debates/{debate['id']}", headers=BOB)).json()
        office = detail["vote_options"][1]["id"]
        await client.post(f"/api/v1/debates/{debate['id']}/vote", json={"option_ids": [office]}, headers=BOB)

        overridden = await client.put(
            f"/api/v1/admin/debates/{debate['id']}/results",
            json={"agree_count": 30, "disagree_count": 10},
            headers=_auth(operator_token),
        )
        assert overridden.status_code == 200
        assert overridden.json()["source"] == "admin_override"
        assert [o["percentage"] for o in overridden.json()["options"]] == [75, 25]

        public = (await client.get(f"/api/v1/debates/{debate['id']}/results")).json()
        assert public["total_votes"] == 40

        cleared = await client.delete(f"/api/v1/admin/debates/{debate['id']}/results", headers=_auth(operator_token))
        assert cleared.json()["source"] == "computed"
        assert cleared.json()["total_votes"] == 1

    async def test_requires_operator(self, client: AsyncClient) -> None:
        debate = await _debate(client)

        anonymous = await client.put(f"/api/v1/admin/debates/{debate['id']}/results", json={"agree_count": 1})
        assert anonymous.status_code == 401

        owner = await client.put(
            f"/api/v1/admin/debates/{debate['id']}/results",
            json={"agree_count": 1},
            headers=_auth(debate["admin_token"]),
        )
        assert owner.status_code == 401

    async def test_operator_can_manage_any_debate(self, client: AsyncClient, operator_token: str) -> None:
        debate = await _debate(client)
        response = await client.patch(
            f"/api/v1/debates/{debate['id']}", json={"is_hidden": True}, headers=_auth(operator_token)
        )
        assert response.status_code == 200
        assert response.json()["is_hidden"] is True


@pytest.mark.unit
class TestSurveyOverride:
    async def test_override_locks_questions(self, client: AsyncClient, operator_token: str) -> None:
        survey = await _survey(client)

        overridden = await client.put(
            f"/api/v1/admin/surveys/{survey['id']}/results",
            json={"questions": {"q1": {"total_responses": 4, "choices": {"c1": 3, "c2": 1}}}},
            headers=_auth(operator_token),
        )
        assert overridden.status_code == 200
        assert overridden.json()["source"] == "admin_override"
        assert overridden.json()["total_responses"] == 4

        edit = await client.put(
            f"/api/v1/surveys/{survey['id']}",
            json={"questions": [q.model_dump(mode="json") for q in make_questions()[:1]]},
            headers=_auth(survey["admin_token"]),
        )
        assert edit.status_code == 409

        cleared = await client.delete(f"/api/v1/admin/surveys/{survey['id']}/results", headers=_auth(operator_token))
        assert cleared.json()["source"] == "computed"
        assert cleared.json()["total_responses"] == 0

    async def test_unknown_question(self, client: AsyncClient, operator_token: str) -> None:
        survey = await _survey(client)
        response = await client.put(
            f"/api/v1/admin/surveys/{survey['id']}/results",
            json={"questions": {"nope": {"total_responses": 1}}},
            headers=_auth(operator_token),
        )
        assert response.status_code == 400

    async def test_operator_deletes_response(self, client: AsyncClient, operator_token: str, response_repo) -> None:
        survey = await _survey(client)
        await client.post(
            f"/api/v1/surveys/{survey['id']}/respond",
            json={"answers": [{"question_id": "q1", "choice_id": "c1"}]},
            headers=BOB,
        )
        response_id = next(iter(response_repo.store.items))

        deleted = await client.delete(
            f"/api/v1/surveys/{survey['id']}/responses/{response_id}", headers=_auth(operator_token)
        )
        assert deleted.status_code == 204
        assert response_repo.store.items[response_id]["deleted_by"] == "operator"

    async def test_survey_owner_token_does_not_open_other_surveys(self, client: AsyncClient) -> None:
        survey = await _survey(client)
        foreign = create_owner_token(SURVEY_ADMIN_TOKEN, "someone-else")
        response = await client.get(f"/api/v1/surveys/{survey['id']}/statistics", headers=_auth(foreign))
        assert response.status_code == 401
