"""
Tests for survey endpoints.
"""

import pytest
from httpx import AsyncClient

from conftest import TEST_PASSWORD, full_answers, make_questions

ALICE = {"X-Forwarded-For": "198.51.100.1"}
BOB = {"X-Forwarded-For": "198.51.100.2"}
CAROL = {"X-Forwarded-For": "198.51.100.3"}


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def _create(client: AsyncClient, **overrides) -> dict:
    payload = {
        "title": "Team feedback",
        "admin_password": TEST_PASSWORD,
        "questions": [q.model_dump(mode="json") for q in make_questions()],
    }
    payload.update(overrides)
    response = await client.post("/api/v1/surveys", json=payload, headers=ALICE)
    assert response.status_code == 201, response.text
    return response.json()


async def _respond(client: AsyncClient, survey_id: str, headers: dict, answers=None):
    return await client.post(
        f"/api/v1/surveys/{survey_id}/respond",
        json={"answers": answers if answers is not None else full_answers()},
        headers=headers,
    )


@pytest.mark.unit
class TestCreateSurvey:
    async def test_create_and_fetch(self, client: AsyncClient) -> None:
        created = await _create(client)
        detail = await client.get(f"/api/v1/surveys/{created['id']}", headers=BOB)

        assert detail.status_code == 200
        body = detail.json()
        assert [q["id"] for q in body["questions"]] == ["q1", "q2", "q3", "q4"]
        assert body["status"] == "open"
        assert body["is_editable"] is True
        assert body["can_respond"] is True

    async def test_duplicate_question_ids_rejected(self, client: AsyncClient) -> None:
        questions = [q.model_dump(mode="json") for q in make_questions()]
        questions[1]["id"] = "q1"
        response = await client.post(
            "/api/v1/surveys",
            json={"title": "Broken", "admin_password": TEST_PASSWORD, "questions": questions},
        )
        assert response.status_code == 422

    async def test_condition_must_point_at_choice_question(self, client: AsyncClient) -> None:
        questions = [q.model_dump(mode="json") for q in make_questions()]
        questions[3]["condition"] = {"question_id": "q3", "choice_ids": ["c1"]}
        response = await client.post(
            "/api/v1/surveys",
            json={"title": "Broken", "admin_password": TEST_PASSWORD, "questions": questions},
        )
        assert response.status_code == 422


@pytest.mark.unit
class TestResponding:
    async def test_respond_once(self, client: AsyncClient) -> None:
        created = await _create(client)
        survey_id = created["id"]

        first = await _respond(client, survey_id, BOB)
        assert first.status_code == 201
        assert first.json()["response_code"]

        again = await _respond(client, survey_id, BOB)
        assert again.status_code == 409
        assert again.json()["error"] == "already_responded"

        check = await client.get(f"/api/v1/surveys/{survey_id}/check-response", headers=BOB)
        assert check.json() == {"has_responded": True, "can_respond": False}

        fresh = await client.get(f"/api/v1/surveys/{survey_id}/check-response", headers=CAROL)
        assert fresh.json() == {"has_responded": False, "can_respond": True}

    async def test_invalid_answers(self, client: AsyncClient, response_repo) -> None:
        created = await _create(client)
        response = await _respond(client, created["id"], BOB, answers=[{"question_id": "q1", "choice_id": "zz"}])

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_answers"
        assert response_repo.store.items == {}

    async def test_missing_required_answer(self, client: AsyncClient) -> None:
        created = await _create(client)
        response = await _respond(client, created["id"], BOB, answers=[{"question_id": "q3", "rating": 3}])
        assert response.status_code == 400

    async def test_owner_may_respond_repeatedly(self, client: AsyncClient) -> None:
        created = await _create(client)
        headers = {**ALICE, **_auth(created["admin_token"])}

        assert (await _respond(client, created["id"], headers)).status_code == 201
        assert (await _respond(client, created["id"], headers)).status_code == 201

        # Owner submissions do not use up the owner's participant slot
        assert (await _respond(client, created["id"], ALICE)).status_code == 201

    async def test_closed_survey(self, client: AsyncClient) -> None:
        created = await _create(client)
        closed = await client.patch(
            f"/api/v1/surveys/{created['id']}/status", json={"status": "closed"}, headers=_auth(created["admin_token"])
        )
        assert closed.json()["status"] == "closed"

        response = await _respond(client, created["id"], BOB)
        assert response.status_code == 403
        assert response.json()["error"] == "survey_closed"

    async def test_response_limit(self, client: AsyncClient) -> None:
        created = await _create(client, settings={"response_limit": 1})

        assert (await _respond(client, created["id"], BOB)).status_code == 201
        assert (await _respond(client, created["id"], CAROL)).status_code == 403


@pytest.mark.unit
class TestResults:
    async def test_public_results(self, client: AsyncClient) -> None:
        created = await _create(client)
        await _respond(client, created["id"], BOB)
        await _respond(client, created["id"], CAROL, answers=[{"question_id": "q1", "choice_id": "c2"}])

        body = (await client.get(f"/api/v1/surveys/{created['id']}/results")).json()
        results = body["results"]
        q1 = next(q for q in results["questions"] if q["question_id"] == "q1")

        assert results["source"] == "computed"
        assert results["total_responses"] == 2
        assert [(c["id"], c["percentage"]) for c in q1["choices"]] == [("c1", 50), ("c2", 50)]

    async def test_private_results(self, client: AsyncClient) -> None:
        created = await _create(client, settings={"public_results": False})

        public = await client.get(f"/api/v1/surveys/{created['id']}/results")
        assert public.json()["results"] is None

        owner = await client.get(f"/api/v1/surveys/{created['id']}/results", headers=_auth(created["admin_token"]))
        assert owner.json()["results"]["total_responses"] == 0

    async def test_statistics_for_owner_only(self, client: AsyncClient) -> None:
        created = await _create(client)
        await _respond(client, created["id"], BOB)

        assert (await client.get(f"/api/v1/surveys/{created['id']}/statistics")).status_code == 401

        report = await client.get(
            f"/api/v1/surveys/{created['id']}/statistics", headers=_auth(created["admin_token"])
        )
        assert report.status_code == 200
        assert report.json()["overview"]["total_responses"] == 1


@pytest.mark.unit
class TestOwnerOperations:
    async def test_questions_lock_after_first_response(self, client: AsyncClient) -> None:
        created = await _create(client)
        headers = _auth(created["admin_token"])
        questions = [q.model_dump(mode="json") for q in make_questions()[:2]]

        before = await client.put(f"/api/v1/surveys/{created['id']}", json={"questions": questions}, headers=headers)
        assert before.status_code == 200
        assert len(before.json()["questions"]) == 2

        await _respond(client, created["id"], BOB, answers=[{"question_id": "q1", "choice_id": "c1"}])

        after = await client.put(f"/api/v1/surveys/{created['id']}", json={"questions": questions}, headers=headers)
        assert after.status_code == 409
        assert after.json()["error"] == "survey_locked"

        retitled = await client.put(f"/api/v1/surveys/{created['id']}", json={"title": "Renamed"}, headers=headers)
        assert retitled.json()["title"] == "Renamed"

    async def test_delete_response_frees_participant(self, client: AsyncClient, response_repo) -> None:
        created = await _create(client)
        headers = _auth(created["admin_token"])
        await _respond(client, created["id"], BOB)
        response_id = next(iter(response_repo.store.items))

        deleted = await client.delete(f"/api/v1/surveys/{created['id']}/responses/{response_id}", headers=headers)
        assert deleted.status_code == 204
        assert response_repo.store.items[response_id]["deleted_by"] == "owner"

        assert (await _respond(client, created["id"], BOB)).status_code == 201

        twice = await client.delete(f"/api/v1/surveys/{created['id']}/responses/{response_id}", headers=headers)
        assert twice.status_code == 404

    async def test_reconcile(self, client: AsyncClient, survey_repo) -> None:
        created = await _create(client)
        await _respond(client, created["id"], BOB)
        survey_repo.store.items[created["id"]]["stats"]["response_count"] = 40

        reconciled = await client.post(
            f"/api/v1/surveys/{created['id']}/reconcile", headers=_auth(created["admin_token"])
        )
        assert reconciled.status_code == 200
        assert reconciled.json()["response_count"] == 1

    async def test_delete_survey(self, client: AsyncClient) -> None:
        created = await _create(client)
        headers = _auth(created["admin_token"])

        assert (await client.delete(f"/api/v1/surveys/{created['id']}", headers=headers)).status_code == 204
        assert (await client.get(f"/api/v1/surveys/{created['id']}")).status_code == 404
        assert (await _respond(client, created["id"], BOB)).status_code == 404

    async def test_verify_password(self, client: AsyncClient) -> None:
        created = await _create(client)
        ok = await client.post(f"/api/v1/surveys/{created['id']}/verify", json={"admin_password": TEST_PASSWORD})
        token = ok.json()["token"]

        report = await client.get(f"/api/v1/surveys/{created['id']}/statistics", headers=_auth(token))
        assert report.status_code == 200
