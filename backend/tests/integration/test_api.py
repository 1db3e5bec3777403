"""HTTP surface of the classes, progress and exam routers.

Runs the real application in single-user mode against the in-memory store,
with the request clock pinned to the test clock.
"""

import pytest


def _answer_body(curriculum, assessment_index: int, *selected: int) -> dict[str, int]:
    assessment_id = curriculum.assessment_ids[assessment_index]
    question_ids = curriculum.question_ids[assessment_id]
    return {str(question_id): option for question_id, option in zip(question_ids, selected, strict=True)}


class TestClassesApi:
    @pytest.mark.asyncio
    async def test_health(self, client_factory) -> None:
        client = await client_factory()

        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_classes_are_listed_in_order_without_answers(self, client_factory, curriculum) -> None:
        client = await client_factory()

        response = await client.get("/api/v1/classes")

        assert response.status_code == 200
        body = response.json()
        assert [item["id"] for item in body] == curriculum.class_ids
        question = body[0]["assessments"][0]["questions"][0]
        assert question["options"] == ["A", "B", "C"]
        assert "correctAnswer" not in question
        assert body[0]["videos"][0]["url"] == "https://videos.example/1.mp4"

    @pytest.mark.asyncio
    async def test_unknown_class_is_404(self, client_factory, curriculum) -> None:
        client = await client_factory()

        response = await client.get("/api/v1/classes/9999")

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "NOT_FOUND"
        assert error["detail"] == "Class with ID 9999 not found"


class TestProgressApi:
    @pytest.mark.asyncio
    async def test_full_class_progression(self, client_factory, curriculum, clock) -> None:
        client = await client_factory()
        first_class, second_class, _ = curriculum.class_ids

        watched = await client.post("/api/v1/progress/video-watched", json={"classId": first_class})
        assert watched.status_code == 200
        timer = watched.json()["nextClassTimer"]
        assert timer["classId"] == second_class
        assert timer["timerActive"] is True
        assert timer["timeRemainingMs"] == 24 * 60 * 60 * 1000

        submitted = await client.post(
            "/api/v1/progress/assessments/submit",
            json={"classId": first_class, "answers": _answer_body(curriculum, 0, 1, 0)},
        )
        assert submitted.status_code == 200
        assert submitted.json()["isPassed"] is True
        assert submitted.json()["canRetake"] is False

        overview = (await client.get("/api/v1/progress")).json()
        assert overview["completedClasses"] == 1
        assert overview["classes"][1]["locked"] is True
        assert overview["classes"][1]["reason"] == "Unlocks in 24h 0m 0s"

        clock.advance(hours=24)
        overview = (await client.get("/api/v1/progress")).json()
        assert overview["classes"][1]["locked"] is False

    @pytest.mark.asyncio
    async def test_resubmitting_passed_assessment_is_409(self, client_factory, curriculum) -> None:
        client = await client_factory()
        assessment_id = curriculum.assessment_ids[0]
        await client.post("/api/v1/progress/video-watched", json={"classId": curriculum.class_ids[0]})
        url = f"/api/v1/progress/assessments/{assessment_id}/submit"
        await client.post(url, json={"answers": _answer_body(curriculum, 0, 1, 0)})

        response = await client.post(url, json={"answers": _answer_body(curriculum, 0, 0, 1)})

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "ALREADY_COMPLETED"
        assert error["metadata"]["existing"]["score"] == 100
        assert error["metadata"]["existing"]["attemptCount"] == 1

        stored = (await client.get(f"/api/v1/progress/assessments/{assessment_id}")).json()
        assert stored["score"] == 100
        assert stored["attemptCount"] == 1

    @pytest.mark.asyncio
    async def test_assessment_before_video_is_400(self, client_factory, curriculum) -> None:
        client = await client_factory()

        response = await client.post(
            "/api/v1/progress/assessments/submit",
            json={"classId": curriculum.class_ids[0], "answers": _answer_body(curriculum, 0, 1, 0)},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_INPUT"

    @pytest.mark.asyncio
    async def test_non_integer_answer_is_422(self, client_factory, curriculum) -> None:
        client = await client_factory()

        response = await client.post(
            "/api/v1/progress/assessments/submit",
            json={"classId": curriculum.class_ids[0], "answers": {"1": "B"}},
        )

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["category"] == "VALIDATION_ERROR"
        assert error["metadata"]["errors"]

    @pytest.mark.asyncio
    async def test_watched_videos_are_listed(self, client_factory, curriculum) -> None:
        client = await client_factory()
        await client.post("/api/v1/progress/video-watched", json={"classId": curriculum.class_ids[0]})
        repeat = await client.post("/api/v1/progress/video-watched", json={"classId": curriculum.class_ids[0]})

        response = await client.get("/api/v1/progress/video-watched", params={"classId": curriculum.class_ids[0]})

        assert repeat.json()["alreadyWatched"] is True
        assert [item["videoId"] for item in response.json()] == [curriculum.video_ids[0]]

    @pytest.mark.asyncio
    async def test_assessment_results_grouped_by_class(self, client_factory, curriculum) -> None:
        client = await client_factory()

        response = await client.get("/api/v1/progress/assessments")

        assert response.status_code == 200
        body = response.json()
        assert [item["classId"] for item in body] == curriculum.class_ids
        assert body[0]["assessments"][0]["attemptCount"] == 0


    @pytest.mark.asyncio
    async def test_essay_assignment_is_submitted_and_listed(self, client_factory, curriculum) -> None:
        client = await client_factory()
        body = {
            "classId": curriculum.class_ids[0],
            "resourceId": curriculum.essay_resource_id,
            "content": "Reflection",
            "text": "Ordering matters more than I expected.",
        }

        response = await client.post("/api/v1/progress/assignments", json=body)
        listed = await client.get("/api/v1/progress/assignments", params={"classId": curriculum.class_ids[0]})

        assert response.status_code == 200
        created = response.json()
        assert created["resourceId"] == curriculum.essay_resource_id
        assert created["message"] == "Assignment submitted successfully"
        assert [item["id"] for item in listed.json()] == [created["submissionId"]]
        assert listed.json()[0]["reviewed"] is False

    @pytest.mark.asyncio
    async def test_assignment_on_non_essay_resource_is_400(self, client_factory, curriculum) -> None:
        client = await client_factory()

        response = await client.post(
            "/api/v1/progress/assignments",
            json={
                "classId": curriculum.class_ids[0],
                "resourceId": curriculum.reading_resource_id,
                "content": "Notes",
                "text": "Some text",
            },
        )

        assert response.status_code == 400
        assert response.json()["error"]["detail"] == "Invalid or non-uploadable resource"

    @pytest.mark.asyncio
    async def test_assignment_without_text_is_422(self, client_factory, curriculum) -> None:
        client = await client_factory()

        response = await client.post(
            "/api/v1/progress/assignments",
            json={"classId": curriculum.class_ids[0], "resourceId": curriculum.essay_resource_id, "content": "x"},
        )

        assert response.status_code == 422


class TestClassTimersApi:
    @pytest.mark.asyncio
    async def test_set_extend_and_stop(self, client_factory, curriculum, clock) -> None:
        client = await client_factory()
        class_id = curriculum.class_ids[1]
        expires_at = clock.now().replace(hour=10)

        created = await client.post(
            "/api/v1/progress/class-timers",
            json={"classId": class_id, "timerExpiresAt": expires_at.isoformat()},
        )
        assert created.status_code == 200
        assert created.json()["timeRemainingMs"] == 60 * 60 * 1000

        extended = await client.put(f"/api/v1/progress/class-timers/{class_id}", json={"additionalSeconds": 60})
        assert extended.status_code == 200
        assert extended.json()["timeRemainingMs"] == 61 * 60 * 1000

        stopped = await client.delete(f"/api/v1/progress/class-timers/{class_id}")
        assert stopped.status_code == 200
        assert stopped.json()["timerActive"] is False
        assert stopped.json()["timerExpiresAt"] is None

        listed = await client.get("/api/v1/progress/class-timers", params={"classId": class_id})
        assert [item["classId"] for item in listed.json()] == [class_id]

    @pytest.mark.asyncio
    async def test_extend_without_duration_is_422(self, client_factory, curriculum) -> None:
        client = await client_factory()

        response = await client.put(f"/api/v1/progress/class-timers/{curriculum.class_ids[1]}", json={})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_stop_missing_timer_is_404(self, client_factory, curriculum) -> None:
        client = await client_factory()

        response = await client.delete(f"/api/v1/progress/class-timers/{curriculum.class_ids[1]}")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_expiry_status_and_auto_complete(self, client_factory, curriculum, clock) -> None:
        client = await client_factory()
        await client.post("/api/v1/progress/video-watched", json={"classId": curriculum.class_ids[0]})
        clock.advance(hours=25)

        completed = await client.post("/api/v1/progress/class-timers/auto-complete", json={})
        assert completed.status_code == 200
        body = completed.json()
        assert body["expiredClassIds"] == [curriculum.class_ids[1]]
        assert body["notifications"] == ["Assessment Practice check auto-completed with 0% due to timer expiration."]

        status = await client.get("/api/v1/progress/class-timers/status", params={"cleanup": "true"})
        assert status.json()["totalExpired"] == 1
        assert status.json()["cleanedUp"] == 1

        after = await client.get("/api/v1/progress/class-timers/status")
        assert after.json()["totalExpired"] == 0
        assert after.json()["totalActive"] == 0


class TestExamApi:
    @pytest.mark.asyncio
    async def test_exam_is_served_without_answers(self, client_factory, curriculum) -> None:
        client = await client_factory()

        response = await client.get("/api/v1/exam")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == curriculum.exam_id
        assert all("correctAnswer" not in question for question in body["questions"])

    @pytest.mark.asyncio
    async def test_every_attempt_is_recorded(self, client_factory, curriculum) -> None:
        client = await client_factory()
        first_id, second_id = curriculum.exam_question_ids

        passed = await client.post("/api/v1/exam/submit", json={"answers": {str(first_id): 1, str(second_id): 0}})
        failed = await client.post("/api/v1/exam/submit", json={"answers": {str(first_id): 0}})

        assert passed.status_code == 200
        assert passed.json()["score"] == 100
        assert failed.json()["score"] == 0
        history = (await client.get("/api/v1/exam/submissions")).json()
        assert [item["score"] for item in history] == [0, 100]

    @pytest.mark.asyncio
    async def test_empty_answers_are_rejected(self, client_factory, curriculum) -> None:
        client = await client_factory()

        response = await client.post("/api/v1/exam/submit", json={"answers": {}})

        assert response.status_code == 400
        assert response.json()["error"]["detail"] == "Answers cannot be empty"

    @pytest.mark.asyncio
    async def test_invalid_option_is_rejected(self, client_factory, curriculum) -> None:
        client = await client_factory()
        first_id = curriculum.exam_question_ids[0]

        response = await client.post("/api/v1/exam/submit", json={"answers": {str(first_id): 9}})

        assert response.status_code == 400
        assert response.json()["error"]["detail"] == f"Invalid answers for questions: {first_id}"
