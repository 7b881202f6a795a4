from conftest import auth_headers


def test_timetable_requires_a_token(client):
    assert client.get("/api/timetable").status_code in {401, 403}

    bad = client.get("/api/timetable", headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 401


def test_weekly_timetable(client, admin_headers, make_student):
    make_student("Ava Stone", "Tuesday", "15:00", 30)
    make_student("Ben Hart", "Tuesday", "15:15", 30)
    make_student("Unplaced", None, None, None)

    response = client.get("/api/timetable", headers=admin_headers)

    assert response.status_code == 200
    payload = response.json()
    tuesday = next(column for column in payload["days"] if column["day"] == "Tuesday")
    assert [card["name"] for card in tuesday["students"]] == ["Ava Stone", "Ben Hart"]
    assert [card["name"] for card in payload["unscheduled"]] == ["Unplaced"]
    assert payload["can_generate"] is False

    clashes = client.get("/api/timetable/clashes", headers=admin_headers).json()
    assert clashes[0]["student_names"] == ["Ava Stone", "Ben Hart"]


def test_update_and_clear_slot(client, admin_headers, make_student):
    student = make_student("Ava Stone", "Tuesday", "15:00", 30)

    updated = client.patch(
        f"/api/timetable/students/{student.id}/slot",
        json={"field": "lesson_duration", "value": 45},
        headers=admin_headers,
    )
    assert updated.status_code == 200
    assert updated.json()["lesson_time_end"] == "15:45"

    invalid = client.patch(
        f"/api/timetable/students/{student.id}/slot",
        json={"field": "lesson_time", "value": "23:50"},
        headers=admin_headers,
    )
    assert invalid.status_code == 422
    assert "midnight" in invalid.json()["message"]

    cleared = client.delete(f"/api/timetable/students/{student.id}/slot", headers=admin_headers)
    assert cleared.status_code == 200
    assert cleared.json()["lesson_day"] is None


def test_slot_of_unknown_student_is_404(client, admin_headers):
    response = client.patch(
        "/api/timetable/students/missing-id/slot",
        json={"field": "lesson_time", "value": "10:00"},
        headers=admin_headers,
    )
    assert response.status_code == 404
    assert response.json()["message"] == "Student with id missing-id not found"


def test_move_student_is_admin_only(client, admin_headers, teacher_headers, make_student):
    student = make_student("Ava Stone", "Tuesday", "15:00", 30)

    forbidden = client.post(
        f"/api/timetable/students/{student.id}/move", json={"day": "Friday"}, headers=teacher_headers
    )
    assert forbidden.status_code == 403

    moved = client.post(f"/api/timetable/students/{student.id}/move", json={"day": "Friday"}, headers=admin_headers)
    assert moved.status_code == 200
    assert moved.json()["lesson_day"] == "Friday"

    invalid = client.post(f"/api/timetable/students/{student.id}/move", json={"day": "Caturday"}, headers=admin_headers)
    assert invalid.status_code == 422


def test_student_clash_lookup(client, admin_headers, make_student):
    ava = make_student("Ava Stone", "Tuesday", "15:00", 30)
    make_student("Ben Hart", "Tuesday", "15:15", 30)

    response = client.get(f"/api/timetable/students/{ava.id}/clashes", headers=admin_headers)

    assert response.status_code == 200
    assert [item["name"] for item in response.json()["clashing_students"]] == ["Ben Hart"]


def test_lesson_types_are_scoped_to_the_school(client, make_lesson_type):
    make_lesson_type("Half hour", 30)
    make_lesson_type("Foreign", 60, school_id="school-2")

    response = client.get("/api/lesson-types", headers=auth_headers())

    assert response.status_code == 200
    assert [item["name"] for item in response.json()] == ["Half hour"]


def test_slot_edits_are_admin_only(client, teacher_headers, make_student):
    student = make_student("Ava Stone", "Tuesday", "15:00", 30)

    patched = client.patch(
        f"/api/timetable/students/{student.id}/slot",
        json={"field": "lesson_time", "value": "10:00"},
        headers=teacher_headers,
    )
    assert patched.status_code == 403

    cleared = client.delete(f"/api/timetable/students/{student.id}/slot", headers=teacher_headers)
    assert cleared.status_code == 403

    clashes = client.get(f"/api/timetable/students/{student.id}/clashes", headers=teacher_headers)
    assert clashes.status_code == 200
