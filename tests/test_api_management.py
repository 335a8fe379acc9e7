# tests/test_api_management.py

from models.exams import Mark
from models.results import Result
from models.students import Student
from models.users import User

YEAR = 2024


# ===========================
#   USERS
# ===========================

def test_admin_creates_and_lists_users(client, admin_headers):
    response = client.post(
        "/api/v1/users",
        json={"name": "Meera", "email": "Meera@Example.com", "password": "secret123", "role": "teacher"},
        headers=admin_headers,
    )
    assert response.status_code == 201
    assert response.json()["email"] == "meera@example.com"

    listing = client.get("/api/v1/users", params={"role": "teacher"}, headers=admin_headers).json()
    assert listing["total"] == 1
    assert listing["items"][0]["name"] == "Meera"


def test_duplicate_email_and_bad_role(client, admin, admin_headers):
    duplicate = client.post(
        "/api/v1/users",
        json={"name": "Again", "email": "admin@example.com", "password": "secret123"},
        headers=admin_headers,
    )
    bad_role = client.post(
        "/api/v1/users",
        json={"name": "X", "email": "x@example.com", "password": "secret123", "role": "principal"},
        headers=admin_headers,
    )

    assert duplicate.status_code == 400
    assert bad_role.status_code == 400


def test_admin_cannot_delete_self(client, admin, admin_headers):
    response = client.delete(f"/api/v1/users/{admin.id}", headers=admin_headers)

    assert response.status_code == 400


def test_users_dashboard(client, admin_headers, make_student):
    make_student("R1")

    body = client.get("/api/v1/users/dashboard", headers=admin_headers).json()

    assert body["students"] == 1
    assert body["users"] == 1
    assert body["pending_results"] == 0


# ===========================
#   STUDENTS
# ===========================

def test_create_student_with_login(client, db, admin_headers):
    response = client.post(
        "/api/v1/students",
        json={"roll_no": "BCA-001", "student_name": "Asha", "semester": 2,
              "email": "asha@example.com", "password": "secret123"},
        headers=admin_headers,
    )

    assert response.status_code == 201
    student = db.query(Student).filter(Student.roll_no == "BCA-001").one()
    assert student.semester == 2
    assert student.user.role == "student"

    duplicate = client.post(
        "/api/v1/students",
        json={"roll_no": "BCA-001", "student_name": "Other"},
        headers=admin_headers,
    )
    assert duplicate.status_code == 400


def test_student_detail_and_privacy(client, admin_headers, make_student, headers_for):
    asha = make_student("R1", email="asha@example.com")
    ravi = make_student("R2", email="ravi@example.com")

    own = client.get(f"/api/v1/students/{asha.id}", headers=headers_for(asha.user))
    other = client.get(f"/api/v1/students/{ravi.id}", headers=headers_for(asha.user))
    listing = client.get("/api/v1/students", headers=headers_for(asha.user))

    assert own.status_code == 200
    assert own.json()["student"]["roll_no"] == "R1"
    assert other.status_code == 403
    assert listing.status_code == 403
    assert client.get("/api/v1/students", params={"search": "R2"}, headers=admin_headers).json()["total"] == 1


def test_update_student(client, admin_headers, make_student):
    student = make_student("R1")

    response = client.put(f"/api/v1/students/{student.id}", json={"semester": 3}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["semester"] == 3
    assert client.put("/api/v1/students/999", json={"semester": 3}, headers=admin_headers).status_code == 404


def test_program_change_reranks_cohorts(client, db, admin_headers, make_student, make_subject):
    subject = make_subject("CS101")
    students = {
        "A1": make_student("A1", program="BCA"),
        "B1": make_student("B1", program="BBA"),
        "B2": make_student("B2", program="BBA"),
    }
    for roll_no, score in (("A1", 90), ("B1", 95), ("B2", 50)):
        client.post(
            f"/api/v1/students/{students[roll_no].id}/marks",
            json={"subject_id": subject.id, "marks_obtained": score, "exam_year": YEAR},
            headers=admin_headers,
        )
    client.post("/api/v1/results/publish", json={}, headers=admin_headers)

    response = client.put(f"/api/v1/students/{students['A1'].id}", json={"program": "BBA"}, headers=admin_headers)

    assert response.status_code == 200
    db.expire_all()
    ranked = sorted((r.rank, r.roll_no) for r in db.query(Result).all())
    assert ranked == [(1, "B1"), (2, "A1"), (3, "B2")]


def test_delete_student_cascades(client, db, admin_headers, make_student, make_subject):
    student = make_student("R1", email="r1@example.com")
    subject = make_subject("CS101")
    client.post(
        f"/api/v1/students/{student.id}/marks",
        json={"subject_id": subject.id, "marks_obtained": 70, "exam_year": YEAR},
        headers=admin_headers,
    )
    student_id = student.id

    response = client.delete(f"/api/v1/students/{student_id}", headers=admin_headers)

    assert response.status_code == 200
    assert db.query(Student).count() == 0
    assert db.query(Mark).count() == 0
    assert db.query(Result).count() == 0
    assert db.query(User).filter(User.email == "r1@example.com").count() == 0


# ===========================
#   TEACHERS & SUBJECTS
# ===========================

def test_teacher_crud(client, admin_headers, headers_for, db):
    created = client.post(
        "/api/v1/teachers",
        json={"teacher_name": "Dr. Rao", "email": "rao@example.com", "password": "secret123",
              "department": "Mathematics"},
        headers=admin_headers,
    )
    assert created.status_code == 201
    teacher_id = created.json()["id"]

    subject = client.post(
        "/api/v1/subjects",
        json={"code": "ma101", "name": "Maths", "credit": 4, "teacher_id": teacher_id},
        headers=admin_headers,
    )
    assert subject.status_code == 201
    assert subject.json()["code"] == "MA101"

    detail = client.get(f"/api/v1/teachers/{teacher_id}", headers=admin_headers).json()
    assert [s["code"] for s in detail["subjects"]] == ["MA101"]

    listing = client.get("/api/v1/teachers", params={"department": "Mathematics"}, headers=admin_headers).json()
    assert listing["total"] == 1

    updated = client.put(f"/api/v1/teachers/{teacher_id}", json={"experience": 12}, headers=admin_headers)
    assert updated.json()["experience"] == 12

    assert client.delete(f"/api/v1/teachers/{teacher_id}", headers=admin_headers).status_code == 200
    subjects = client.get("/api/v1/subjects", headers=admin_headers).json()
    assert subjects[0]["teacher_id"] is None


def test_subject_validation(client, admin_headers, make_teacher, headers_for):
    assert client.post("/api/v1/subjects", json={"code": "X1", "name": "X", "credit": 0},
                       headers=admin_headers).status_code == 422
    assert client.post("/api/v1/subjects", json={"code": "X1", "name": "X", "teacher_id": 42},
                       headers=admin_headers).status_code == 404
    assert client.post("/api/v1/subjects", json={"code": "X1", "name": "X"},
                       headers=headers_for(make_teacher().user)).status_code == 403


# ===========================
#   MARKS
# ===========================

def test_bulk_marks_endpoint(client, admin_headers, make_student, make_subject):
    first = make_student("R1")
    second = make_student("R2")
    subject = make_subject("CS101")

    response = client.post(
        "/api/v1/marks/bulk",
        json={"exam_year": YEAR, "entries": [
            {"student_id": first.id, "subject_id": subject.id, "marks_obtained": 88},
            {"student_id": second.id, "subject_id": subject.id, "marks_obtained": 64},
        ]},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["created"] == 2
    assert response.json()["results_refreshed"] == 2


def test_marks_import_from_csv(client, db, admin_headers, make_student, make_subject):
    make_student("R1")
    make_student("R2")
    make_subject("CS101", credit=3.0)
    make_subject("MA101", credit=2.0)
    sheet = (
        "roll_no,subject_code,marks_obtained\n"
        "R1,CS101,80\n"
        "R1,ma101,60\n"
        "R2,CS101,abc\n"
        "R9,CS101,50\n"
        "R2,PH101,50\n"
    )

    response = client.post(
        "/api/v1/marks/import",
        files={"file": ("marks.csv", sheet.encode(), "text/csv")},
        data={"exam_year": str(YEAR)},
        headers=admin_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total_rows"] == 5
    assert body["created"] == 2
    assert body["error_count"] == 3
    assert [e["row"] for e in body["errors"]] == [4, 5, 6]
    assert db.query(Result).one().gpa == 3.28


def test_marks_import_checks_existing_full_marks(client, db, admin_headers, make_student, make_subject):
    first = make_student("R1")
    make_student("R2")
    subject = make_subject("CS101")
    client.post(
        f"/api/v1/students/{first.id}/marks",
        json={"subject_id": subject.id, "marks_obtained": 40, "exam_year": YEAR, "full_marks": 50},
        headers=admin_headers,
    )
    sheet = "roll_no,subject_code,marks_obtained\nR1,CS101,80\nR2,CS101,70\n"

    response = client.post(
        "/api/v1/marks/import",
        files={"file": ("marks.csv", sheet.encode(), "text/csv")},
        data={"exam_year": str(YEAR)},
        headers=admin_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["created"] == 1
    assert [e["row"] for e in body["errors"]] == [2]
    assert "50.0" in body["errors"][0]["error"]
    db.expire_all()
    scores = {m.student_name: m.marks_obtained for m in db.query(Mark).all()}
    assert scores == {"Student R1": 40.0, "Student R2": 70.0}


def test_marks_import_rejects_unknown_format(client, admin_headers):
    response = client.post(
        "/api/v1/marks/import",
        files={"file": ("marks.txt", b"hello", "text/plain")},
        data={"exam_year": str(YEAR)},
        headers=admin_headers,
    )

    assert response.status_code == 400


def test_marks_import_requires_columns(client, admin_headers):
    response = client.post(
        "/api/v1/marks/import",
        files={"file": ("marks.csv", b"roll_no,marks_obtained\nR1,50\n", "text/csv")},
        data={"exam_year": str(YEAR)},
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert "subject_code" in response.json()["detail"]
