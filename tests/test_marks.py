# tests/test_marks.py

import pytest

from models.exams import Mark
from models.results import Result
from services.errors import Conflict, InvalidInput, NotFound
from services.marks import MarkEntry, add_mark, bulk_upsert_marks, update_mark

YEAR = 2024


@pytest.fixture
def student(make_student):
    return make_student("R1", name="Asha")


@pytest.fixture
def subject(make_subject):
    return make_subject("CS101", credit=4.0, full_marks=50.0, name="Programming")


def test_add_mark_copies_subject_details(db, student, subject):
    mark = add_mark(db, student.id, subject.id, 40, exam_type="final", exam_year=YEAR)

    assert mark.id is not None
    assert mark.full_marks == 50.0
    assert mark.credit == 4.0
    assert mark.subject_name == "Programming"
    assert mark.student_name == "Asha"


def test_final_mark_produces_result(db, student, subject):
    add_mark(db, student.id, subject.id, 45, exam_type="final", exam_year=YEAR)

    result = db.query(Result).one()
    assert result.gpa == 4.0
    assert result.grade == "A+"
    assert result.status == "pending"


def test_internal_mark_does_not_touch_results(db, student, subject):
    add_mark(db, student.id, subject.id, 45, exam_type="internal", exam_year=YEAR)

    assert db.query(Result).count() == 0


def test_duplicate_mark_is_a_conflict(db, student, subject):
    add_mark(db, student.id, subject.id, 30, exam_type="final", exam_year=YEAR)

    with pytest.raises(Conflict):
        add_mark(db, student.id, subject.id, 35, exam_type="final", exam_year=YEAR)
    assert db.query(Mark).count() == 1


def test_same_subject_other_exam_type_is_allowed(db, student, subject):
    add_mark(db, student.id, subject.id, 30, exam_type="final", exam_year=YEAR)
    add_mark(db, student.id, subject.id, 20, exam_type="internal", exam_year=YEAR)

    assert db.query(Mark).count() == 2


def test_missing_student_or_subject(db, student, subject):
    with pytest.raises(NotFound):
        add_mark(db, 999, subject.id, 30, exam_year=YEAR)
    with pytest.raises(NotFound):
        add_mark(db, student.id, 999, 30, exam_year=YEAR)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"marks_obtained": 51},
        {"marks_obtained": -1},
        {"marks_obtained": 10, "full_marks": 0},
        {"marks_obtained": 10, "exam_type": "midterm"},
        {"marks_obtained": 10, "exam_year": None},
        {"marks_obtained": 10, "exam_year": 0},
    ],
)
def test_invalid_marks_are_rejected(db, student, subject, kwargs):
    params = {"exam_type": "final", "exam_year": YEAR}
    params.update(kwargs)

    with pytest.raises(InvalidInput):
        add_mark(db, student.id, subject.id, **params)
    assert db.query(Mark).count() == 0


def test_update_mark_recomputes_and_resets_result(db, student, subject):
    mark = add_mark(db, student.id, subject.id, 45, exam_type="final", exam_year=YEAR)
    result = db.query(Result).one()
    result.status = "published"
    result.rank = 1
    db.commit()

    update_mark(db, mark.id, 30)

    result = db.query(Result).one()
    assert result.total_marks == 30.0
    assert result.grade == "B"
    assert result.status == "pending"
    assert result.rank is None


def test_update_after_promotion_refreshes_earned_result(db, student, subject):
    mark = add_mark(db, student.id, subject.id, 30, exam_type="final", exam_year=YEAR)
    student.semester = 2
    db.commit()

    update_mark(db, mark.id, 45)

    result = db.query(Result).one()
    assert mark.semester == 1
    assert result.semester == 1
    assert result.total_marks == 45.0


def test_update_mark_checks_range_and_existence(db, student, subject):
    mark = add_mark(db, student.id, subject.id, 45, exam_type="final", exam_year=YEAR)

    with pytest.raises(InvalidInput):
        update_mark(db, mark.id, 60)
    with pytest.raises(NotFound):
        update_mark(db, 999, 10)


def test_bulk_creates_and_updates(db, make_student, make_subject):
    first = make_student("R1")
    second = make_student("R2")
    maths = make_subject("MA101", credit=3.0)
    physics = make_subject("PH101", credit=2.0)
    add_mark(db, first.id, maths.id, 50, exam_type="final", exam_year=YEAR)

    outcome = bulk_upsert_marks(
        db,
        [
            MarkEntry(first.id, maths.id, 85),
            MarkEntry(first.id, physics.id, 65),
            MarkEntry(second.id, maths.id, 70),
        ],
        exam_type="final",
        exam_year=YEAR,
    )

    assert (outcome.created, outcome.updated, outcome.results_refreshed) == (2, 1, 2)
    results = {r.roll_no: r for r in db.query(Result).all()}
    assert results["R1"].gpa == 3.28
    assert results["R2"].gpa == 3.2


def test_bulk_is_all_or_nothing(db, make_student, make_subject):
    first = make_student("R1")
    maths = make_subject("MA101")
    physics = make_subject("PH101")

    with pytest.raises(InvalidInput):
        bulk_upsert_marks(
            db,
            [MarkEntry(first.id, maths.id, 85), MarkEntry(first.id, physics.id, 150)],
            exam_type="final",
            exam_year=YEAR,
        )
    with pytest.raises(NotFound):
        bulk_upsert_marks(db, [MarkEntry(first.id, maths.id, 85), MarkEntry(999, maths.id, 50)],
                          exam_type="final", exam_year=YEAR)

    assert db.query(Mark).count() == 0
    assert db.query(Result).count() == 0


def test_bulk_with_no_entries(db):
    outcome = bulk_upsert_marks(db, [], exam_type="final", exam_year=YEAR)

    assert (outcome.created, outcome.updated, outcome.results_refreshed) == (0, 0, 0)


def test_bulk_rejects_repeated_entries(db, make_student, make_subject):
    first = make_student("R1")
    maths = make_subject("MA101")

    with pytest.raises(InvalidInput):
        bulk_upsert_marks(db, [MarkEntry(first.id, maths.id, 85), MarkEntry(first.id, maths.id, 80)],
                          exam_type="final", exam_year=YEAR)
    assert db.query(Mark).count() == 0
