# tests/test_lifecycle.py

import pytest

from models.results import Result
from services.errors import InvalidInput, NotFound
from services.lifecycle import (
    ResultFilters, dashboard_counts, get_result_detail, list_results, publish_results,
    result_statistics,
)
from services.marks import add_mark, update_mark
from services.ranking import Cohort, RankingPolicy, rank_cohort

YEAR = 2024


@pytest.fixture
def cohort(db, make_student, make_subject):
    """Three BCA semester-1 students: two tied on A/A, one on B+/B+."""
    core = make_subject("CS101", credit=3.0, name="Programming")
    maths = make_subject("MA101", credit=2.0, name="Maths")
    scores = {"R1": (85, 85), "R2": (85, 85), "R3": (75, 75)}
    students = {}
    for roll_no, (a, b) in scores.items():
        student = make_student(roll_no)
        add_mark(db, student.id, core.id, a, exam_type="final", exam_year=YEAR)
        add_mark(db, student.id, maths.id, b, exam_type="final", exam_year=YEAR)
        students[roll_no] = student
    return students


def results_by_roll(db):
    return {r.roll_no: r for r in db.query(Result).all()}


def test_pending_results_are_not_ranked(db, cohort):
    assert all(r.rank is None for r in db.query(Result).all())
    assert all(r.status == "pending" for r in db.query(Result).all())


def test_publish_moves_pending_to_published_and_ranks(db, cohort, make_user):
    approver = make_user("admin")

    outcome = publish_results(db, approver.id, semester=1, exam_year=YEAR)

    assert outcome.affected_count == 3
    assert [tuple(c) for c in outcome.cohorts] == [(1, YEAR, "BCA")]
    results = results_by_roll(db)
    assert [results[r].rank for r in ("R1", "R2", "R3")] == [1, 1, 3]
    for result in results.values():
        assert result.status == "published"
        assert result.approved_by == approver.id
        assert result.published_at is not None


def test_reranking_a_published_cohort_changes_nothing(db, cohort, make_user):
    publish_results(db, make_user("admin").id)
    before = sorted((r.roll_no, r.rank, r.status) for r in db.query(Result).all())

    for _ in range(2):
        assert rank_cohort(db, Cohort(1, YEAR, "BCA")) == 3
        db.commit()

    assert sorted((r.roll_no, r.rank, r.status) for r in db.query(Result).all()) == before


def test_publish_with_positional_policy(db, cohort, make_user):
    publish_results(db, make_user("admin").id, policy=RankingPolicy.POSITIONAL)

    results = results_by_roll(db)
    assert [results[r].rank for r in ("R1", "R2", "R3")] == [1, 2, 3]


def test_second_publish_affects_nothing(db, cohort, make_user):
    approver = make_user("admin")
    publish_results(db, approver.id)

    assert publish_results(db, approver.id).affected_count == 0
    assert all(r.status == "published" for r in db.query(Result).all())


def test_publish_with_no_match(db, cohort, make_user):
    approver = make_user("admin")

    outcome = publish_results(db, approver.id, exam_year=1999)

    assert outcome.affected_count == 0
    assert outcome.cohorts == []


def test_publish_needs_an_approver(db, cohort):
    with pytest.raises(InvalidInput):
        publish_results(db, None)


def test_publish_filters_by_program(db, cohort, make_student, make_user, make_subject):
    other = make_student("M1", program="BBA")
    subject = make_subject("AC101")
    add_mark(db, other.id, subject.id, 60, exam_type="final", exam_year=YEAR)

    outcome = publish_results(db, make_user("admin").id, program="BCA")

    assert outcome.affected_count == 3
    assert results_by_roll(db)["M1"].status == "pending"


def test_mark_write_after_publish_reopens_only_that_result(db, cohort, make_user):
    publish_results(db, make_user("admin").id)
    mark = cohort["R3"].marks[0]

    update_mark(db, mark.id, 95)

    results = results_by_roll(db)
    assert results["R3"].status == "pending"
    assert results["R3"].rank is None
    assert results["R1"].status == "published"
    assert [results["R1"].rank, results["R2"].rank] == [1, 1]


def test_list_results_paginates_with_total(db, cohort, make_user):
    publish_results(db, make_user("admin").id)

    first = list_results(db, ResultFilters(semester=1), page=1, limit=2)
    second = list_results(db, ResultFilters(semester=1), page=2, limit=2)

    assert first.total == 3
    assert first.pages == 2
    assert [r.rank for r in first.items] == [1, 1]
    assert [r.roll_no for r in second.items] == ["R3"]


def test_list_results_filters_status(db, cohort):
    assert list_results(db, ResultFilters(status="published")).total == 0
    assert list_results(db, ResultFilters(status="pending")).total == 3


@pytest.mark.parametrize(
    "filters, page, limit",
    [
        (ResultFilters(status="withheld"), 1, 10),
        (ResultFilters(), 0, 10),
        (ResultFilters(), 1, 0),
        (ResultFilters(), 1, 10_000),
    ],
)
def test_list_results_rejects_bad_arguments(db, filters, page, limit):
    with pytest.raises(InvalidInput):
        list_results(db, filters, page=page, limit=limit)


def test_result_detail_has_breakdown(db, cohort):
    result = results_by_roll(db)["R3"]

    detail = get_result_detail(db, result.id)

    assert detail["calculated_gpa"] == result.gpa == 3.2
    assert detail["total_credits"] == 5.0
    assert [g.grade for g in detail["breakdown"]] == ["B+", "B+"]
    assert len(detail["marks"]) == 2

    with pytest.raises(NotFound):
        get_result_detail(db, 999)


def test_statistics_cover_published_results(db, cohort, make_user):
    assert result_statistics(db)["overall"]["total_students"] == 0

    publish_results(db, make_user("admin").id)
    stats = result_statistics(db, semester=1, exam_year=YEAR, top_limit=2)

    overall = stats["overall"]
    assert overall["total_students"] == 3
    assert overall["average_gpa"] == 3.47
    assert overall["min_gpa"] == 3.2
    assert overall["max_gpa"] == 3.6
    assert overall["grade_distribution"]["A"] == 2
    assert overall["grade_distribution"]["B+"] == 1
    assert overall["divisions"] == {"distinction": 2, "first_division": 1, "second_division": 0, "fail": 0}
    assert [r.roll_no for r in stats["top_students"]] == ["R1", "R2"]

    subjects = {s["code"]: s for s in stats["subject_averages"]}
    assert subjects["CS101"]["average_marks"] == 81.67
    assert subjects["CS101"]["total_students"] == 3
    assert subjects["MA101"]["min_marks"] == 75
    assert subjects["MA101"]["max_marks"] == 85


def test_dashboard_counts(db, cohort, make_teacher):
    make_teacher()

    counts = dashboard_counts(db)

    assert counts["students"] == 3
    assert counts["teachers"] == 1
    assert counts["subjects"] == 2
    assert counts["pending_results"] == 3
    assert counts["published_results"] == 0
