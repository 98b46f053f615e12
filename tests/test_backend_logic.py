import math
import random

import numpy as np
import pytest

from credit_calculator import backend_logic as bl
from credit_calculator.backend_logic import Module, Profile, Semester


def _profile(*semesters):
    return Profile(semesters=[Semester(id=f"s{i}", name=f"S{i}", modules=list(mods))
                              for i, mods in enumerate(semesters)])


def _m(credits, mark, title=""):
    return Module(id=bl.new_id(), title=title, credits=credits, mark=mark)


# ------------------------
# classify
# ------------------------

@pytest.mark.parametrize("average, label, tier", [
    (100, "First Class Honours", 1),
    (70, "First Class Honours", 1),
    (69.999, "Upper Second Class", 2),
    (60, "Upper Second Class", 2),
    (59.9, "Lower Second Class", 3),
    (50, "Lower Second Class", 3),
    (40, "Third Class Honours", 4),
    (39.99, "Fail", 5),
    (0, "Fail", 5),
    (-5, "Fail", 5),
])
def test_classify_bands(average, label, tier):
    result = bl.classify(average)
    assert result.label == label
    assert result.tier == tier


# ------------------------
# weighted average
# ------------------------

def test_no_graded_modules_averages_zero_and_fails():
    profile = _profile([_m(20, None), _m(40, None)], [])
    assert bl.weighted_average(profile) == 0
    assert bl.classify(bl.weighted_average(profile)).label == "Fail"


def test_empty_profile():
    assert bl.weighted_average(Profile()) == 0
    assert bl.total_credits(Profile()) == 0


def test_scenario_upper_second():
    profile = _profile([_m(20, 75), _m(40, 55)])
    avg = bl.weighted_average(profile)
    assert avg == pytest.approx((20 * 75 + 40 * 55) / 60)
    assert bl.classify(avg).label == "Upper Second Class"


def test_zero_mark_counts_but_absent_does_not():
    graded_zero = _profile([_m(20, 80), _m(20, 0)])
    ungraded = _profile([_m(20, 80), _m(20, None)])
    assert bl.weighted_average(graded_zero) == pytest.approx(40)
    assert bl.weighted_average(ungraded) == pytest.approx(80)


def test_zero_credit_graded_module_contributes_nothing():
    profile = _profile([_m(0, 10), _m(20, 60)])
    assert bl.weighted_average(profile) == pytest.approx(60)


def test_only_zero_credit_modules_averages_zero():
    assert bl.weighted_average(_profile([_m(0, 90)])) == 0


def test_average_invariant_under_reordering():
    rng = random.Random(7)
    modules = [_m(rng.choice([10, 15, 20, 30, 40]), rng.uniform(0, 100)) for _ in range(12)]
    expected = sum(m.mark * m.credits for m in modules) / sum(m.credits for m in modules)

    for _ in range(5):
        shuffled = modules[:]
        rng.shuffle(shuffled)
        split = rng.randint(0, len(shuffled))
        profile = _profile(shuffled[:split], shuffled[split:])
        assert bl.weighted_average(profile) == pytest.approx(expected)


def test_semester_average_scoped_to_semester():
    profile = _profile([_m(20, 70)], [_m(20, 50), _m(20, None)])
    assert bl.semester_average(profile.semesters[0]) == pytest.approx(70)
    assert bl.semester_average(profile.semesters[1]) == pytest.approx(50)
    assert bl.semester_average(Semester(id="x", name="empty")) == 0


def test_total_credits_ignores_grading_status():
    profile = _profile([_m(20, 70), _m(40, None)], [_m(15, None)])
    assert bl.total_credits(profile) == 75
    assert bl.graded_credits(profile) == 20
    assert bl.semester_credits(profile.semesters[0]) == 60


def test_has_graded_modules():
    profile = _profile([_m(20, None)], [_m(20, 0)])
    assert not bl.has_graded_modules(profile.semesters[0])
    assert bl.has_graded_modules(profile.semesters[1])


def test_out_of_range_marks_are_counted_and_reported():
    profile = _profile([_m(20, 120), _m(20, 60)])
    assert bl.weighted_average(profile) == pytest.approx(90)
    assert [m.mark for m in bl.marks_out_of_range(profile)] == [120]


def test_weighted_mean_array():
    gc = np.array([[75.0, 20.0], [55.0, 40.0]])
    mean, credits = bl.weighted_mean(gc)
    assert credits == 60.0
    assert mean == pytest.approx(61.6666667)
    assert bl.weighted_mean(np.zeros((0, 2))) == (0.0, 0.0)


def test_round_1dp_half_up():
    assert bl.round_1dp_half_up(61.65) == 61.7
    assert bl.round_1dp_half_up(61.64) == 61.6


# ------------------------
# parsing
# ------------------------

@pytest.mark.parametrize("raw, expected", [
    (20, 20), ("20", 20), ("20.7", 20), (15.9, 15), ("", 0), (None, 0),
    ("abc", 0), (-10, 0), (float("nan"), 0), (float("inf"), 0), (True, 0), (" 30 ", 30),
])
def test_parse_credits(raw, expected):
    assert bl.parse_credits(raw) == expected


@pytest.mark.parametrize("raw, expected", [
    ("", None), (None, None), ("  ", None), ("abc", None), (float("nan"), None),
    ("0", 0.0), (0, 0.0), ("72.5", 72.5), (105, 105.0),
])
def test_parse_mark(raw, expected):
    assert bl.parse_mark(raw) == expected


# ------------------------
# mutations
# ------------------------

def test_default_profile():
    profile = bl.default_profile()
    assert profile.user_batch == "251P"
    assert profile.user_name == ""
    assert [s.name for s in profile.semesters] == ["Year 3 Semester 1"]
    assert profile.semesters[0].modules == []


def test_semester_names_follow_academic_sequence():
    profile = bl.default_profile()
    for _ in range(4):
        bl.add_semester(profile)
    assert [s.name for s in profile.semesters] == [
        "Year 3 Semester 1", "Year 3 Semester 2", "Year 4 Semester 1",
        "Year 4 Semester 2", "Semester 5",
    ]


def test_add_module_defaults_and_order():
    profile = bl.default_profile()
    sid = profile.semesters[0].id
    first = bl.add_module(profile, sid)
    second = bl.add_module(profile, sid)
    assert first.credits == 20 and first.mark is None and first.title == ""
    assert [m.id for m in profile.semesters[0].modules] == [first.id, second.id]
    assert first.id != second.id


def test_update_module_coerces_fields():
    profile = bl.default_profile()
    sid = profile.semesters[0].id
    module = bl.add_module(profile, sid)

    bl.update_module(profile, sid, module.id, "title", "Databases")
    bl.update_module(profile, sid, module.id, "credits", "not a number")
    bl.update_module(profile, sid, module.id, "mark", "64.5")
    assert (module.title, module.credits, module.mark) == ("Databases", 0, 64.5)

    bl.update_module(profile, sid, module.id, "mark", "")
    assert module.mark is None


def test_update_module_rejects_unknown_field():
    profile = bl.default_profile()
    sid = profile.semesters[0].id
    module = bl.add_module(profile, sid)
    with pytest.raises(ValueError):
        bl.update_module(profile, sid, module.id, "id", "x")


def test_unknown_ids_are_no_ops():
    profile = bl.default_profile()
    assert bl.add_module(profile, "missing") is None
    assert bl.update_module(profile, "missing", "m", "title", "x") is None
    assert bl.delete_module(profile, profile.semesters[0].id, "missing") is None
    assert bl.delete_semester(profile, "missing") is None
    assert bl.rename_semester(profile, "missing", "x") is None


def test_delete_semester_cascades_only_its_modules():
    profile = _profile([_m(20, 70), _m(40, 60)], [_m(30, 50)])
    doomed = profile.semesters[0]
    survivor_ids = [m.id for m in profile.semesters[1].modules]

    bl.delete_semester(profile, doomed.id)

    assert [s.id for s in profile.semesters] == ["s1"]
    assert [m.id for m in profile.semesters[0].modules] == survivor_ids
    assert bl.total_credits(profile) == 30


def test_delete_module():
    profile = _profile([_m(20, 70), _m(40, 60)])
    sid = profile.semesters[0].id
    target = profile.semesters[0].modules[0]
    bl.delete_module(profile, sid, target.id)
    assert [m.credits for m in profile.semesters[0].modules] == [40]


# ------------------------
# planner
# ------------------------

def test_required_average_for_target():
    profile = _profile([_m(60, 55)])
    needed = bl.required_average_for_target(profile, "Upper Second Class", 60)
    assert needed == pytest.approx(65)
    assert bl.classify((55 * 60 + needed * 60) / 120).label == "Upper Second Class"


def test_required_average_without_remaining_credits_is_nan():
    assert math.isnan(bl.required_average_for_target(Profile(), "First Class Honours", 0))


def test_required_average_unknown_target():
    with pytest.raises(ValueError):
        bl.required_average_for_target(Profile(), "Distinction", 20)


# ------------------------
# documents
# ------------------------

def test_profile_document_shape():
    profile = Profile(user_name="Ada", user_batch="252F", semesters=[
        Semester(id="s1", name="Year 3 Semester 1",
                 modules=[Module(id="m1", title="Compilers", credits=20, mark=None)]),
    ])
    assert bl.profile_to_dict(profile) == {
        "userName": "Ada",
        "userBatch": "252F",
        "semesters": [{
            "id": "s1",
            "name": "Year 3 Semester 1",
            "modules": [{"id": "m1", "title": "Compilers", "credits": 20, "mark": None}],
        }],
    }


def test_profile_from_dict_restores_profile():
    profile = _profile([_m(20, 75, "A"), _m(40, None, "B")], [_m(10, 0, "C")])
    profile.user_name = "Grace"
    assert bl.profile_from_dict(bl.profile_to_dict(profile)) == profile


def test_profile_from_legacy_semester_list():
    legacy = [{
        "id": 1712345678901,
        "name": "Year 3 Semester 1",
        "modules": [
            {"id": 1712345678901.42, "title": "Networks", "credits": "20", "mark": ""},
            {"id": 1712345678902.1, "title": "AI", "credits": 40, "mark": "68"},
        ],
    }]
    profile = bl.profile_from_dict(legacy)
    assert profile.user_batch == "251P"
    assert profile.semesters[0].id == "1712345678901"
    networks, ai = profile.semesters[0].modules
    assert networks.mark is None and networks.credits == 20
    assert ai.mark == 68.0


def test_profile_from_dict_rejects_other_shapes():
    with pytest.raises(ValueError):
        bl.profile_from_dict("not a document")


def test_profile_from_dict_defaults_batch_only_when_missing():
    assert bl.profile_from_dict({"semesters": []}).user_batch == "251P"
    assert bl.profile_from_dict({"userBatch": None}).user_batch == "251P"
    assert bl.profile_from_dict({"userBatch": ""}).user_batch == ""
