import math
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

DEFAULT_BATCH = "251P"
DEFAULT_CREDITS = 20

SEMESTER_NAMES = [
    "Year 3 Semester 1",
    "Year 3 Semester 2",
    "Year 4 Semester 1",
    "Year 4 Semester 2",
]

# (lower bound, label), evaluated high to low
CLASSIFICATION_BANDS = [
    (70.0, "First Class Honours"),
    (60.0, "Upper Second Class"),
    (50.0, "Lower Second Class"),
    (40.0, "Third Class Honours"),
]
FAIL_LABEL = "Fail"

CLASS_ORDER = {
    "First Class Honours": 1,
    "Upper Second Class": 2,
    "Lower Second Class": 3,
    "Third Class Honours": 4,
    "Fail": 5,
}


# ------------------------
# Data model
# ------------------------

def new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Module:
    id: str
    title: str = ""
    credits: int = DEFAULT_CREDITS
    mark: Optional[float] = None


@dataclass
class Semester:
    id: str
    name: str
    modules: List[Module] = field(default_factory=list)


@dataclass
class Profile:
    user_name: str = ""
    user_batch: str = DEFAULT_BATCH
    semesters: List[Semester] = field(default_factory=list)


@dataclass(frozen=True)
class Classification:
    label: str
    tier: int


# ------------------------
# Input coercion
# ------------------------

def _as_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_credits(value: Any) -> int:
    """Credit hours from user input. Anything unusable counts as 0."""
    number = _as_number(value)
    if number is None:
        return 0
    return max(0, int(number))


def parse_mark(value: Any) -> Optional[float]:
    """Percentage mark from user input, or None when ungraded.

    A blank field is ungraded; a mark of 0 is graded.
    """
    return _as_number(value)


# ------------------------
# Core logic
# ------------------------

def round_1dp_half_up(x: float) -> float:
    return float(Decimal(str(x)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def weighted_mean(gc: np.ndarray) -> Tuple[float, float]:
    """
    gc: Nx2 numpy array -> [mark, credits]
    returns: (credit-weighted mean mark, total credits)
    """
    if gc.size == 0:
        return 0.0, 0.0

    marks = gc[:, 0].astype(float)
    credits = gc[:, 1].astype(float)
    total_credits = float(credits.sum())
    if total_credits == 0:
        return 0.0, 0.0

    return float(np.dot(marks, credits) / total_credits), total_credits


def _graded_pairs(modules) -> np.ndarray:
    rows = [(parse_mark(m.mark), parse_credits(m.credits)) for m in modules if parse_mark(m.mark) is not None]
    if not rows:
        return np.zeros((0, 2), dtype=float)
    return np.array(rows, dtype=float)


def _all_modules(profile: Profile):
    for semester in profile.semesters:
        yield from semester.modules


def classify(average: float) -> Classification:
    for tier, (threshold, label) in enumerate(CLASSIFICATION_BANDS, start=1):
        if average >= threshold:
            return Classification(label, tier)
    return Classification(FAIL_LABEL, CLASS_ORDER[FAIL_LABEL])


def weighted_average(profile: Profile) -> float:
    mean, _ = weighted_mean(_graded_pairs(_all_modules(profile)))
    return mean


def semester_average(semester: Semester) -> float:
    mean, _ = weighted_mean(_graded_pairs(semester.modules))
    return mean


def total_credits(profile: Profile) -> int:
    return sum(parse_credits(m.credits) for m in _all_modules(profile))


def semester_credits(semester: Semester) -> int:
    return sum(parse_credits(m.credits) for m in semester.modules)


def graded_credits(profile: Profile) -> int:
    _, credits = weighted_mean(_graded_pairs(_all_modules(profile)))
    return int(credits)


def has_graded_modules(semester: Semester) -> bool:
    return any(parse_mark(m.mark) is not None for m in semester.modules)


def marks_out_of_range(profile: Profile) -> List[Module]:
    return [
        m for m in _all_modules(profile)
        if m.mark is not None and not 0 <= m.mark <= 100
    ]


def required_average_for_target(profile: Profile,
                                target_label: str,
                                remaining_credits: float) -> float:
    """
    Average mark needed across `remaining_credits` still to be taken so the
    final weighted average reaches the lower bound of `target_label`.
    """
    thresholds = {label: threshold for threshold, label in CLASSIFICATION_BANDS}
    if target_label not in thresholds:
        raise ValueError(f"Unknown classification: {target_label!r}")

    Cr = float(remaining_credits)
    if Cr <= 0:
        return float("nan")

    Ma, Ca = weighted_mean(_graded_pairs(_all_modules(profile)))
    return (thresholds[target_label] * (Ca + Cr) - Ma * Ca) / Cr


# ------------------------
# Mutations
# ------------------------

def next_semester_name(count: int) -> str:
    if count < len(SEMESTER_NAMES):
        return SEMESTER_NAMES[count]
    return f"Semester {count + 1}"


def new_module() -> Module:
    return Module(id=new_id())


def new_semester(name: str) -> Semester:
    return Semester(id=new_id(), name=name)


def default_profile(batch: str = DEFAULT_BATCH) -> Profile:
    return Profile(user_batch=batch, semesters=[new_semester(SEMESTER_NAMES[0])])


def find_semester(profile: Profile, semester_id: str) -> Optional[Semester]:
    return next((s for s in profile.semesters if s.id == semester_id), None)


def find_module(semester: Semester, module_id: str) -> Optional[Module]:
    return next((m for m in semester.modules if m.id == module_id), None)


def add_semester(profile: Profile) -> Semester:
    semester = new_semester(next_semester_name(len(profile.semesters)))
    profile.semesters.append(semester)
    return semester


def rename_semester(profile: Profile, semester_id: str, name: str) -> Optional[Semester]:
    semester = find_semester(profile, semester_id)
    if semester is not None:
        semester.name = name
    return semester


def delete_semester(profile: Profile, semester_id: str) -> Optional[Semester]:
    semester = find_semester(profile, semester_id)
    if semester is not None:
        profile.semesters.remove(semester)
    return semester


def add_module(profile: Profile, semester_id: str) -> Optional[Module]:
    semester = find_semester(profile, semester_id)
    if semester is None:
        return None
    module = new_module()
    semester.modules.append(module)
    return module


def update_module(profile: Profile,
                  semester_id: str,
                  module_id: str,
                  field_name: str,
                  value: Any) -> Optional[Module]:
    if field_name not in ("title", "credits", "mark"):
        raise ValueError(f"Modules have no editable field {field_name!r}")

    semester = find_semester(profile, semester_id)
    module = find_module(semester, module_id) if semester is not None else None
    if module is None:
        return None

    if field_name == "title":
        module.title = "" if value is None else str(value)
    elif field_name == "credits":
        module.credits = parse_credits(value)
    else:
        module.mark = parse_mark(value)
    return module


def delete_module(profile: Profile, semester_id: str, module_id: str) -> Optional[Module]:
    semester = find_semester(profile, semester_id)
    module = find_module(semester, module_id) if semester is not None else None
    if module is not None:
        semester.modules.remove(module)
    return module


# ------------------------
# Document (de)serialisation
# ------------------------

def profile_to_dict(profile: Profile) -> Dict[str, Any]:
    return {
        "userName": profile.user_name,
        "userBatch": profile.user_batch,
        "semesters": [
            {
                "id": s.id,
                "name": s.name,
                "modules": [
                    {"id": m.id, "title": m.title, "credits": m.credits, "mark": m.mark}
                    for m in s.modules
                ],
            }
            for s in profile.semesters
        ],
    }


def _module_from_dict(raw: Dict[str, Any]) -> Module:
    return Module(
        id=str(raw.get("id") or new_id()),
        title=str(raw.get("title") or ""),
        credits=parse_credits(raw.get("credits")),
        mark=parse_mark(raw.get("mark")),
    )


def _semester_from_dict(raw: Dict[str, Any]) -> Semester:
    return Semester(
        id=str(raw.get("id") or new_id()),
        name=str(raw.get("name") or ""),
        modules=[_module_from_dict(m) for m in raw.get("modules") or []],
    )


def profile_from_dict(doc: Any) -> Profile:
    """
    Accepts the full profile document, or a bare list of semesters as
    written by earlier versions of the calculator.
    """
    if isinstance(doc, list):
        return Profile(semesters=[_semester_from_dict(s) for s in doc])
    if not isinstance(doc, dict):
        raise ValueError(f"Unrecognised profile document: {type(doc).__name__}")

    return Profile(
        user_name=str(doc.get("userName") or ""),
        user_batch=DEFAULT_BATCH if doc.get("userBatch") is None else str(doc["userBatch"]),
        semesters=[_semester_from_dict(s) for s in doc.get("semesters") or []],
    )
