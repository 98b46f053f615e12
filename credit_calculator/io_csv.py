import pandas as pd
from typing import List

from credit_calculator.backend_logic import Module, Profile, new_id, parse_credits, parse_mark

# ------------------------
# CSV helpers (UI-side)
# ------------------------

EXPORT_COLUMNS = ["Semester", "Title", "Credits", "Mark"]


def _normalise_cols(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = [str(c).strip().lower() for c in df.columns]
    # allow singular "credit" and "grade" for "mark"
    if "credit" in df.columns and "credits" not in df.columns:
        df = df.rename(columns={"credit": "credits"})
    if "grade" in df.columns and "mark" not in df.columns:
        df = df.rename(columns={"grade": "mark"})
    return df


def read_csv_upload(uploaded_file) -> pd.DataFrame:
    df = pd.read_csv(uploaded_file)
    return _normalise_cols(df)


def validate_modules_csv(df: pd.DataFrame) -> pd.DataFrame:
    required = {"title", "credits"}
    missing = required - set(df.columns)
    if missing:
        raise ValueError(f"Missing columns: {sorted(missing)}. Expected: Title, Credits, Mark (optional).")
    out = df[["title", "credits"]].copy()
    out["mark"] = df["mark"] if "mark" in df.columns else None
    return out.rename(columns={"title": "Title", "credits": "Credits", "mark": "Mark"})


def _cell(value):
    return None if pd.isna(value) else value


def parse_modules(df: pd.DataFrame) -> List[Module]:
    """
    Blank marks stay ungraded; rows with neither a title nor credits are skipped.
    """
    modules = []
    for _, row in df.iterrows():
        title = _cell(row.get("Title"))
        title = "" if title is None else str(title).strip()
        credits = parse_credits(_cell(row.get("Credits")))
        if not title and credits == 0:
            continue
        modules.append(
            Module(id=new_id(), title=title, credits=credits, mark=parse_mark(_cell(row.get("Mark"))))
        )
    return modules


def profile_to_frame(profile: Profile) -> pd.DataFrame:
    rows = [
        {"Semester": s.name, "Title": m.title, "Credits": m.credits, "Mark": m.mark}
        for s in profile.semesters
        for m in s.modules
    ]
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS)


def export_csv(profile: Profile) -> str:
    return profile_to_frame(profile).to_csv(index=False)
