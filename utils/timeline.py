# utils/timeline.py
from typing import Dict, Iterable, Optional

import pandas as pd

from utils.board import COLUMN_TITLES

TIMELINE_COLUMNS = ["Item", "Start", "Finish", "Status", "Priority", "Assignee"]

def timeline_df(tasks: Iterable[Dict], handles: Optional[Dict[int, str]] = None) -> pd.DataFrame:
    """Rows for the Gantt view; tasks without both dates are left out."""
    handles = handles or {}
    rows = []
    for t in tasks:
        rows.append({
            "Item": t["title"],
            "Start": t["start_date"],
            "Finish": t["end_date"],
            "Status": COLUMN_TITLES.get(t["status"], t["status"]),
            "Priority": t["priority"],
            "Assignee": handles.get(t["assignee_id"]),
        })
    df = pd.DataFrame(rows, columns=TIMELINE_COLUMNS)
    if not df.empty:
        df = df.dropna(subset=["Start", "Finish"], how="any").copy()
        df["Start"] = pd.to_datetime(df["Start"])
        df["Finish"] = pd.to_datetime(df["Finish"])
        # single-day tasks still need a visible bar
        same_day = df["Finish"] <= df["Start"]
        df.loc[same_day, "Finish"] = df.loc[same_day, "Start"] + pd.Timedelta(days=1)
        df = df.sort_values(["Start", "Finish", "Item"]).reset_index(drop=True)
    return df
