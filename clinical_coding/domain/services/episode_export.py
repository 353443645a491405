"""Episode Export.

Flat CSV and JSON views of recent episodes for downstream reporting. The
CSV keeps the column headers reporting tools already consume.
"""

from typing import List, Sequence

import pandas as pd

from clinical_coding.domain.models import Episode

EXPORT_LIMIT = 500

CSV_COLUMNS = [
    "Id",
    "NHSNumber",
    "PatientName",
    "AdmissionDate",
    "DischargeDate",
    "Specialty",
    "Status",
]


def episodes_to_frame(episodes: Sequence[Episode]) -> pd.DataFrame:
    """One row per episode with dates as ISO strings and a blank open discharge."""
    rows = [
        {
            "Id": e.episode_id,
            "NHSNumber": e.nhs_number,
            "PatientName": e.patient_name,
            "AdmissionDate": e.admission_date.isoformat(),
            "DischargeDate": e.discharge_date.isoformat() if e.discharge_date else "",
            "Specialty": e.specialty,
            "Status": e.status.value,
        }
        for e in episodes
    ]
    return pd.DataFrame(rows, columns=CSV_COLUMNS)


def episodes_to_csv(episodes: Sequence[Episode]) -> str:
    # pandas quotes fields containing commas or quotes
    return episodes_to_frame(episodes).to_csv(index=False, lineterminator="\n")


def episodes_to_records(episodes: Sequence[Episode]) -> List[dict]:
    return [e.model_dump(mode="json", by_alias=True) for e in episodes]
