"""
KPI calculations and exports over inspections.

Rates are whole percentages rounded half up. The compliance rate is computed
over answered criteria only; the completion rate over the rows written so far.
"""

import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import pandas as pd  # type: ignore[import-untyped]

from .catalog import GridCatalog
from .models import Inspection, InspectionProgress, SavedResponse

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    "draft": "Brouillon",
    "in_progress": "En cours",
    "completed": "Terminée",
    "validated": "Validée",
    "archived": "Archivée",
}

CSV_COLUMNS = [
    "Établissement",
    "Grille",
    "Inspecteur(s)",
    "Date",
    "Statut",
    "Total critères",
    "Réponses",
    "Conforme",
    "Non-conforme",
    "% Conformité",
]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def percent(part: int, whole: int) -> int:
    """Whole percentage rounded half up; 0 when the whole is empty."""
    if whole <= 0:
        return 0
    return round_half_up(part * 100 / whole)


def status_label(status: Any) -> str:
    value = getattr(status, "value", status)
    return STATUS_LABELS.get(value, str(value))


def _conforme(response: Union[SavedResponse, Mapping[str, Any]]) -> Optional[bool]:
    if isinstance(response, Mapping):
        return response.get("conforme")
    return response.conforme


def compliance_rate(
    responses: Iterable[Union[SavedResponse, Mapping[str, Any]]]
) -> int:
    """Share of conforme answers among answered responses."""
    verdicts = [_conforme(r) for r in responses]
    answered = [v for v in verdicts if v is not None]
    return percent(sum(1 for v in answered if v is True), len(answered))


def progress_stats(progress: InspectionProgress) -> Dict[str, int]:
    return {
        "total_criteria": progress.total,
        "answered": progress.answered,
        "pending": progress.pending,
        "conforme": progress.conforme,
        "non_conforme": progress.non_conforme,
        "completion_rate": percent(progress.answered, progress.total),
        "compliance_rate": percent(progress.conforme, progress.answered),
    }


def inspection_stats(inspection: Optional[Inspection]) -> Optional[Dict[str, int]]:
    """Progress counts and rates of one inspection; None without an inspection."""
    if inspection is None:
        return None
    return progress_stats(inspection.progress)


def aggregate_stats(inspections: Sequence[Inspection]) -> Dict[str, Any]:
    """
    Totals across inspections.

    Returns:
        Inspection count, count per status, summed criteria counts and the
        mean of per-inspection compliance rates
    """
    by_status: Dict[str, int] = {}
    total_criteria = total_conforme = total_non_conforme = 0
    rates: List[int] = []

    for inspection in inspections:
        status = inspection.status.value
        by_status[status] = by_status.get(status, 0) + 1
        stats = progress_stats(inspection.progress)
        total_criteria += stats["total_criteria"]
        total_conforme += stats["conforme"]
        total_non_conforme += stats["non_conforme"]
        rates.append(stats["compliance_rate"])

    return {
        "total_inspections": len(inspections),
        "by_status": by_status,
        "total_criteria": total_criteria,
        "total_conforme": total_conforme,
        "total_non_conforme": total_non_conforme,
        "average_compliance_rate": round_half_up(sum(rates) / len(rates))
        if rates
        else 0,
    }


def trend(inspections: Sequence[Inspection]) -> List[Dict[str, Any]]:
    """Average compliance per inspection date, oldest date first."""
    by_date: Dict[str, List[Inspection]] = {}
    for inspection in inspections:
        day = inspection.date_inspection or inspection.created_at.date()
        by_date.setdefault(day.isoformat(), []).append(inspection)

    return [
        {
            "date": day,
            "compliance_rate": aggregate_stats(group)["average_compliance_rate"],
            "total_inspections": len(group),
        }
        for day, group in sorted(by_date.items())
    ]


def _grid_name(grid_id: str, catalog: Optional[GridCatalog]) -> str:
    grid = catalog.find(grid_id) if catalog is not None else None
    return grid.name if grid is not None else grid_id


def inspections_frame(
    inspections: Sequence[Inspection], catalog: Optional[GridCatalog] = None
) -> pd.DataFrame:
    """One row per inspection with the columns of the CSV export."""
    rows = []
    for inspection in inspections:
        progress = inspection.progress
        rows.append(
            [
                inspection.establishment,
                _grid_name(inspection.grid_id, catalog),
                ", ".join(inspection.inspectors),
                inspection.date_inspection.isoformat()
                if inspection.date_inspection
                else "",
                status_label(inspection.status),
                progress.total,
                progress.answered,
                progress.conforme,
                progress.non_conforme,
                f"{percent(progress.conforme, progress.answered)}%",
            ]
        )
    return pd.DataFrame(rows, columns=CSV_COLUMNS)


def export_csv(
    inspections: Sequence[Inspection],
    catalog: Optional[GridCatalog] = None,
    path: Optional[Union[str, Path]] = None,
) -> str:
    """
    Inspection summary as CSV.

    Returns:
        CSV text (empty when there are no inspections); also written to
        ``path`` when given
    """
    if not inspections:
        content = ""
    else:
        content = inspections_frame(inspections, catalog).to_csv(
            index=False, lineterminator="\n"
        )
    if path is not None:
        Path(path).write_text(content, encoding="utf-8")
        logger.info(f"Exported {len(inspections)} inspection(s) to {path}")
    return content


def export_excel(
    inspections: Sequence[Inspection],
    path: Union[str, Path],
    catalog: Optional[GridCatalog] = None,
) -> Path:
    """Write the inspection summary to an .xlsx workbook."""
    output_path = Path(path)
    inspections_frame(inspections, catalog).to_excel(
        output_path, index=False, sheet_name="Inspections", engine="openpyxl"
    )
    logger.info(f"Exported {len(inspections)} inspection(s) to {output_path}")
    return output_path


def _inspection_header(inspection: Inspection) -> Dict[str, Any]:
    return inspection.model_dump(mode="json", exclude={"progress", "updated_at"})


def _response_dump(responses: Iterable[SavedResponse]) -> List[Dict[str, Any]]:
    return [response.model_dump(mode="json") for response in responses]


def export_json(
    inspections: Sequence[Inspection],
    responses: Optional[Mapping[str, Iterable[SavedResponse]]] = None,
) -> str:
    """Inspections with stats and, when given, their responses, as JSON."""
    responses = responses or {}
    data = []
    for inspection in inspections:
        item = _inspection_header(inspection)
        item["progress"] = {
            key: value
            for key, value in progress_stats(inspection.progress).items()
            if key != "pending"
        }
        item["responses"] = _response_dump(responses.get(inspection.id, []))
        data.append(item)
    return json.dumps(data, indent=2, ensure_ascii=False)


def inspection_report(
    inspection: Inspection, responses: Iterable[SavedResponse] = ()
) -> Dict[str, Any]:
    """Single-inspection report: header, summary and answers."""
    return {
        "inspection": _inspection_header(inspection),
        "summary": progress_stats(inspection.progress),
        "responses": _response_dump(responses),
    }
