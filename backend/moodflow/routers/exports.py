# exports router: offline reports built by the export filter
# json returns the dataset itself; csv is one renderer over the same dataset

import logging
from typing import Literal

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from moodflow.models.export import ExportConfig, ExportRequest, ReportDocument
from moodflow.models.user import Viewer
from moodflow.services import export as export_service
from moodflow.services.db import Database, get_db
from moodflow.dependencies import get_current_user

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/exports", tags=["exports"])


@router.post("/{patient_id}", response_model=ReportDocument)
async def export_report(
    patient_id: str,
    body: ExportRequest,
    format: Literal["json", "csv"] = Query("json"),
    current_user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    viewer = Viewer.from_user(current_user)
    config = ExportConfig(
        **body.model_dump(),
        requester_id=viewer.id,
        requester_role=viewer.role,
    )
    report = await export_service.export_report(db, viewer, patient_id, config)

    if format == "csv":
        return Response(
            content=export_service.render_csv(report),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="moodflow_export_{patient_id}.csv"'},
        )
    return ReportDocument(**report)
