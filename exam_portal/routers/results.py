"""Student result list and report card."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from exam_portal.database import get_session
from exam_portal.deps import require_login
from exam_portal.services.policy import Principal
from exam_portal.services.results_service import get_report_card, list_results

router = APIRouter()


@router.get("")
def api_list_results(
    student_id: Optional[int] = Query(None),
    session: Session = Depends(get_session),
    principal: Principal = Depends(require_login),
):
    return list_results(session, principal, student_id)


@router.get("/report-card")
def api_report_card(
    student_id: Optional[int] = Query(None),
    session: Session = Depends(get_session),
    principal: Principal = Depends(require_login),
):
    return get_report_card(session, principal, student_id)
