import logging
import os
import random
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from sqlmodel import Session

from .catalog import filter_by_category, sort_templates
from .csv_io import export_csv, generate_csv_template, import_csv
from .db import get_session, init_db
from .engine import key_of
from .errors import (
    ConcurrentUpdateError,
    DataIntegrityError,
    DuplicateTemplateError,
    InstanceNotFoundError,
    InsufficientPointsError,
    MemberNotFoundError,
    TemplateNotFoundError,
    TemplateUnavailableError,
    ZadachiError,
)
from .household import RESET_KINDS
from .models import Member, TaskTemplate
from .selection import draw_candidates
from .store import (
    SqlPointsLedger,
    SqlUserDirectory,
    accept_task,
    add_template,
    apply_reset,
    complete_task,
    create_member,
    delete_member,
    delete_template,
    load_assignments,
    load_catalog,
    load_household,
    redeem_points,
    remove_task,
    save_household,
)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logger = logging.getLogger(__name__)

ERROR_STATUS = (
    (DuplicateTemplateError, 409),
    (TemplateUnavailableError, 409),
    (ConcurrentUpdateError, 409),
    (InsufficientPointsError, 400),
    (DataIntegrityError, 422),
    (TemplateNotFoundError, 404),
    (InstanceNotFoundError, 404),
    (MemberNotFoundError, 404),
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db()
    yield


app = FastAPI(title="Zadachi chore board", lifespan=lifespan)


@app.exception_handler(ZadachiError)
async def zadachi_error_handler(request: Request, exc: ZadachiError):
    status_code = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 400)
    logger.info("%s %s -> %d: %s", request.method, request.url.path, status_code, exc)
    return JSONResponse({"detail": str(exc)}, status_code=status_code)


def get_now() -> datetime:
    return datetime.now()


def template_payload(template: TaskTemplate) -> dict:
    payload = template.model_dump(exclude={"position"})
    payload["key"] = key_of(template)
    return payload


def member_payload(member: Member, balance: int) -> dict:
    return {
        "id": member.id,
        "first_name": member.first_name,
        "last_name": member.last_name,
        "display_name": member.display_name,
        "points": balance,
    }


def require_member(session: Session, user_id: str) -> Member:
    return SqlUserDirectory(session).get(user_id)


def csv_response(content: str, filename: str) -> Response:
    return Response(
        content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename=\"{filename}\""},
    )


@app.get("/members")
def list_members(session: Session = Depends(get_session)):
    balances = SqlPointsLedger(session).balances()
    return [member_payload(m, balances.get(m.id, 0)) for m in SqlUserDirectory(session).members()]


@app.post("/members", status_code=201)
async def add_member(
    first_name: str = Form(...),
    last_name: str = Form(""),
    starting_points: int = Form(0),
    session: Session = Depends(get_session),
):
    try:
        member = create_member(session, first_name, last_name, starting_points)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return member_payload(member, SqlPointsLedger(session).balance(member.id))


@app.delete("/members/{user_id}")
async def remove_member(user_id: str, session: Session = Depends(get_session)):
    try:
        delete_member(session, user_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"status": "deleted"}


@app.get("/members/{user_id}/points")
def member_points(user_id: str, session: Session = Depends(get_session)):
    require_member(session, user_id)
    ledger = SqlPointsLedger(session)
    return {"balance": ledger.balance(user_id), "transactions": ledger.history(user_id)}


@app.post("/members/{user_id}/redeem")
async def redeem_member_points(
    user_id: str,
    points: int = Form(...),
    session: Session = Depends(get_session),
):
    require_member(session, user_id)
    try:
        balance = redeem_points(session, user_id, points)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"balance": balance, "redeemed": points}


@app.get("/templates")
def list_templates(
    category: Optional[str] = None,
    sort: str = "title",
    direction: str = "asc",
    session: Session = Depends(get_session),
):
    templates = filter_by_category(load_catalog(session), category)
    try:
        templates = sort_templates(templates, sort, direction)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return [template_payload(t) for t in templates]


@app.post("/templates", status_code=201)
async def create_template(
    title: str = Form(...),
    category: str = Form(...),
    points: int = Form(...),
    timeframe: str = Form("daily"),
    frequency: int = Form(1),
    allowed_users: list[str] = Form([]),
    session: Session = Depends(get_session),
):
    template = add_template(
        session,
        TaskTemplate(
            title=title.strip(),
            category=category,
            points=points,
            timeframe=timeframe,
            frequency=frequency,
            allowed_users=allowed_users,
        ),
    )
    return template_payload(template)


@app.get("/templates/csv/template")
def download_csv_template():
    return csv_response(generate_csv_template(), "zadachi-template.csv")


@app.get("/templates/csv/export")
def export_templates_csv(session: Session = Depends(get_session)):
    return csv_response(export_csv(load_catalog(session), SqlUserDirectory(session)), "zadachi-export.csv")


@app.post("/templates/csv/import")
async def import_templates_csv(
    file: UploadFile = File(...),
    session: Session = Depends(get_session),
):
    if file.content_type not in ("text/csv", "application/vnd.ms-excel") and not (
        file.filename or ""
    ).lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="Please upload a CSV file")
    content = await file.read()
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV must be UTF-8 encoded")
    household = load_household(session)
    result = import_csv(text, household.catalog, SqlUserDirectory(session))
    if result.imported:
        save_household(session, household, catalog=True)
    return {"imported": result.imported, "skipped": result.skipped, "errors": result.errors}


@app.put("/templates/{key:path}")
async def edit_template(
    key: str,
    title: str = Form(...),
    category: str = Form(...),
    points: int = Form(...),
    timeframe: str = Form(...),
    frequency: int = Form(...),
    allowed_users: list[str] = Form([]),
    session: Session = Depends(get_session),
):
    household = load_household(session)
    template = household.catalog.edit_template(
        key,
        title=title.strip(),
        category=category,
        points=points,
        timeframe=timeframe,
        frequency=frequency,
        allowed_users=allowed_users,
    )
    save_household(session, household, catalog=True)
    return template_payload(template)


@app.delete("/templates/{key:path}")
async def delete_catalog_template(key: str, session: Session = Depends(get_session)):
    delete_template(session, key)
    return {"status": "deleted", "key": key}


@app.get("/members/{user_id}/available")
def available_for_member(
    user_id: str,
    session: Session = Depends(get_session),
    now: datetime = Depends(get_now),
):
    require_member(session, user_id)
    household = load_household(session)
    return [template_payload(t) for t in household.available_templates(user_id, now)]


@app.get("/members/{user_id}/draw")
def draw_for_member(
    user_id: str,
    session: Session = Depends(get_session),
    now: datetime = Depends(get_now),
):
    require_member(session, user_id)
    household = load_household(session)
    candidates = draw_candidates(household.available_templates(user_id, now), random.Random())
    return [template_payload(t) for t in candidates]


@app.post("/members/{user_id}/accept", status_code=201)
async def accept_template(
    user_id: str,
    template_key: str = Form(...),
    session: Session = Depends(get_session),
    now: datetime = Depends(get_now),
):
    require_member(session, user_id)
    return accept_task(session, template_key, user_id, now)


@app.get("/members/{user_id}/tasks")
def member_tasks(user_id: str, session: Session = Depends(get_session)):
    require_member(session, user_id)
    return load_assignments(session).for_user(user_id)


@app.post("/tasks/{instance_id}/complete")
async def complete_instance(instance_id: str, session: Session = Depends(get_session)):
    points = complete_task(session, instance_id)
    return {"status": "completed", "points": points}


@app.delete("/tasks/{instance_id}")
async def remove_instance(instance_id: str, session: Session = Depends(get_session)):
    instance = remove_task(session, instance_id)
    return {"status": "removed", "id": instance.id}


@app.post("/reset/{kind}")
async def reset(kind: str, session: Session = Depends(get_session)):
    if kind not in RESET_KINDS:
        raise HTTPException(status_code=400, detail=f"Unknown reset: {kind}")
    household = apply_reset(session, kind)
    return {
        "reset": kind,
        "templates": len(household.catalog),
        "usage": len(household.usage),
        "assigned": len(household.assignments),
    }


@app.get("/health")
def health():
    return {"status": "ok"}
