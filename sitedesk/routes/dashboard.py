from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ..errors import DomainValidationError, NotFoundError, StaleResponseError, WriteError
from ..schemas.daily_logs import CreateDailyLogInput, DailyLogType, StatusChangeInput
from ..schemas.projects import CreateProjectInput
from ..schemas.shifts import CloseoutShiftInput, CreateShiftInput, ShiftStatus
from ..store.store import ProjectStore


router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def get_store(request: Request) -> ProjectStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Store is not ready")
    return store


async def _run(coro):
    try:
        return await coro
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except WriteError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except DomainValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except StaleResponseError as e:
        raise HTTPException(status_code=409, detail=str(e))


def _current_project(store: ProjectStore) -> str:
    if store.current_project_id is None:
        raise HTTPException(status_code=409, detail="No project selected")
    return store.current_project_id


@router.get("/status")
async def status(store: ProjectStore = Depends(get_store)):
    return {
        "project_id": store.current_project_id,
        "connection": store.connection_state.value,
        "connection_error": store.connection_error,
        "loading": store.loading,
        "error": store.error,
    }


# Projects

@router.get("/projects")
async def list_projects(include_archived: bool = False, store: ProjectStore = Depends(get_store)):
    await _run(store.fetch_projects())
    return store.project_list(include_archived=include_archived)


@router.post("/projects", status_code=201)
async def create_project(body: CreateProjectInput, store: ProjectStore = Depends(get_store)):
    return await _run(store.create_project(body))


@router.post("/projects/{project_id}/select")
async def select_project(project_id: str, store: ProjectStore = Depends(get_store)):
    await _run(store.set_current_project(project_id))
    return {"project_id": store.current_project_id, "connection": store.connection_state.value}


# Daily logs

@router.get("/daily-logs")
async def list_daily_logs(
    log_date: Optional[date] = Query(None),
    log_type: Optional[DailyLogType] = Query(None),
    store: ProjectStore = Depends(get_store),
):
    _current_project(store)
    return store.daily_logs(log_date=log_date, log_type=log_type.value if log_type else None)


@router.post("/daily-logs", status_code=201)
async def create_daily_log(body: CreateDailyLogInput, store: ProjectStore = Depends(get_store)):
    _current_project(store)
    return await _run(store.add_daily_log(body))


@router.post("/daily-logs/{log_id}/status")
async def change_daily_log_status(log_id: str, body: StatusChangeInput, store: ProjectStore = Depends(get_store)):
    return await _run(store.toggle_status(log_id, body.status))


@router.get("/site-issues")
async def list_site_issues(open_only: bool = False, store: ProjectStore = Depends(get_store)):
    _current_project(store)
    return store.open_site_issues() if open_only else store.site_issues()


# Shifts

@router.get("/shifts")
async def list_shifts(status: Optional[ShiftStatus] = Query(None), store: ProjectStore = Depends(get_store)):
    _current_project(store)
    return store.shifts(status=status.value if status else None)


@router.post("/shifts", status_code=201)
async def create_shift(body: CreateShiftInput, store: ProjectStore = Depends(get_store)):
    _current_project(store)
    return await _run(store.create_shift(body))


@router.get("/shifts/{shift_id}")
async def get_shift(shift_id: str, store: ProjectStore = Depends(get_store)):
    shift = store.shift(shift_id)
    if shift is None:
        raise HTTPException(status_code=404, detail="Shift not found")
    return {"shift": shift, "workers": store.shift_workers(shift_id)}


@router.post("/shifts/{shift_id}/activate")
async def activate_shift(shift_id: str, store: ProjectStore = Depends(get_store)):
    return await _run(store.activate_shift(shift_id))


@router.post("/shifts/{shift_id}/closeout")
async def closeout_shift(shift_id: str, body: CloseoutShiftInput, store: ProjectStore = Depends(get_store)):
    return await _run(store.closeout_shift(shift_id, body))


@router.post("/shifts/{shift_id}/cancel")
async def cancel_shift(shift_id: str, store: ProjectStore = Depends(get_store)):
    return await _run(store.cancel_shift(shift_id))


# Documents

@router.get("/documents")
async def list_documents(
    folder_id: Optional[str] = Query(None),
    unsorted: bool = Query(False),
    store: ProjectStore = Depends(get_store),
):
    _current_project(store)
    if unsorted:
        return store.unsorted_documents()
    if folder_id:
        return store.documents_in_folder(folder_id)
    return store.filter_documents()
