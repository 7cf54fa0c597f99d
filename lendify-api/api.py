from fastapi import (
    FastAPI, HTTPException, UploadFile, File,
    Depends, Request, Query
)
from fastapi.responses import JSONResponse, Response
from typing import Optional, List
from contextlib import asynccontextmanager
from datetime import timedelta
import os, logging

from dotenv import load_dotenv
load_dotenv()

from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials, OAuth2PasswordRequestForm
from pydantic import BaseModel

import admins
import catalog
import exports
import loans
import views
from errors import LendifyError, InvalidInput, NotFound, StoreError
from models import (
    AdminIn, AdminOut, BorrowIn, Category, CategoryIn, Item, ItemIn, ItemPatch,
    LoanStatus, LogoutIn, TokenOut, Unit, UnitIn, User, UserIn,
)
from notices import Notice
from security import create_access_token, decode_token, ACCESS_TOKEN_EXPIRE_MINUTES
from state import AppState
from store import Store

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger("lendify")

# --------------------------------------------------------------------------
# App / CORS / State
# --------------------------------------------------------------------------
auth_scheme = HTTPBearer(auto_error=True)

@asynccontextmanager
async def lifespan(app: FastAPI):
    state = AppState(Store())
    app.state.lendify = state
    try:
        state.store.ensure_schema()
        state.refresh()
    except StoreError as e:
        # start with an empty snapshot; POST /refresh retries the load
        logger.warning("initial load failed: %s", e)
        state.notices.post("Gagal memuat data dari database.", "error")
    yield

app = FastAPI(title="Lendify IT API", version="1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in os.getenv(
            "CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
        ).split(",") if o.strip()
    ],
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)

def get_state(request: Request) -> AppState:
    return request.app.state.lendify

@app.exception_handler(LendifyError)
async def lendify_error_handler(request: Request, exc: LendifyError):
    state = getattr(request.app.state, "lendify", None)
    if state is not None:
        state.notices.post(exc.message, "error")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "kind": exc.kind})

# --------------------------------------------------------------------------
# Auth helpers
# --------------------------------------------------------------------------
def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
    state: AppState = Depends(get_state),
):
    token = credentials.credentials
    try:
        payload = decode_token(token)
    except Exception:
        raise HTTPException(401, "Sesi tidak valid atau kedaluwarsa")
    sid = payload.get("sid")
    username = state.sessions.username(sid)
    if username is None:
        raise HTTPException(401, "Sesi sudah berakhir, silakan login kembali")
    return {"username": username, "sid": sid}

# --------------------------------------------------------------------------
# Schemas
# --------------------------------------------------------------------------
class ActionOut(BaseModel):
    notice: Notice
    id: Optional[int] = None
    count: Optional[int] = None

class UserOut(User):
    unit_name: Optional[str] = None

class RefreshOut(BaseModel):
    categories: int
    items: int
    units: int
    users: int
    admins: int
    loan_records: int

def _read_upload(file: UploadFile) -> str:
    raw = file.file.read()
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise InvalidInput("File CSV harus berformat UTF-8.")

# --------------------------------------------------------------------------
# Health / refresh
# --------------------------------------------------------------------------
@app.get("/health")
def health():
    return {"ok": True}

@app.post("/refresh", response_model=RefreshOut)
def refresh(state: AppState = Depends(get_state), user = Depends(get_current_user)):
    return state.refresh().counts()

# --------------------------------------------------------------------------
# Auth
# --------------------------------------------------------------------------
@app.post("/auth/login", response_model=TokenOut)
def login(form: OAuth2PasswordRequestForm = Depends(), state: AppState = Depends(get_state)):
    if not state.snapshot.admins:
        state.refresh()
    found = admins.authenticate(state, form.username, form.password)
    if not found:
        raise HTTPException(401, "Username atau password salah")
    sid, admin = found
    token = create_access_token({"sub": admin.username, "sid": sid},
                                timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    return TokenOut(access_token=token, username=admin.username)

@app.post("/auth/logout", response_model=ActionOut)
def logout(body: LogoutIn, state: AppState = Depends(get_state), user = Depends(get_current_user)):
    return ActionOut(notice=admins.logout(state, user["sid"], body.confirm))

@app.get("/auth/me")
def me(user = Depends(get_current_user)):
    return {"username": user["username"]}

# --------------------------------------------------------------------------
# Admins
# --------------------------------------------------------------------------
@app.get("/admins", response_model=List[AdminOut])
def list_admins(state: AppState = Depends(get_state), user = Depends(get_current_user)):
    return [AdminOut(id=a.id, username=a.username) for a in state.snapshot.admins]

@app.post("/admins", status_code=201, response_model=ActionOut)
def create_admin(body: AdminIn, state: AppState = Depends(get_state), user = Depends(get_current_user)):
    new_id, notice = admins.add_admin(state, body)
    return ActionOut(id=new_id, notice=notice)

@app.patch("/admins/{admin_id}", response_model=ActionOut)
def update_admin(admin_id: int, body: AdminIn, state: AppState = Depends(get_state),
                 user = Depends(get_current_user)):
    return ActionOut(id=admin_id, notice=admins.update_admin(state, admin_id, body))

@app.delete("/admins/{admin_id}", response_model=ActionOut)
def delete_admin(admin_id: int, state: AppState = Depends(get_state), user = Depends(get_current_user)):
    return ActionOut(id=admin_id, notice=admins.delete_admin(state, admin_id, user["username"]))

# --------------------------------------------------------------------------
# Categories
# --------------------------------------------------------------------------
@app.get("/categories", response_model=List[Category])
def list_categories(state: AppState = Depends(get_state), user = Depends(get_current_user)):
    return state.snapshot.categories

@app.post("/categories", status_code=201, response_model=ActionOut)
def create_category(body: CategoryIn, state: AppState = Depends(get_state), user = Depends(get_current_user)):
    new_id, notice = catalog.add_category(state, body)
    return ActionOut(id=new_id, notice=notice)

@app.delete("/categories/{category_id}", response_model=ActionOut)
def delete_category(category_id: int, state: AppState = Depends(get_state), user = Depends(get_current_user)):
    return ActionOut(id=category_id, notice=catalog.delete_category(state, category_id))

# --------------------------------------------------------------------------
# Items: list / export / history
# --------------------------------------------------------------------------
@app.get("/items", response_model=List[Item])
def list_items(
    q: Optional[str] = None,
    category: str = "all",
    sort: str = "name",
    order: str = "asc",
    state: AppState = Depends(get_state),
    user = Depends(get_current_user),
):
    items = views.filter_items(state.snapshot.items, q, category)
    return views.sort_items(items, sort, order)

@app.get("/items/export.csv")
def export_items(state: AppState = Depends(get_state), user = Depends(get_current_user)):
    return Response(
        content=exports.export_items_csv(state.snapshot),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{exports.EXPORT_FILENAME}"'},
    )

@app.get("/items/{item_id}", response_model=Item)
def get_item(item_id: int, state: AppState = Depends(get_state), user = Depends(get_current_user)):
    item = state.snapshot.item(item_id)
    if item is None:
        raise NotFound("Barang tidak ditemukan.")
    return item

@app.get("/items/{item_id}/history")
def get_item_history(item_id: int, state: AppState = Depends(get_state), user = Depends(get_current_user)):
    return views.item_history(state.snapshot, item_id)

# --------------------------------------------------------------------------
# Items: create / update / delete
# --------------------------------------------------------------------------
@app.post("/items", status_code=201, response_model=ActionOut)
def create_item(body: ItemIn, state: AppState = Depends(get_state), user = Depends(get_current_user)):
    new_id, notice = catalog.add_item(state, body)
    return ActionOut(id=new_id, notice=notice)

@app.put("/items/{item_id}", response_model=ActionOut)
def update_item(item_id: int, patch: ItemPatch, state: AppState = Depends(get_state),
                user = Depends(get_current_user)):
    return ActionOut(id=item_id, notice=catalog.update_item(state, item_id, patch))

@app.delete("/items/{item_id}", response_model=ActionOut)
def delete_item(item_id: int, state: AppState = Depends(get_state), user = Depends(get_current_user)):
    return ActionOut(id=item_id, notice=catalog.delete_item(state, item_id))

# --------------------------------------------------------------------------
# Loans
# --------------------------------------------------------------------------
@app.post("/items/{item_id}/borrow", status_code=201, response_model=ActionOut)
def borrow_item(item_id: int, body: BorrowIn, state: AppState = Depends(get_state),
                user = Depends(get_current_user)):
    loan_id, notice = loans.borrow_item(state, item_id, body.borrower_id, body.purpose, body.duration)
    return ActionOut(id=loan_id, notice=notice)

@app.get("/loans")
def list_loans(status: Optional[LoanStatus] = Query(default=None),
               state: AppState = Depends(get_state), user = Depends(get_current_user)):
    now = loans.utcnow()
    records = state.snapshot.loans
    if status is not None:
        records = [l for l in records if l.status == status]
    return [loans.describe_loan(l, now) for l in records]

@app.get("/loans/overdue")
def list_overdue_loans(state: AppState = Depends(get_state), user = Depends(get_current_user)):
    now = loans.utcnow()
    return [loans.describe_loan(l, now) for l in loans.overdue_loans(state.snapshot.active_loans, now)]

@app.post("/loans/{loan_id}/return", response_model=ActionOut)
def return_loan(loan_id: int, state: AppState = Depends(get_state), user = Depends(get_current_user)):
    return ActionOut(id=loan_id, notice=loans.return_loan(state, loan_id))

# --------------------------------------------------------------------------
# Units
# --------------------------------------------------------------------------
@app.get("/units", response_model=List[Unit])
def list_units(state: AppState = Depends(get_state), user = Depends(get_current_user)):
    return state.snapshot.units

@app.post("/units", status_code=201, response_model=ActionOut)
def create_unit(body: UnitIn, state: AppState = Depends(get_state), user = Depends(get_current_user)):
    new_id, notice = catalog.add_unit(state, body)
    return ActionOut(id=new_id, notice=notice)

@app.post("/units/import", status_code=201, response_model=ActionOut)
def import_units(file: UploadFile = File(...), state: AppState = Depends(get_state),
                 user = Depends(get_current_user)):
    count, notice = exports.import_units(state, _read_upload(file))
    return ActionOut(count=count, notice=notice)

@app.delete("/units/{unit_id}", response_model=ActionOut)
def delete_unit(unit_id: int, state: AppState = Depends(get_state), user = Depends(get_current_user)):
    return ActionOut(id=unit_id, notice=catalog.delete_unit(state, unit_id))

# --------------------------------------------------------------------------
# Users (borrowers)
# --------------------------------------------------------------------------
@app.get("/users", response_model=List[UserOut])
def list_users(state: AppState = Depends(get_state), user = Depends(get_current_user)):
    snapshot = state.snapshot
    out: List[UserOut] = []
    for u in snapshot.users:
        unit = snapshot.unit(u.unit_id)
        out.append(UserOut(**u.model_dump(), unit_name=unit.name if unit else None))
    return out

@app.post("/users", status_code=201, response_model=ActionOut)
def create_user(body: UserIn, state: AppState = Depends(get_state), user = Depends(get_current_user)):
    new_id, notice = catalog.add_user(state, body)
    return ActionOut(id=new_id, notice=notice)

@app.post("/users/import", status_code=201, response_model=ActionOut)
def import_users(file: UploadFile = File(...), state: AppState = Depends(get_state),
                 user = Depends(get_current_user)):
    count, notice = exports.import_users(state, _read_upload(file))
    return ActionOut(count=count, notice=notice)

@app.delete("/users/{user_id}", response_model=ActionOut)
def delete_user(user_id: int, state: AppState = Depends(get_state), user = Depends(get_current_user)):
    return ActionOut(id=user_id, notice=catalog.delete_user(state, user_id))

@app.get("/users/{user_id}/history")
def get_user_history(user_id: int, state: AppState = Depends(get_state), user = Depends(get_current_user)):
    return views.borrower_history(state.snapshot, user_id)

# --------------------------------------------------------------------------
# Dashboard / reports
# --------------------------------------------------------------------------
@app.get("/dashboard/summary")
def dashboard_summary(state: AppState = Depends(get_state), user = Depends(get_current_user)):
    return views.summary(state.snapshot)

@app.get("/reports/pdf")
def report_pdf(state: AppState = Depends(get_state), user = Depends(get_current_user)):
    now = loans.utcnow()
    return Response(
        content=exports.render_report_pdf(state.snapshot, now),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{exports.report_filename(now)}"'},
    )

# --------------------------------------------------------------------------
# Notices
# --------------------------------------------------------------------------
@app.get("/notices", response_model=List[Notice])
def list_notices(state: AppState = Depends(get_state), user = Depends(get_current_user)):
    return state.notices.active()

@app.delete("/notices/{notice_id}", status_code=204)
def dismiss_notice(notice_id: str, state: AppState = Depends(get_state), user = Depends(get_current_user)):
    if not state.notices.dismiss(notice_id):
        raise HTTPException(404, "Notifikasi tidak ditemukan")
    return

@app.post("/notices/{notice_id}/undo")
def undo_notice(notice_id: str, state: AppState = Depends(get_state), user = Depends(get_current_user)):
    if not state.notices.undo(notice_id):
        raise HTTPException(404, "Notifikasi tidak dapat dibatalkan")
    return {"status": "ok"}
