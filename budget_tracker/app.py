"""
Budget Tracker - Main FastAPI Application

PURPOSE: FastAPI routes, endpoints, and application setup
SCOPE: HTTP API layer and request/response handling
DEPENDENCIES: FastAPI, all budget_tracker modules
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiosqlite
import httpx
from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Query, Request, Response, UploadFile
from fastapi.responses import JSONResponse

from .aggregation import compute_totals, category_shares
from .config import config
from .database import DatabaseManager
from .ledger_io import ImportFormatError, build_export_document, export_filename, parse_import_document
from .managers import (
    RecordManager, LedgerManager, CategoryManager, UserManager, SessionManager, SettingsManager,
)
from .rates import ExchangeRateService
from .schemas import (
    IncomePayload, ExpensePayload, CategoryPayload, RegisterPayload, LoginPayload, SettingsPayload,
)
from .validators import (
    validate_record_data, prepare_record_values, validate_category_name,
    validate_registration_data, validate_settings_data, sanitize_form_data,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def create_app(db_file: Optional[str] = None,
               rate_transport: Optional[httpx.AsyncBaseTransport] = None,
               bcrypt_rounds: int = config.BCRYPT_ROUNDS) -> FastAPI:
    """Build the application and its service instances around one database file."""
    db_file = db_file or config.DB_FILE

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await app.state.db_manager.initialize_database()
        logger.info("Database initialized successfully.")
        yield

    app = FastAPI(title="Budget Tracker", lifespan=lifespan)

    # Initialize service instances
    app.state.db_manager = DatabaseManager(db_file)
    app.state.ledger_manager = LedgerManager(db_file)
    app.state.income_manager = app.state.ledger_manager.income_manager
    app.state.expense_manager = app.state.ledger_manager.expense_manager
    app.state.category_manager = CategoryManager(db_file)
    app.state.user_manager = UserManager(db_file, bcrypt_rounds=bcrypt_rounds)
    app.state.session_manager = SessionManager(db_file)
    app.state.settings_manager = SettingsManager(db_file)
    app.state.rate_service = ExchangeRateService(
        app.state.settings_manager, api_url=config.RATE_API_URL, transport=rate_transport
    )

    app.include_router(router)
    return app


async def get_current_user_id(request: Request) -> str:
    """Resolve the session cookie to a user id or reject with 401."""
    token = request.cookies.get(config.SESSION_COOKIE_NAME)
    user_id = await request.app.state.session_manager.get_user_id(token)
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


# ============================================================================
# AUTHENTICATION ENDPOINTS
# ============================================================================

@router.post("/api/auth/register", status_code=201)
async def register(payload: RegisterPayload, request: Request):
    """Create an account."""
    data = sanitize_form_data(payload.model_dump())
    # Passwords are taken verbatim
    data['password'] = payload.password
    is_valid, validation_errors = validate_registration_data(data)
    if not is_valid:
        raise HTTPException(status_code=400, detail={"errors": validation_errors})

    user = await request.app.state.user_manager.create_user(
        data['email'], data['password'], data['name']
    )
    if not user:
        raise HTTPException(status_code=409, detail="User already exists")
    return user


@router.post("/api/auth/login")
async def login(payload: LoginPayload, request: Request, response: Response):
    """Check credentials and issue a session cookie."""
    user = await request.app.state.user_manager.authenticate(payload.email, payload.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    token = await request.app.state.session_manager.create_session(user['id'])
    response.set_cookie(
        key=config.SESSION_COOKIE_NAME,
        value=token,
        max_age=config.SESSION_TTL_DAYS * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
    )
    logger.info(f"User {user['id']} logged in")
    return user


@router.post("/api/auth/logout")
async def logout(request: Request, response: Response):
    """End the current session."""
    await request.app.state.session_manager.delete_session(
        request.cookies.get(config.SESSION_COOKIE_NAME)
    )
    response.delete_cookie(config.SESSION_COOKIE_NAME)
    return {"success": True}


@router.get("/api/auth/me")
async def current_user(request: Request, user_id: str = Depends(get_current_user_id)):
    user = await request.app.state.user_manager.get_user(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


# ============================================================================
# LEDGER RECORD ENDPOINTS
# ============================================================================

async def _list_records(manager: RecordManager, label: str, user_id: str) -> List[Dict[str, Any]]:
    try:
        return await manager.get_all(user_id)
    except aiosqlite.Error as e:
        logger.error(f"Error fetching {label}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch {label}")


def _validated_values(payload: IncomePayload, kind: str) -> Dict[str, Any]:
    record_data = sanitize_form_data(payload.model_dump())
    is_valid, missing_fields = validate_record_data(record_data)
    if not is_valid:
        raise HTTPException(status_code=400, detail={
            "errors": missing_fields,
            "message": f"Please fill in: {', '.join(missing_fields)}",
        })
    return prepare_record_values(record_data, kind)


async def _create_record(manager: RecordManager, kind: str, label: str,
                         payload: IncomePayload, user_id: str) -> Dict[str, Any]:
    values = _validated_values(payload, kind)
    try:
        return await manager.create(user_id, values)
    except aiosqlite.IntegrityError:
        raise HTTPException(status_code=409, detail=f"{label} with ID {values['id']} already exists")
    except aiosqlite.Error as e:
        logger.error(f"Error creating {kind}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to create {kind}")


async def _update_record(manager: RecordManager, kind: str, label: str,
                         payload: IncomePayload, user_id: str) -> Dict[str, Any]:
    if not (payload.id or '').strip():
        raise HTTPException(status_code=400, detail="ID is required")
    values = _validated_values(payload, kind)
    try:
        updated = await manager.update(user_id, values)
    except aiosqlite.Error as e:
        logger.error(f"Error updating {kind}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to update {kind}")
    if not updated:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return updated


async def _delete_record(manager: RecordManager, kind: str, label: str,
                         record_id: Optional[str], user_id: str) -> Dict[str, Any]:
    if not record_id:
        raise HTTPException(status_code=400, detail="ID is required")
    try:
        deleted = await manager.delete(user_id, record_id)
    except aiosqlite.Error as e:
        logger.error(f"Error deleting {kind}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to delete {kind}")
    if not deleted:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return {"success": True}


@router.get("/api/income")
async def get_income(request: Request, user_id: str = Depends(get_current_user_id)):
    """Get the caller's income records."""
    return await _list_records(request.app.state.income_manager, "income", user_id)


@router.post("/api/income")
async def create_income(payload: IncomePayload, request: Request,
                        user_id: str = Depends(get_current_user_id)):
    return await _create_record(request.app.state.income_manager, "income", "Income", payload, user_id)


@router.put("/api/income")
async def update_income(payload: IncomePayload, request: Request,
                        user_id: str = Depends(get_current_user_id)):
    return await _update_record(request.app.state.income_manager, "income", "Income", payload, user_id)


@router.delete("/api/income")
async def delete_income(request: Request, id: Optional[str] = Query(None),
                        user_id: str = Depends(get_current_user_id)):
    return await _delete_record(request.app.state.income_manager, "income", "Income", id, user_id)


@router.get("/api/expenses")
async def get_expenses(request: Request, user_id: str = Depends(get_current_user_id)):
    """Get the caller's expense records."""
    return await _list_records(request.app.state.expense_manager, "expenses", user_id)


@router.post("/api/expenses")
async def create_expense(payload: ExpensePayload, request: Request,
                         user_id: str = Depends(get_current_user_id)):
    return await _create_record(request.app.state.expense_manager, "expense", "Expense", payload, user_id)


@router.put("/api/expenses")
async def update_expense(payload: ExpensePayload, request: Request,
                         user_id: str = Depends(get_current_user_id)):
    return await _update_record(request.app.state.expense_manager, "expense", "Expense", payload, user_id)


@router.delete("/api/expenses")
async def delete_expense(request: Request, id: Optional[str] = Query(None),
                         user_id: str = Depends(get_current_user_id)):
    return await _delete_record(request.app.state.expense_manager, "expense", "Expense", id, user_id)


# ============================================================================
# CATEGORY MANAGEMENT ENDPOINTS
# ============================================================================

@router.get("/api/categories")
async def get_categories(request: Request, user_id: str = Depends(get_current_user_id)):
    """Get all known expense categories."""
    return await request.app.state.category_manager.get_all_categories(user_id)


@router.post("/api/categories")
async def add_category(payload: CategoryPayload, request: Request,
                       user_id: str = Depends(get_current_user_id)):
    """Add a new expense category."""
    name = payload.name.strip()
    is_valid, validation_errors = validate_category_name(name)
    if not is_valid:
        raise HTTPException(status_code=400, detail={"errors": validation_errors})

    if not await request.app.state.category_manager.add_category(user_id, name):
        raise HTTPException(status_code=409, detail="Category already exists")
    return {"success": True, "name": name}


# ============================================================================
# EXCHANGE RATE AND SUMMARY ENDPOINTS
# ============================================================================

@router.get("/api/rate")
async def get_rate(request: Request, user_id: str = Depends(get_current_user_id)):
    """Current KRW-per-USD rate, refreshed when older than the staleness window."""
    status = await request.app.state.rate_service.get_rate()
    return status.to_dict()


@router.post("/api/rate/refresh")
async def refresh_rate(request: Request, user_id: str = Depends(get_current_user_id)):
    status = await request.app.state.rate_service.refresh_rate()
    return status.to_dict()


@router.get("/api/summary")
async def get_summary(request: Request, user_id: str = Depends(get_current_user_id)):
    """Totals in KRW and USD plus the per-category expense breakdown."""
    rate_status = await request.app.state.rate_service.get_rate()
    ledger = await request.app.state.ledger_manager.load_ledger(user_id, rate_status.rate)

    totals = compute_totals(ledger.income, ledger.expenses, rate_status.rate)
    return {
        "rate": rate_status.rate,
        "rateError": rate_status.error,
        "totals": totals.to_dict(),
        "formatted": totals.formatted(),
        "breakdown": [asdict(share) for share in category_shares(ledger.expenses)],
    }


# ============================================================================
# IMPORT / EXPORT ENDPOINTS
# ============================================================================

@router.get("/api/export")
async def export_ledger(request: Request, user_id: str = Depends(get_current_user_id)):
    """Download the caller's ledger as a JSON document."""
    rate_status = await request.app.state.rate_service.get_rate()
    ledger = await request.app.state.ledger_manager.load_ledger(user_id, rate_status.rate)

    document = build_export_document(ledger)
    filename = export_filename()
    logger.info(f"Exported ledger for user {user_id}")
    return JSONResponse(
        content=document,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/api/import")
async def import_ledger(request: Request, file: UploadFile = File(...),
                        confirm: bool = Query(False),
                        user_id: str = Depends(get_current_user_id)):
    """Replace the caller's ledger with an uploaded export document."""
    try:
        ledger = parse_import_document(await file.read())
    except ImportFormatError as e:
        logger.warning(f"Import rejected for user {user_id}: {e}")
        raise HTTPException(status_code=400, detail=f"Import failed: {e}")

    if not confirm:
        raise HTTPException(
            status_code=409,
            detail="Import will REPLACE your current data. Resend with confirm=true to continue.",
        )

    try:
        counts = await request.app.state.ledger_manager.replace_ledger(user_id, ledger)
    except aiosqlite.Error as e:
        logger.error(f"Error importing ledger for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Import failed: could not save data")
    return {"success": True, "imported": counts}


@router.delete("/api/ledger")
async def clear_ledger(request: Request, confirm: bool = Query(False),
                       user_id: str = Depends(get_current_user_id)):
    """Delete all income, expenses and custom categories for the caller."""
    if not confirm:
        raise HTTPException(
            status_code=409,
            detail="Clearing deletes ALL income and expenses. Resend with confirm=true to continue.",
        )
    try:
        await request.app.state.ledger_manager.clear_ledger(user_id)
    except aiosqlite.Error as e:
        logger.error(f"Error clearing ledger for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to clear data")
    return {"success": True}


# ============================================================================
# USER SETTINGS ENDPOINTS
# ============================================================================

def _settings_response(settings: Dict[str, str]) -> Dict[str, str]:
    return {"theme": settings['theme'], "activeTab": settings['active_tab']}


@router.get("/api/settings")
async def get_settings(request: Request, user_id: str = Depends(get_current_user_id)):
    """Theme and last active tab."""
    settings = await request.app.state.settings_manager.get_user_settings(user_id)
    return _settings_response(settings)


@router.put("/api/settings")
async def update_settings(payload: SettingsPayload, request: Request,
                          user_id: str = Depends(get_current_user_id)):
    values = payload.model_dump(exclude_none=True)
    is_valid, validation_errors = validate_settings_data(values)
    if not is_valid:
        raise HTTPException(status_code=400, detail={"errors": validation_errors})

    settings = await request.app.state.settings_manager.update_user_settings(user_id, values)
    return _settings_response(settings)


# ============================================================================
# UTILITY ENDPOINTS
# ============================================================================

@router.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


app = create_app()


# ============================================================================
# APPLICATION ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("budget_tracker.app:app", host="0.0.0.0", port=8000, reload=True)
