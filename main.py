import logging
import math
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Request, Response, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.responses import StreamingResponse

from analytics import AnalyticsSnapshot
from cards import CARD_IDS, RenderedCard
from database import SessionFactory, SessionLocal
from layout import LayoutReconciler
from periods import Period, resolve_period
from schemas import (
    AppSettings,
    DashboardLayoutEntry,
    IngestTransactionIn,
    NecessityIn,
    PaymentMode,
    ReorderIn,
    TransactionIn,
    TransactionRecord,
    TransactionUpdate,
    VisibilityIn,
)
from services import (
    CSVService,
    DashboardService,
    IngestService,
    TransactionService,
    get_timezone,
)
from storage import BlobStore, LayoutStore, PaymentModeStore, SettingsStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()

router = APIRouter()


def get_blobs(request: Request) -> BlobStore:
    return request.app.state.blobs


def get_layout_store(request: Request) -> LayoutStore:
    return request.app.state.layout_store


def get_dashboard(
    blobs: BlobStore = Depends(get_blobs),
    layout_store: LayoutStore = Depends(get_layout_store),
) -> DashboardService:
    return DashboardService(blobs, layout_store)


def period_from_request(request: Request) -> Period:
    period_slug = request.query_params.get("period")
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(
            period_slug, start, end, today=datetime.now(get_timezone()).date()
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def service_error(exc: ValueError) -> HTTPException:
    status_code = 404 if "not found" in str(exc).lower() else 400
    return HTTPException(status_code=status_code, detail=str(exc))


def analytics_payload(snapshot: AnalyticsSnapshot) -> dict[str, object]:
    payload = jsonable_encoder(snapshot)
    # JSON has no infinity; expose the unbounded ratio as a flag instead
    unbounded = math.isinf(snapshot.needs_wants_ratio)
    payload["needs_wants_ratio"] = None if unbounded else snapshot.needs_wants_ratio
    payload["needs_wants_unbounded"] = unbounded
    payload["has_single_spending_day"] = snapshot.has_single_spending_day
    return payload


@router.get("/api/transactions", response_model=list[TransactionRecord])
def api_transactions(request: Request, blobs: BlobStore = Depends(get_blobs)):
    service = TransactionService(blobs)
    if request.query_params.get("period"):
        items = service.for_period(period_from_request(request))
    else:
        items = service.list_all()
    return [TransactionRecord.from_domain(txn) for txn in items]


@router.post("/api/transactions", status_code=201, response_model=TransactionRecord)
def create_transaction(data: TransactionIn, blobs: BlobStore = Depends(get_blobs)):
    txn = TransactionService(blobs).add(data)
    return TransactionRecord.from_domain(txn)


@router.patch("/api/transactions/{transaction_id}", response_model=TransactionRecord)
def update_transaction(
    transaction_id: str, data: TransactionUpdate, blobs: BlobStore = Depends(get_blobs)
):
    try:
        txn = TransactionService(blobs).update(transaction_id, data)
    except ValueError as exc:
        raise service_error(exc) from exc
    return TransactionRecord.from_domain(txn)


@router.post(
    "/api/transactions/{transaction_id}/necessity", response_model=TransactionRecord
)
def update_necessity(
    transaction_id: str, data: NecessityIn, blobs: BlobStore = Depends(get_blobs)
):
    try:
        txn = TransactionService(blobs).update_necessity(transaction_id, data.necessity)
    except ValueError as exc:
        raise service_error(exc) from exc
    return TransactionRecord.from_domain(txn)


@router.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: str, blobs: BlobStore = Depends(get_blobs)):
    try:
        TransactionService(blobs).delete(transaction_id)
    except ValueError as exc:
        raise service_error(exc) from exc
    return Response(status_code=204)


@router.get("/api/transactions/grouped")
def grouped_transactions(blobs: BlobStore = Depends(get_blobs)):
    groups = TransactionService(blobs).grouped_by_day()
    return [
        {
            "day": group.day.isoformat(),
            "day_total": group.day_total,
            "transactions": [
                TransactionRecord.from_domain(t).model_dump(mode="json")
                for t in group.transactions
            ],
        }
        for group in groups
    ]


@router.get("/api/suggestions", response_model=list[TransactionRecord])
def quick_add_suggestions(blobs: BlobStore = Depends(get_blobs)):
    items = TransactionService(blobs).quick_add_suggestions()
    return [TransactionRecord.from_domain(txn) for txn in items]


@router.post("/api/ingest", status_code=201, response_model=TransactionRecord)
def ingest_expense(data: IngestTransactionIn, blobs: BlobStore = Depends(get_blobs)):
    try:
        txn = IngestService(blobs).ingest_expense(data)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return TransactionRecord.from_domain(txn)


@router.get("/api/analytics")
def api_analytics(
    request: Request, dashboard: DashboardService = Depends(get_dashboard)
):
    period = period_from_request(request)
    return analytics_payload(dashboard.analytics(period))


@router.get("/api/streaks")
def api_streaks(dashboard: DashboardService = Depends(get_dashboard)):
    return jsonable_encoder(dashboard.streaks())


@router.get("/api/dashboard", response_model=list[RenderedCard])
def api_dashboard(
    request: Request, dashboard: DashboardService = Depends(get_dashboard)
):
    period = period_from_request(request)
    try:
        return dashboard.cards(period)
    except Exception:
        logger.exception("dashboard_render_failed")
        raise


@router.get("/api/dashboard/layout", response_model=list[DashboardLayoutEntry])
def dashboard_layout(layout_store: LayoutStore = Depends(get_layout_store)):
    with LayoutReconciler(layout_store, CARD_IDS) as reconciler:
        return list(reconciler.entries)


@router.post("/api/dashboard/layout/reorder")
def reorder_dashboard(
    data: ReorderIn, layout_store: LayoutStore = Depends(get_layout_store)
):
    with LayoutReconciler(layout_store, CARD_IDS) as reconciler:
        try:
            ordered = reconciler.reorder(data.ids)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"ids": ordered}


@router.post(
    "/api/dashboard/layout/{card_id}/visibility", response_model=DashboardLayoutEntry
)
def set_card_visibility(
    card_id: str,
    data: VisibilityIn,
    layout_store: LayoutStore = Depends(get_layout_store),
):
    with LayoutReconciler(layout_store, CARD_IDS) as reconciler:
        try:
            return reconciler.set_visibility(card_id, data.visible)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=f"Unknown card '{card_id}'") from exc


@router.post("/api/dashboard/layout/reset")
def reset_dashboard(layout_store: LayoutStore = Depends(get_layout_store)):
    with LayoutReconciler(layout_store, CARD_IDS) as reconciler:
        return {"ids": reconciler.reset()}


@router.get("/api/settings", response_model=AppSettings)
def get_app_settings(blobs: BlobStore = Depends(get_blobs)):
    return SettingsStore(blobs).load()


@router.put("/api/settings", response_model=AppSettings)
def put_app_settings(data: AppSettings, blobs: BlobStore = Depends(get_blobs)):
    return SettingsStore(blobs).save(data)


@router.get("/api/payment-modes", response_model=list[PaymentMode])
def get_payment_modes(blobs: BlobStore = Depends(get_blobs)):
    return PaymentModeStore(blobs).load()


@router.put("/api/payment-modes", response_model=list[PaymentMode])
def put_payment_modes(data: list[PaymentMode], blobs: BlobStore = Depends(get_blobs)):
    try:
        return PaymentModeStore(blobs).save(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/transactions/export.csv")
def export_transactions_endpoint(request: Request, blobs: BlobStore = Depends(get_blobs)):
    period = period_from_request(request)
    transactions = TransactionService(blobs).for_period(period)
    csv_text = CSVService(blobs).export(transactions)
    filename = f"transactions_{period.slug}.csv"
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/transactions/import")
async def import_transactions(
    file: UploadFile = File(...), blobs: BlobStore = Depends(get_blobs)
):
    content = (await file.read()).decode("utf-8-sig")
    try:
        count = CSVService(blobs).commit(content)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    logger.info(f"csv_import: rows={count} filename={file.filename}")
    return {"imported": count}


def create_app(session_factory: Optional[SessionFactory] = None) -> FastAPI:
    application = FastAPI(title="Budgly", version=APP_VERSION)
    blobs = BlobStore(session_factory or SessionLocal)
    application.state.blobs = blobs
    application.state.layout_store = LayoutStore(blobs)
    application.include_router(router)

    @application.on_event("startup")
    def startup_event():
        logger.info(f"startup: version={APP_VERSION}")

    return application


app = create_app()


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
