"""
Red Flag KPI Alert Engine - HTTP trigger interface

Run with: uvicorn app:app
"""
from typing import Iterator, Optional

from fastapi import Body, Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from engine.batch import BatchOrchestrator
from notifications.queue import NotificationQueueProcessor
from ingestion.document_processor import process_document
from ingestion.pm_sync import sync_pm_data
from storage.database import Database
from config import settings
from utils.logging_config import get_logger, setup_logging

setup_logging(settings.SERVICE_NAME)
logger = get_logger(__name__)

ACTION_PROCESS_KPIS = "process_kpis"
ACTION_PROCESS_NOTIFICATIONS = "process_notifications"

app = FastAPI(title=settings.APP_TITLE)


class MonitorRequest(BaseModel):
    action: Optional[str] = None


class DocumentRequest(BaseModel):
    documentId: str
    userId: str


class PMSyncRequest(BaseModel):
    integrationId: str
    userId: str
    testMode: bool = False


def get_db() -> Iterator[Database]:
    db = Database(settings.DATABASE_PATH)
    try:
        yield db
    finally:
        db.close()


def _failure(error: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={'success': False, 'error': str(error)})


@app.get("/health")
def health():
    return {"status": "ok", "service": settings.SERVICE_NAME}


@app.api_route("/red-flag-monitor", methods=["GET", "POST"])
def red_flag_monitor(
    action: Optional[str] = None,
    body: Optional[MonitorRequest] = Body(None),
    db: Database = Depends(get_db),
):
    """
    Run KPI evaluation, notification dispatch, or both (KPIs first) for any other
    action. The action may come from the query string or the JSON body.
    """
    action = action or (body.action if body else None)
    run_kpis = action != ACTION_PROCESS_NOTIFICATIONS
    run_notifications = action != ACTION_PROCESS_KPIS

    try:
        response = {'success': True}
        if run_kpis:
            log = BatchOrchestrator(db).run_batch()
            response.update({
                'batchId': log.batch_id,
                'propertiesProcessed': log.properties_processed,
                'alertsTriggered': log.alerts_triggered,
            })
        if run_notifications:
            counts = NotificationQueueProcessor(db).process_queue()
            response.update(counts)
    except Exception as e:
        logger.error("red_flag_monitor_failed", action=action, exc_info=True)
        return _failure(e)

    if action == ACTION_PROCESS_KPIS:
        response['message'] = 'KPI alerts processed successfully'
    elif action == ACTION_PROCESS_NOTIFICATIONS:
        response['message'] = 'Notifications processed successfully'
    else:
        response['message'] = 'Red flag monitoring completed successfully'
    return response


@app.post("/process-document")
def process_document_endpoint(request: DocumentRequest, db: Database = Depends(get_db)):
    try:
        result = process_document(db, request.documentId, request.userId)
    except Exception as e:
        logger.error("process_document_failed", document_id=request.documentId, exc_info=True)
        return _failure(e)

    return {
        'success': True,
        'message': 'Document processed successfully',
        'extractedKPIs': result['extracted_kpis'],
        'category': result['category'],
    }


@app.post("/sync-pm-data")
def sync_pm_data_endpoint(request: PMSyncRequest, db: Database = Depends(get_db)):
    try:
        result = sync_pm_data(db, request.integrationId, request.userId, test_mode=request.testMode)
    except Exception as e:
        logger.error("sync_pm_data_failed", integration_id=request.integrationId, exc_info=True)
        return _failure(e)

    return {
        'success': True,
        'message': 'PM data synced successfully',
        'syncedKPIs': result['synced_kpis'],
        'pmSoftware': result['pm_software'],
        'testMode': result['test_mode'],
    }
