from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.exceptions import RequestValidationError
import socketio

from assessment.core.config import settings
from assessment.core.exceptions import AssessmentError
from assessment.core.logging import configure_logging
from assessment.core.scheduler import start_scheduler, stop_scheduler
from assessment.endpoints import course_progress, exam
from assessment.middleware.exceptions import (
    assessment_exception_handler,
    global_exception_handler,
    validation_exception_handler,
)
from assessment.middleware.logging import RequestLoggingMiddleware
from assessment.realtime import websockets as websocket_events
from assessment.services.course_progress import course_progress_service
from assessment.services.exam_attempt import attempt_engine
from assessment.utils.events import event_bus

sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=settings.ALLOWED_ORIGINS)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RequestLoggingMiddleware)

app.mount("/socket.io", socketio.ASGIApp(sio))

app.add_exception_handler(AssessmentError, assessment_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)

app.include_router(exam.router, prefix="/exams", tags=["Exams"])
app.include_router(course_progress.router, tags=["Course Progress"])

course_progress_service.register(event_bus)
websocket_events.register_websocket_events(sio, attempt_engine)
websocket_events.register_countdown_events(sio, attempt_engine.countdown)

@app.on_event("startup")
async def startup_event():
    if not settings.TESTING:
        configure_logging()
    start_scheduler()

@app.on_event("shutdown")
async def shutdown_event():
    stop_scheduler()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
