import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from config import get_settings
from database import engine, Base
from logger import get_logger
from services.errors import ResultSystemError

# --- IMPORT ROUTERS (APIs) ---
from routers import auth, users, students, teachers, subjects, marks, results, bulk_import

# --- IMPORT MODELS (registers every table on Base) ---
from models.users import User
from models.students import Student
from models.teachers import Teacher
from models.exams import Subject, Mark
from models.results import Result

log = get_logger("main")

# --- CREATE DATABASE TABLES ---
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Student Result Management")


# ==========================================
# ERROR HANDLERS
# ==========================================
@app.exception_handler(ResultSystemError)
async def result_error_handler(request: Request, exc: ResultSystemError):
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    log.error("%s %s database error: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Database error"})


# ==========================================
# REQUEST LOGGING MIDDLEWARE
# ==========================================
@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    log.debug("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


# ==========================================
# CORS MIDDLEWARE
# ==========================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- REGISTER ROUTERS ---
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(students.router)
app.include_router(teachers.router)
app.include_router(subjects.router)
app.include_router(bulk_import.router)
app.include_router(marks.router)
app.include_router(results.router)


@app.get("/")
def health():
    return {"status": "ok", "service": "results"}
