import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from postgrest.exceptions import APIError

from lms_portal.core.config import settings
from lms_portal.core.errors import AppError, InvalidRequest, UpstreamFailure
from lms_portal.core.redirects import RoleRedirectMiddleware
from lms_portal.db.supabase import get_supabase
from lms_portal.modules.auth.router import router as auth_router
from lms_portal.modules.courses.router import router as courses_router
from lms_portal.modules.files.router import router as files_router
from lms_portal.modules.sessions.router import router as sessions_router
from lms_portal.modules.assignments.router import router as assignments_router
from lms_portal.modules.quizzes.router import router as quizzes_router
from lms_portal.modules.directory.router import router as directory_router
from lms_portal.modules.messages.router import router as messages_router

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="LMS Portal Backend",
    description="Course management and live sessions with role-based access control",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RoleRedirectMiddleware)


# -------------------------
# ERROR RENDERING
# -------------------------
@app.exception_handler(AppError)
async def handle_app_error(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    details = [
        {"loc": list(error.get("loc", [])), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    error = InvalidRequest("Request validation failed", details=details)
    return JSONResponse(status_code=error.status_code, content=jsonable_encoder(error.to_dict()))


@app.exception_handler(APIError)
async def handle_backend_error(request: Request, exc: APIError):
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc.message)
    error = UpstreamFailure()
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# Root route
@app.get("/")
def root():
    return {"message": "Hello World from the LMS portal!"}


# Health check route
@app.get("/api/health")
def health_check():
    """Check if the service and database connection are healthy"""
    try:
        supabase = get_supabase()
        supabase.table("users").select("id").limit(1).execute()
        return {"ok": True}
    except Exception as e:
        logger.error("Health check failed: %s", e)
        return JSONResponse(status_code=500, content={"ok": False, "error": "database unavailable"})


# Include routers
app.include_router(auth_router, prefix="/api/auth", tags=["Auth"])
app.include_router(courses_router, prefix="/api/courses", tags=["Courses"])
app.include_router(files_router, prefix="/api/courses", tags=["Course Files"])
app.include_router(sessions_router, prefix="/api/sessions", tags=["Sessions"])
app.include_router(assignments_router, prefix="/api", tags=["Assignments"])
app.include_router(quizzes_router, prefix="/api/quizzes", tags=["Quizzes"])
app.include_router(directory_router, prefix="/api", tags=["Directory"])
app.include_router(messages_router, prefix="/api", tags=["Messages"])
