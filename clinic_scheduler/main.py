import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from clinic_scheduler.core import config, errors
from clinic_scheduler.database import Base, engine, ensure_schedule_schema, ensure_slot_ledger_schema
from clinic_scheduler.models import appointment, schedule, slot, user  # noqa: F401
from clinic_scheduler.routes import appointment_routes, auth_routes, schedule_routes, slot_routes

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)

config.validate_runtime_config()

app = FastAPI(title='Clinic Scheduler API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

HTTP_ERROR_CODES = {
    status.HTTP_400_BAD_REQUEST: 'VALIDATION_ERROR',
    status.HTTP_401_UNAUTHORIZED: 'UNAUTHORIZED',
    status.HTTP_403_FORBIDDEN: 'FORBIDDEN',
    status.HTTP_404_NOT_FOUND: 'NOT_FOUND',
    status.HTTP_405_METHOD_NOT_ALLOWED: 'METHOD_NOT_ALLOWED',
    status.HTTP_409_CONFLICT: 'CONFLICT',
    status.HTTP_503_SERVICE_UNAVAILABLE: 'SERVICE_UNAVAILABLE',
}


def error_response(status_code: int, code: str, message: str, details: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            'success': False,
            'error': {
                'code': code,
                'message': message,
                'statusCode': status_code,
                'details': details or {},
            },
        },
    )


@app.exception_handler(errors.SchedulingError)
def handle_scheduling_error(request: Request, exc: errors.SchedulingError):
    return error_response(exc.status_code, exc.code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
def handle_request_validation_error(request: Request, exc: RequestValidationError):
    details: dict[str, list[str]] = {}
    for error in exc.errors():
        location = [str(part) for part in error.get('loc', ()) if part not in ('body', 'query', 'path')]
        field = '.'.join(location) or 'non_field_errors'
        message = error.get('msg', 'Invalid value.').removeprefix('Value error, ')
        details.setdefault(field, []).append(message)

    return error_response(status.HTTP_400_BAD_REQUEST, 'VALIDATION_ERROR', 'Invalid request.', details)


@app.exception_handler(StarletteHTTPException)
def handle_http_exception(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else 'Request failed.'
    response = error_response(exc.status_code, HTTP_ERROR_CODES.get(exc.status_code, 'HTTP_ERROR'), message)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(SQLAlchemyError)
def handle_database_error(request: Request, exc: SQLAlchemyError):
    logger.exception('Unhandled database error on %s %s', request.method, request.url.path)
    return error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        'SERVICE_UNAVAILABLE',
        'Database unavailable. Verify DATABASE_URL and database credentials.',
    )


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_slot_ledger_schema()
        ensure_schedule_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Clinic Scheduler API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(auth_routes.doctors_router, prefix='/doctors')
app.include_router(schedule_routes.router, prefix='/doctor-schedule')
app.include_router(slot_routes.router, prefix='/slots')
app.include_router(appointment_routes.router, prefix='/appointments')
