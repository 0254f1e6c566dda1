import os
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .routes import router
from .core import redis_startup, init_metrics, shutdown_connections
from .errors import ServiceError, ValidationError, error_body
import logging
from pythonjsonlogger import jsonlogger

# setup structured logging
logger = logging.getLogger('flock')
handler = logging.StreamHandler()
formatter = jsonlogger.JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s')
handler.setFormatter(formatter)
logger.addHandler(handler)
logger.setLevel(os.getenv('LOG_LEVEL', 'INFO').upper())

app = FastAPI(title="Flock API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv('CORS_ORIGINS', '*').split(','),
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.include_router(router, prefix="/api")

@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(error_body(exc), status_code=exc.status or 500)

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = '.'.join(str(p) for p in first.get('loc', ()) if p != 'body')
    message = f"{where}: {first.get('msg')}" if where else (first.get('msg') or 'Invalid request')
    return JSONResponse(error_body(ValidationError(message)), status_code=400)

@app.exception_handler(Exception)
async def unknown_error_handler(request: Request, exc: Exception):
    logger.exception({'msg': 'unhandled_error', 'method': request.method, 'path': request.url.path})
    return JSONResponse(error_body(ServiceError('An unexpected error occurred')), status_code=500)

@app.get('/healthz')
async def healthz():
    return {'status': 'ok'}

@app.middleware('http')
async def log_requests(request: Request, call_next):
    logger.info({'msg':'request_start','method':request.method,'path':request.url.path})
    response = await call_next(request)
    logger.info({'msg':'request_end','path':request.url.path,'status': response.status_code})
    return response

@app.on_event("startup")
async def startup():
    # Best-effort init, don't block app from starting if a dependency fails
    try:
        await redis_startup()
    except Exception as e:
        logger.warning({'msg': 'redis_start_failed', 'error': str(e)})
    try:
        init_metrics()
    except Exception as e:
        logger.warning({'msg': 'metrics_init_failed', 'error': str(e)})

@app.on_event("shutdown")
async def shutdown():
    await shutdown_connections()
