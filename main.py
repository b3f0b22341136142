import os
import sys
import json
import time
import uuid
from typing import List, Optional
from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from loguru import logger
from dotenv import load_dotenv
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from models import UserStore, parse_user_id
from schemas import UserPayload, UserResponse

# Chargement des variables d'environnement
load_dotenv()

SERVICE_NAME = "users-service"

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 5000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "logs.json")

# Config logging: console lisible + fichier JSON
logger.remove()  # Supprime le handler par défaut
logger.add(
    sys.stderr,
    format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}",
    level=LOG_LEVEL,
)
logger.add(
    sink=LOG_FILE,
    format="{time:YYYY-MM-DDTHH:mm:ss.SSSZ} | {level} | {message} | {extra}",
    level=LOG_LEVEL,
    serialize=True,  # Format JSON
    rotation="1 day",  # Rotation quotidienne
)

# Prometheus metrics
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "method", "endpoint", "status"]
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["service", "method", "endpoint"]
)
ERROR_COUNT = Counter(
    "http_errors_total",
    "Total HTTP errors",
    ["service", "endpoint", "error_type"]
)

USER_NOT_FOUND = "User not found"

router = APIRouter()


def get_store(request: Request) -> UserStore:
    """The store owned by the running application."""
    return request.app.state.store


async def read_payload(request: Request) -> UserPayload:
    """
    Read `name` and `email` from a JSON request body.

    Only `application/json` bodies are parsed; anything else, an empty body
    or a top-level array yields a payload with both fields absent. The
    parser is strict: the top-level value must be an object or an array and
    `NaN`/`Infinity` are rejected. Malformed JSON raises and is turned into
    a 500 by `malformed_body_handler`.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.split(";")[0].strip().lower() != "application/json":
        return UserPayload()
    raw = await request.body()
    if not raw:
        return UserPayload()
    text = raw.decode("utf-8")

    def reject_constant(name):
        raise json.JSONDecodeError(f"Invalid constant {name}", text, text.find(name))

    body = json.loads(text, parse_constant=reject_constant)
    if isinstance(body, list):
        return UserPayload()
    if not isinstance(body, dict):
        raise json.JSONDecodeError("Top-level value must be an object or an array", text, 0)
    return UserPayload.model_validate(body)


def endpoint_label(request: Request) -> str:
    """Route template for metric labels, so ids don't create new series."""
    route = request.scope.get("route")
    return route.path if route is not None else "unmatched"


def user_not_found(raw_id: str) -> PlainTextResponse:
    logger.warning(f"User {raw_id} not found")
    ERROR_COUNT.labels(service=SERVICE_NAME, endpoint="/users/{user_id}", error_type="not_found").inc()
    return PlainTextResponse(USER_NOT_FOUND, status_code=404)


# Middleware pour logger les requests avec correlation ID (observabilité)
async def log_requests(request: Request, call_next):
    # Generate or propagate correlation ID (trace-id)
    trace_id = request.headers.get("X-Trace-ID", str(uuid.uuid4()))
    start_time = time.time()

    # Bind trace_id to logger context
    with logger.contextualize(trace_id=trace_id, service=SERVICE_NAME):
        logger.info(
            f"Request: {request.method} {request.url.path}",
            extra={"method": request.method, "url": str(request.url), "trace_id": trace_id}
        )

        response = await call_next(request)

        latency = time.time() - start_time

        REQUEST_COUNT.labels(
            service=SERVICE_NAME,
            method=request.method,
            endpoint=endpoint_label(request),
            status=response.status_code
        ).inc()
        REQUEST_LATENCY.labels(
            service=SERVICE_NAME,
            method=request.method,
            endpoint=endpoint_label(request)
        ).observe(latency)

        logger.info(
            f"Response status: {response.status_code}",
            extra={"status": response.status_code, "latency": latency, "trace_id": trace_id}
        )

        response.headers["X-Trace-ID"] = trace_id
        return response


async def malformed_body_handler(request: Request, exc: Exception) -> PlainTextResponse:
    """Corps JSON illisible: erreur serveur générique, sans corps détaillé."""
    logger.error(f"Malformed request body on {request.method} {request.url.path}: {exc}")
    ERROR_COUNT.labels(service=SERVICE_NAME, endpoint=endpoint_label(request), error_type="malformed_body").inc()
    return PlainTextResponse("Internal Server Error", status_code=500)


@router.get("/metrics")
async def metrics():
    """Endpoint /metrics compatible Prometheus"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy", "service": SERVICE_NAME}


@router.get("/", response_class=PlainTextResponse)
async def index():
    return "API is working!"


@router.get("/users", response_model=List[UserResponse])
@router.get("/users/", response_model=List[UserResponse], include_in_schema=False)
async def get_users(store: UserStore = Depends(get_store)):
    logger.info("Fetching all users")
    return store.list_all()


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, store: UserStore = Depends(get_store)):
    logger.info(f"Fetching user {user_id}")
    user = store.get(parse_user_id(user_id))
    if not user:
        return user_not_found(user_id)
    return user


@router.post("/users", response_model=UserResponse, status_code=201)
@router.post("/users/", response_model=UserResponse, status_code=201, include_in_schema=False)
async def create_user(request: Request, store: UserStore = Depends(get_store)):
    payload = await read_payload(request)
    logger.info(f"Creating user: {payload.name}")
    new_user = store.create(payload.name, payload.email)
    logger.info(f"User created with ID {new_user.id}")
    return new_user


@router.put("/users/{user_id}", response_model=UserResponse)
async def update_user(user_id: str, request: Request, store: UserStore = Depends(get_store)):
    payload = await read_payload(request)
    logger.info(f"Updating user {user_id}")
    user = store.update(parse_user_id(user_id), payload.name, payload.email)
    if not user:
        return user_not_found(user_id)
    return user


@router.delete("/users/{user_id}", status_code=204)
async def delete_user(user_id: str, store: UserStore = Depends(get_store)):
    removed = store.delete(parse_user_id(user_id))
    logger.info(f"Deleted {removed} user(s) with ID {user_id}")
    return Response(status_code=204)


def create_app(store: Optional[UserStore] = None) -> FastAPI:
    """
    Build the application around its user store.

    The store is seeded with Alice and Bob unless one is given, and lives as
    long as the application does.
    """
    app = FastAPI(title="Users Service")
    app.state.store = store if store is not None else UserStore.seeded()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE"],
        allow_headers=["*"],
    )
    app.middleware("http")(log_requests)

    app.add_exception_handler(json.JSONDecodeError, malformed_body_handler)
    app.add_exception_handler(UnicodeDecodeError, malformed_body_handler)

    app.include_router(router)
    return app


app = create_app()


def main():
    import uvicorn
    config = uvicorn.Config(app, host=HOST, port=PORT, log_level=LOG_LEVEL.lower())
    server = uvicorn.Server(config)
    # Port déjà pris: uvicorn log l'erreur et sort avec le code 1
    sock = config.bind_socket()
    logger.info(f"Server is running at http://localhost:{PORT}")
    server.run(sockets=[sock])


if __name__ == "__main__":
    main()
