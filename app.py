from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from constants import CORS_ORIGINS, LOG_FILE, LOG_LEVEL, WS_PATH
from logging_config import get_logger, setup_logging
from registry import SessionAllocationError, SessionRegistry
from routers.health import health_router
from schemas.events import (
    ACK,
    ERROR,
    RELEASE_HOST_CREDENTIALS,
    REQUEST_HOST_CREDENTIALS,
    SIGNAL,
    VERIFY_CONNECTION,
    VERIFY_RESULT,
    WELCOME,
    ErrorPayload,
    InboundFrame,
    VerifyRequest,
    VerifyResult,
    Welcome,
)
from signaling import INVALID_CREDENTIALS_MESSAGE, SignalRouter
from transport import ConnectionManager

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Session state lives exactly as long as the process
    app.state.registry = SessionRegistry()
    app.state.manager = ConnectionManager()
    app.state.signal_router = SignalRouter(app.state.registry, app.state.manager)
    logger.info("Signaling state initialized")
    yield
    logger.info(
        f"Shutting down with {len(app.state.registry)} active session(s) "
        f"and {len(app.state.manager)} connection(s)"
    )


def send_error(manager: ConnectionManager, connection_id: str, message: str, event: str = None, ack: int = None):
    payload = ErrorPayload(message=message, event=event).model_dump(exclude_none=True)
    if ack is not None:
        manager.send(connection_id, ACK, payload, ack=ack)
    else:
        manager.send(connection_id, ERROR, payload)


def handle_frame(signal_router: SignalRouter, manager: ConnectionManager, connection_id: str, raw: str):
    """Decode one inbound text frame and dispatch it to the signal router."""
    try:
        frame = InboundFrame.model_validate_json(raw)
    except ValidationError as e:
        logger.warning(f"Malformed frame from connection {connection_id}: {e.errors(include_url=False)}")
        send_error(manager, connection_id, "Malformed frame")
        return

    logger.debug(f"Received {frame.event} from connection {connection_id}")

    if frame.event == REQUEST_HOST_CREDENTIALS:
        try:
            credentials = signal_router.handle_host_request(connection_id)
        except SessionAllocationError as e:
            logger.error(f"Could not register host {connection_id}: {e}", exc_info=True)
            send_error(manager, connection_id, "Could not allocate a session", event=frame.event, ack=frame.ack)
            return
        if frame.ack is not None:
            manager.send(connection_id, ACK, credentials.model_dump(by_alias=True), ack=frame.ack)

    elif frame.event == VERIFY_CONNECTION:
        try:
            request = VerifyRequest.model_validate(frame.data or {})
        except ValidationError:
            logger.warning(f"Malformed verify-connection payload from connection {connection_id}")
            result = VerifyResult(success=False, message=INVALID_CREDENTIALS_MESSAGE)
        else:
            result = signal_router.handle_verify(connection_id, request.session_id, request.secret)
        payload = result.model_dump(exclude_none=True)
        if frame.ack is not None:
            manager.send(connection_id, ACK, payload, ack=frame.ack)
        else:
            manager.send(connection_id, VERIFY_RESULT, payload)

    elif frame.event == SIGNAL:
        signal_router.handle_signal(connection_id, frame.data)

    elif frame.event == RELEASE_HOST_CREDENTIALS:
        released = signal_router.handle_release(connection_id)
        if frame.ack is not None:
            manager.send(connection_id, ACK, {"success": released}, ack=frame.ack)

    else:
        logger.warning(f"Unknown event {frame.event!r} from connection {connection_id}")
        send_error(manager, connection_id, "Unknown event", event=frame.event, ack=frame.ack)


def create_app() -> FastAPI:
    app = FastAPI(lifespan=lifespan)

    # Configure CORS for the health/HTTP surface
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(health_router)

    @app.websocket(WS_PATH)
    async def websocket_endpoint(websocket: WebSocket):
        """
        Signaling socket. Frames are JSON text: {"event": ..., "data": ..., "ack": ...}.

        The connection id is announced in a "welcome" frame right after accept.
        """
        manager: ConnectionManager = websocket.app.state.manager
        signal_router: SignalRouter = websocket.app.state.signal_router

        await websocket.accept()
        connection = manager.register(websocket)
        connection_id = connection.connection_id
        logger.info(f"A user connected: {connection_id}")
        manager.send(connection_id, WELCOME, Welcome(connection_id=connection_id).model_dump(by_alias=True))

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break

                text = message.get("text")
                if text is None:
                    send_error(manager, connection_id, "Binary frames are not supported")
                    continue

                try:
                    handle_frame(signal_router, manager, connection_id, text)
                except Exception as e:
                    logger.error(f"Error handling frame from connection {connection_id}: {e}", exc_info=True)
                    send_error(manager, connection_id, "Internal error")
        except Exception as e:
            logger.error(f"WebSocket error for connection {connection_id}: {e}", exc_info=True)
        finally:
            logger.info(f"User disconnected: {connection_id}")
            signal_router.handle_disconnect(connection_id)
            await manager.unregister(connection_id)

    logger.info("FastAPI application initialized")
    return app


app = create_app()
