"""FastAPI application exposing the ID address scan flow."""

from __future__ import annotations

from typing import Iterable, Optional

from fastapi import (
    Depends,
    FastAPI,
    File,
    HTTPException,
    Request,
    UploadFile,
    status,
)

from .analysis import AnalysisClient, GeminiAnalysisClient
from .capture import BytesImageSource
from .classifier import classify
from .errors import AnalysisError, CaptureError, InvalidTransitionError
from .flow import FlowController
from .schemas import AnalysisResponse, SessionView
from .settings import Settings, configure_logging, load_settings
from .sync import SyncDispatcher, build_dispatcher


SUPPORTED_IMAGE_TYPES: Iterable[str] = {
    "image/jpeg",
    "image/png",
    "image/jpg",
    "image/webp",
}


def create_app(
    settings: Optional[Settings] = None,
    *,
    analysis_client: Optional[AnalysisClient] = None,
    dispatcher: Optional[SyncDispatcher] = None,
) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    analysis_client = analysis_client or GeminiAnalysisClient(
        settings.api_key,
        model=settings.model,
        temperature=settings.temperature,
    )
    dispatcher = dispatcher or build_dispatcher(settings)

    app = FastAPI(
        title="ID Address Extractor API",
        version="0.1.0",
        description=(
            "Scan an Indian ID card to extract its postal address, review the "
            "result and send the verified address to the downstream application."
        ),
    )
    app.state.settings = settings
    app.state.analysis_client = analysis_client
    app.state.controller = FlowController(analysis_client, dispatcher)

    _register_routes(app)
    return app


def _get_controller(request: Request) -> FlowController:
    return request.app.state.controller


def _get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def _read_upload(image: UploadFile, settings: Settings) -> bytes:
    """Validate the upload's type and size and return its contents."""

    if image.content_type not in SUPPORTED_IMAGE_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unsupported file type. Upload a JPEG, PNG or WEBP image.",
        )

    try:
        contents = await image.read(settings.max_upload_bytes + 1)
    finally:
        await image.close()

    if len(contents) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="The uploaded image is too large.",
        )
    return contents


def _conflict(exc: InvalidTransitionError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


def _register_routes(app: FastAPI) -> None:
    @app.get("/health", status_code=status.HTTP_200_OK)
    async def health_check() -> dict[str, str]:
        """Simple endpoint to verify that the API is running."""

        return {"status": "ok"}

    @app.post("/extract", response_model=AnalysisResponse, status_code=status.HTTP_200_OK)
    async def extract_address(
        request: Request,
        image: UploadFile = File(..., description="Image of the ID card to analyze."),
        settings: Settings = Depends(_get_settings),
    ) -> AnalysisResponse:
        """Analyze an uploaded ID card image without touching the scan flow."""

        contents = await _read_upload(image, settings)
        try:
            with BytesImageSource(contents) as source:
                jpeg = source.capture()
            record = await request.app.state.analysis_client.analyze(jpeg)
        except CaptureError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message) from exc
        except AnalysisError as exc:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=exc.message,
            ) from exc

        return AnalysisResponse(record=record, outcome=classify(record))

    @app.get("/session", response_model=SessionView)
    async def get_session(controller: FlowController = Depends(_get_controller)) -> SessionView:
        return controller.view()

    @app.post("/scan/start", response_model=SessionView)
    async def start_scan(controller: FlowController = Depends(_get_controller)) -> SessionView:
        try:
            controller.start_scan()
        except InvalidTransitionError as exc:
            raise _conflict(exc) from exc
        return controller.view()

    @app.post("/scan/cancel", response_model=SessionView)
    async def cancel_scan(controller: FlowController = Depends(_get_controller)) -> SessionView:
        try:
            controller.cancel()
        except InvalidTransitionError as exc:
            raise _conflict(exc) from exc
        return controller.view()

    @app.post("/scan/image", response_model=SessionView)
    async def submit_image(
        image: UploadFile = File(..., description="Photo of the ID card taken or selected by the user."),
        controller: FlowController = Depends(_get_controller),
        settings: Settings = Depends(_get_settings),
    ) -> SessionView:
        """Capture the uploaded image and run the analysis for the current scan."""

        contents = await _read_upload(image, settings)
        try:
            await controller.capture(BytesImageSource(contents))
        except InvalidTransitionError as exc:
            raise _conflict(exc) from exc
        return controller.view()

    @app.post("/scan/retake", response_model=SessionView)
    async def retake(controller: FlowController = Depends(_get_controller)) -> SessionView:
        try:
            controller.retake()
        except InvalidTransitionError as exc:
            raise _conflict(exc) from exc
        return controller.view()

    @app.post("/scan/approve", response_model=SessionView)
    async def approve(controller: FlowController = Depends(_get_controller)) -> SessionView:
        """Send the reviewed address to the downstream application."""

        try:
            await controller.approve()
        except InvalidTransitionError as exc:
            raise _conflict(exc) from exc
        return controller.view()

    @app.post("/scan/reset", response_model=SessionView)
    async def new_scan(controller: FlowController = Depends(_get_controller)) -> SessionView:
        try:
            controller.new_scan()
        except InvalidTransitionError as exc:
            raise _conflict(exc) from exc
        return controller.view()


app = create_app()
