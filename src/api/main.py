from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.routes.analysis import router as analysis_router
from src.api.routes.media import router as media_router
from src.api.routes.pipelines import router as pipelines_router
from src.api.routes.stages import router as stages_router
from src.errors import ErrorKind, PipelineError

ERROR_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.COLLABORATOR: 502,
    ErrorKind.NOT_FOUND: 404,
}

app = FastAPI(
    title="Media Highlight API",
    description="Transcribe uploaded media, rank its most informative segments and cut clips",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_origin_regex=r"http://localhost:\d+",
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(media_router)
app.include_router(pipelines_router)
app.include_router(stages_router)
app.include_router(analysis_router)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    return JSONResponse(
        status_code=ERROR_STATUS[exc.kind],
        content={"detail": exc.message, "kind": exc.kind.value},
    )


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}
