# main.py

import asyncio
import base64
import json
import logging
import re
from typing import List

import httpx
from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response, StreamingResponse
from starlette.requests import ClientDisconnect

from mathword.ai_corrector import correct_text
from mathword.app_logic import convert_text_to_docx
from mathword.config import DOCX_MIME_TYPE, configure_logging, get_settings
from mathword.errors import AiServiceError, ApiKeyInvalidError, ApiKeyMissingError
from mathword.inline_segmenter import segment
from mathword.latex_converter import nodes_to_text, try_build
from mathword.schemas import CorrectRequest, ExportRequest, FormulaRequest, SegmentRequest, SegmentedLine

configure_logging()
logger = logging.getLogger("mathword.api")

app = FastAPI(
    title="mathword API",
    description="Converts OCR'd text with LaTeX formulas into Word documents with native equations.",
    version="1.0.0",
)

origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

UPLOAD_EXTENSIONS = ('.txt', '.md')
STREAM_CHUNK_SIZE = 32 * 1024


def _safe_file_name(name: str) -> str:
    cleaned = re.sub(r'[^\w.-]+', '_', name).strip('._')
    return cleaned or "converted"


def _docx_response(docx_bytes: bytes, file_name: str) -> Response:
    return Response(
        content=docx_bytes,
        media_type=DOCX_MIME_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{_safe_file_name(file_name)}.docx"'},
    )


@app.get("/")
def read_root():
    """Health check."""
    return {"message": "mathword API is running."}


@app.post("/parse-formula")
def parse_formula_endpoint(request: FormulaRequest):
    """
    Parses one formula (without `$` delimiters) into its node tree.

    Returns:
        dict: `{"outcome": ..., "text": ...}` where outcome is either the parsed nodes or a fallback.
    """
    outcome = try_build(request.latex, get_settings().math_max_depth)
    preview = nodes_to_text(outcome.nodes) if outcome.type == 'parsed' else outcome.text
    return {"outcome": outcome.model_dump(), "text": preview}


@app.post("/segment", response_model=List[SegmentedLine])
def segment_endpoint(request: SegmentRequest):
    """Splits every line of the text into formatted runs and formula groups."""
    max_depth = get_settings().math_max_depth
    return [SegmentedLine(line=line, runs=segment(line, max_depth)) for line in request.text.split('\n')]


@app.post("/correct")
async def correct_endpoint(request: CorrectRequest):
    """
    Sends OCR text through the AI correction service.

    Raises:
        HTTPException: 400 for empty text, 401 for a missing or rejected key, 503 when the service fails.
    """
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="Text cannot be empty.")
    try:
        corrected = await correct_text(request.text)
    except (ApiKeyMissingError, ApiKeyInvalidError) as e:
        raise HTTPException(status_code=401, detail=str(e))
    except (AiServiceError, httpx.HTTPError) as e:
        raise HTTPException(status_code=503, detail=f"AI correction service failed: {e}")
    return {"corrected_text": corrected}


@app.post("/export")
async def export_endpoint(request: ExportRequest):
    """Converts text into a `.docx` download."""
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="Text cannot be empty.")
    try:
        docx_bytes, _, log = await convert_text_to_docx(request.text, correct=request.correct)
    except (ApiKeyMissingError, ApiKeyInvalidError) as e:
        raise HTTPException(status_code=401, detail=str(e))
    if docx_bytes is None:
        raise HTTPException(status_code=503, detail=log)
    return _docx_response(docx_bytes, request.file_name)


@app.post("/export-file")
async def export_file_endpoint(file: UploadFile = File(...), correct: bool = Form(False)):
    """
    Converts an uploaded `.txt` / `.md` file into a `.docx` download.

    Args:
        file (UploadFile): The text file, UTF-8 encoded.
        correct (bool): Whether to run AI correction first.
    """
    if not file.filename or not file.filename.lower().endswith(UPLOAD_EXTENSIONS):
        raise HTTPException(status_code=400, detail="Invalid file type. Please upload a .txt or .md file.")
    try:
        text = (await file.read()).decode('utf-8')
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="The file is not valid UTF-8 text.")
    if not text.strip():
        raise HTTPException(status_code=400, detail="The file is empty.")

    try:
        docx_bytes, _, log = await convert_text_to_docx(text, correct=correct)
    except (ApiKeyMissingError, ApiKeyInvalidError) as e:
        raise HTTPException(status_code=401, detail=str(e))
    if docx_bytes is None:
        raise HTTPException(status_code=503, detail=log)
    return _docx_response(docx_bytes, file.filename.rsplit('.', 1)[0])


@app.post("/export/stream")
async def export_stream_endpoint(req: Request, request: ExportRequest):
    """
    以流式响应的方式生成并返回Word文档。

    Log lines are sent as `log` events while the conversion runs, then the document follows as
    base64 `file_chunk` events and a closing `file_end` event with the file metadata.
    """
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="Text cannot be empty.")

    log_queue = asyncio.Queue()
    conversion_task = None

    async def stream_generator():
        nonlocal conversion_task

        def log_to_queue(message: str):
            try:
                log_queue.put_nowait(message)
            except asyncio.QueueFull:
                pass

        conversion_task = asyncio.create_task(
            convert_text_to_docx(request.text, correct=request.correct, logger=log_to_queue)
        )

        try:
            while not conversion_task.done() or not log_queue.empty():
                if await req.is_disconnected():
                    raise ClientDisconnect()
                try:
                    log_line = await asyncio.wait_for(log_queue.get(), timeout=0.1)
                    yield f"data: {json.dumps({'type': 'log', 'content': log_line})}\n\n"
                except asyncio.TimeoutError:
                    continue

            if conversion_task.exception():
                raise conversion_task.exception()

            docx_bytes, final_text, full_log = await conversion_task

            if docx_bytes:
                yield f"data: {json.dumps({'type': 'full_log', 'content': full_log})}\n\n"
                yield f"data: {json.dumps({'type': 'final_text', 'content': final_text})}\n\n"

                encoded_string = base64.b64encode(docx_bytes).decode('utf-8')
                for i in range(0, len(encoded_string), STREAM_CHUNK_SIZE):
                    chunk = encoded_string[i:i + STREAM_CHUNK_SIZE]
                    yield f"data: {json.dumps({'type': 'file_chunk', 'content': chunk})}\n\n"

                file_metadata = {"file_name": f"{_safe_file_name(request.file_name)}.docx", "mime_type": DOCX_MIME_TYPE}
                yield f"data: {json.dumps({'type': 'file_end', 'content': file_metadata})}\n\n"
            else:
                yield f"data: {json.dumps({'type': 'error', 'content': full_log})}\n\n"

        except (ClientDisconnect, asyncio.CancelledError):
            logger.info("Client disconnected, stream cancelled.")
        except Exception as e:
            logger.exception("Unhandled error in the export stream")
            error_message = f"Document conversion failed: {type(e).__name__}: {e}"
            yield f"data: {json.dumps({'type': 'error', 'content': error_message})}\n\n"
        finally:
            if conversion_task and not conversion_task.done():
                conversion_task.cancel()
                try:
                    await conversion_task
                except asyncio.CancelledError:
                    logger.info("Background conversion task cancelled.")

    return StreamingResponse(stream_generator(), media_type="text/event-stream")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000)
