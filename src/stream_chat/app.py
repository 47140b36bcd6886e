import json
import logging
import uuid
from pathlib import Path

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response, StreamingResponse
from pydantic import ValidationError

from .agent import GENERIC_ERROR, Agent
from .config import load_settings
from .messages import ChatRequest
from .plugins.weather_plugin import WeatherPlugin
from .render import (
    FALLBACK_HTML,
    MarkdownRenderer,
    RenderBoundary,
    render_message,
    render_typing_indicator,
    render_welcome,
)
from .stream_protocol import DONE_FRAME, MEDIA_TYPE, STREAM_HEADERS, encode_event

load_dotenv()

logger = logging.getLogger(__name__)

app = FastAPI(title="Stream Chat")

# Get the templates directory (in the same package)
TEMPLATES_DIR = Path(__file__).parent / "templates"

_agent = None


def get_agent() -> Agent:
    """Return the process-wide agent, built from the environment on first use."""
    global _agent
    if _agent is None:
        settings = load_settings()
        if not settings.api_key:
            logger.warning("INFERENCE_API_KEY is not set; chat requests will fail")
        _agent = Agent([WeatherPlugin()], settings)
        logger.info(
            f"Agent ready: model={settings.model_name} base_url={settings.base_url} "
            f"max_steps={settings.max_steps} tools={_agent.env.tool_registry.get_tool_names()}"
        )
    return _agent


class InvalidRequest(Exception):
    """Request body that is not JSON or does not match the schema."""

    def __init__(self, issues: list):
        super().__init__("Invalid request")
        self.issues = issues


async def chat_request(request: Request) -> ChatRequest:
    """Validate the JSON body. Declared before ``get_agent`` so it runs first."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidRequest([{"type": "json_invalid", "loc": ["body"], "msg": str(e)}])
    try:
        return ChatRequest.model_validate(body)
    except ValidationError as e:
        raise InvalidRequest(json.loads(e.json(include_url=False)))


@app.exception_handler(InvalidRequest)
async def invalid_request(request: Request, exc: InvalidRequest):
    return JSONResponse(status_code=400, content={"error": "Invalid request", "issues": exc.issues})


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.error(f"ERROR: unhandled error on {request.url.path}: {exc!r}")
    return JSONResponse(status_code=500, content={"error": GENERIC_ERROR})


def page_fragments() -> str:
    """Markup the page script shows without a server round trip, as a JS literal."""
    fragments = {
        "welcome": render_welcome(),
        "typing": render_typing_indicator(),
        "fallback": FALLBACK_HTML,
    }
    return json.dumps(fragments).replace("</", "<\\/")


@app.get("/")
async def get():
    page = (TEMPLATES_DIR / "index.html").read_text(encoding="utf-8")
    return HTMLResponse(page.replace("/*FRAGMENTS*/{}", page_fragments()))


@app.get("/highlight.css")
async def highlight_css():
    return Response(MarkdownRenderer().stylesheet(), media_type="text/css")


@app.post("/api/chat")
async def chat(
    parsed: ChatRequest = Depends(chat_request),
    agent: Agent = Depends(get_agent),
):
    """Stream one assistant response for the posted conversation."""
    request_id = uuid.uuid4().hex
    events = agent.stream(parsed.messages, request_id=request_id)
    try:
        first = await anext(events)
    except Exception:
        logger.exception(f"ERROR: chat request {request_id} failed before streaming")
        return JSONResponse(status_code=500, content={"error": GENERIC_ERROR})

    async def body():
        yield encode_event(first)
        try:
            async for event in events:
                yield encode_event(event)
        finally:
            await events.aclose()
        yield DONE_FRAME

    return StreamingResponse(body(), media_type=MEDIA_TYPE, headers=STREAM_HEADERS)


@app.post("/api/render")
async def render(parsed: ChatRequest = Depends(chat_request)):
    """Render messages to HTML, each behind its own render boundary."""
    html = []
    failed = []
    for message in parsed.messages:
        result = RenderBoundary(render_message)(message)
        html.append(result.html)
        if result.failed:
            failed.append(message.id)
    return {"html": html, "failed": failed}


# Main entry point lives in __main__.py
