import os
import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from errors import ChatError, ValidationError
from settings import settings

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# 1. Setup App
app = FastAPI(title="AI Life Coach Relay")
settings.warn_if_unconfigured()

# 2. Setup CORS (the chat UI may be served from any origin)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


# 3. Error contract: every failure before streaming is {"error": message}
@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    return JSONResponse(content={"error": exc.message}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return await chat_error_handler(request, ValidationError(describe_validation_error(exc)))


def describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request body"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    if first.get("type") == "missing" and location == "messages":
        return "messages is required"
    if location:
        return f"Invalid request body at '{location}': {first.get('msg', 'invalid value')}"
    return f"Invalid request body: {first.get('msg', 'invalid value')}"


# 4. Include Routers
from routers import chat
app.include_router(chat.router)


@app.get("/")
def read_root():
    return {"status": "AI Life Coach relay is running", "chat": "/api/chat"}


if __name__ == "__main__":
    import uvicorn

    port = settings.get_port()
    logger.info("AI Life Coach relay started on http://localhost:%d (chat API: /api/chat)", port)
    uvicorn.run(app, host="0.0.0.0", port=port)
