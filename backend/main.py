"""Main entry point for the Sales Call Simulator completion gateway."""
import logging
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from config import PORT, CORS_ORIGINS, CHAT_ROUTE, LOG_FORMAT, LOG_LEVEL
from logger import setup_logging
from models.api import ChatRequest, ChatResponse, ErrorResponse
from services.completion_gateway import CompletionGateway, GatewayConfigurationError
from services.llm_client import LLMClientError

if LOG_FORMAT == "json":
    setup_logging(LOG_LEVEL)

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Sales Call Simulator",
    description="Completion gateway for the Nexlify cold-call role-play",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialized on startup
completion_gateway: CompletionGateway = None


@app.on_event("startup")
async def startup_event():
    """Initialize the gateway on startup."""
    global completion_gateway

    completion_gateway = CompletionGateway()
    if completion_gateway.is_configured:
        logger.info(f"Initialized CompletionGateway with model {completion_gateway.model}")
    else:
        # Requests will be answered with a configuration error until the key is set
        logger.error("GROQ_API_KEY environment variable is not set.")


def _error_response(status_code: int, error: str, details: str = None) -> JSONResponse:
    body = ErrorResponse(error=error, details=details).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=body)


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "sales-call-simulator",
        "version": "1.0.0",
        "upstream_configured": bool(completion_gateway and completion_gateway.is_configured)
    }


@app.post(CHAT_ROUTE)
async def chat_endpoint(request: Request) -> JSONResponse:
    """
    Generate the persona's next reply.

    The request body carries the ordered chat history, whose last entry is the
    current prompt, and the generation parameters.

    Returns:
        200 with {"aiResponseText": ...}, 400 for a malformed body, or 500 when
        the credential is missing or the upstream call fails
    """
    if completion_gateway is None or not completion_gateway.is_configured:
        logger.error("Rejecting chat request: upstream credential is not configured")
        return _error_response(500, "Server configuration error: API key missing.")

    raw_body = await request.body()
    try:
        chat_request = ChatRequest.model_validate_json(raw_body)
    except ValidationError as e:
        logger.warning(f"Rejecting malformed chat request: {e.error_count()} validation error(s)")
        return _error_response(400, "Invalid request body.", str(e))

    try:
        ai_response_text = await run_in_threadpool(completion_gateway.generate, chat_request)
    except GatewayConfigurationError as e:
        return _error_response(500, str(e))
    except LLMClientError as e:
        logger.error(f"LLM client error: {e.error.code}: {e.error.message}")
        return _error_response(500, "Failed to generate AI response.", e.error.message)
    except Exception as e:
        logger.error(f"Unexpected error in chat endpoint: {e}", exc_info=True)
        return _error_response(500, "Failed to generate AI response.", str(e))

    return JSONResponse(
        status_code=200,
        content=ChatResponse(aiResponseText=ai_response_text).model_dump()
    )


@app.api_route(CHAT_ROUTE, methods=["GET", "HEAD", "PUT", "PATCH", "DELETE", "OPTIONS"])
async def chat_method_not_allowed(request: Request) -> JSONResponse:
    """Reject every method other than POST on the chat route."""
    logger.info(f"Rejecting {request.method} on chat route")
    return JSONResponse(
        status_code=405,
        content={"message": "Method Not Allowed"},
        headers={"Allow": "POST"}
    )


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting Sales Call Simulator gateway on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
