"""Configuration management for the Sales Call Simulator."""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# API Keys
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Server Configuration
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:3001"
).split(",")

# Gateway Configuration
CHAT_ROUTE = os.getenv("CHAT_ROUTE", "/.netlify/functions/chat")
GATEWAY_URL = os.getenv("GATEWAY_URL", f"http://localhost:{PORT}{CHAT_ROUTE}")
# No timeout unless one is configured explicitly
GATEWAY_TIMEOUT = float(os.getenv("GATEWAY_TIMEOUT")) if os.getenv("GATEWAY_TIMEOUT") else None

# Model Configuration
CHAT_MODEL = os.getenv("CHAT_MODEL", "llama-3.3-70b-versatile")
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_OUTPUT_TOKENS = 800

# Conversation Store Configuration
APP_ID = os.getenv("APP_ID", "default-app-id")
INITIAL_AUTH_TOKEN = os.getenv("INITIAL_AUTH_TOKEN")
CHAT_TABLE = os.getenv("CHAT_TABLE", "chat_messages")

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
