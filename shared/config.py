# environment settings
from dotenv import load_dotenv

load_dotenv()

import os
import logging

logging.getLogger("azure").setLevel(logging.WARNING)
logging.getLogger("azure.cosmos").setLevel(logging.WARNING)
LOGLEVEL = os.environ.get("LOGLEVEL", "INFO").upper()

# CRM (HubSpot private app)
HUBSPOT_ACCESS_TOKEN = os.environ.get("HUBSPOT_ACCESS_TOKEN")
HUBSPOT_BASE_URL = os.environ.get("HUBSPOT_BASE_URL") or "https://api.hubapi.com"
HUBSPOT_BRANDS_OBJECT = os.environ.get("HUBSPOT_BRANDS_OBJECT") or "brands"
HUBSPOT_PARTNERSHIPS_OBJECT = (
    os.environ.get("HUBSPOT_PARTNERSHIPS_OBJECT") or "partnerships"
)

# Meeting transcripts (Fireflies GraphQL)
FIREFLIES_API_KEY = os.environ.get("FIREFLIES_API_KEY")
FIREFLIES_URL = os.environ.get("FIREFLIES_URL") or "https://api.fireflies.ai/graphql"

# Mail (Microsoft Graph, client credentials)
MS_TENANT_ID = os.environ.get("MS_TENANT_ID")
MS_CLIENT_ID = os.environ.get("MS_CLIENT_ID")
MS_CLIENT_SECRET = os.environ.get("MS_CLIENT_SECRET")
MS_MAILBOX = os.environ.get("MS_MAILBOX")
GRAPH_BASE_URL = os.environ.get("GRAPH_BASE_URL") or "https://graph.microsoft.com/v1.0"

# LLM: OpenAI key or an Azure OpenAI deployment
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
OPENAI_MODEL = os.environ.get("OPENAI_MODEL") or "gpt-4o-mini"
AZURE_OPENAI_ENDPOINT = os.environ.get("AZURE_OPENAI_ENDPOINT")
AZURE_OPENAI_API_KEY = os.environ.get("AZURE_OPENAI_API_KEY")
AZURE_OPENAI_CHATGPT_DEPLOYMENT = (
    os.environ.get("AZURE_OPENAI_CHATGPT_DEPLOYMENT") or "gpt-4o-mini"
)
AZURE_OPENAI_API_VERSION = os.environ.get("AZURE_OPENAI_API_VERSION") or "2024-10-21"

# Key-value store (Cosmos DB container with TTL enabled)
AZURE_DB_ID = os.environ.get("AZURE_DB_ID")
AZURE_DB_NAME = os.environ.get("AZURE_DB_NAME")
AZURE_KV_CONTAINER = os.environ.get("AZURE_KV_CONTAINER") or "brandAssistantState"

# TTLs in seconds
SESSION_TTL_SECONDS = int(os.environ.get("SESSION_TTL_SECONDS") or 60 * 60 * 24)
PROGRESS_TTL_SECONDS = int(os.environ.get("PROGRESS_TTL_SECONDS") or 60 * 60)
BUCKET_CACHE_TTL_SECONDS = int(os.environ.get("BUCKET_CACHE_TTL_SECONDS") or 300)
HISTORY_TTL_SECONDS = int(os.environ.get("HISTORY_TTL_SECONDS") or 60 * 60 * 24 * 7)

# Per-call timeout for external collaborators
DEFAULT_CALL_TIMEOUT_SECONDS = float(
    os.environ.get("DEFAULT_CALL_TIMEOUT_SECONDS") or 12
)

CORS_ALLOWED_ORIGIN = os.environ.get("CORS_ALLOWED_ORIGIN") or "*"
