# policydesk/config.py
"""
Configuration for the PolicyDesk ingestion and question-answering service.

This file centralizes all tunable parameters for the pipeline.
Every value can be overridden through an environment variable of the same name.
"""

import os


def _env_list(name: str, default: str) -> list:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


# ========== DOCUMENT PROCESSING ==========

# File upload limits
MAX_FILE_SIZE_MB = _env_int("MAX_FILE_SIZE_MB", 10)
SUPPORTED_FORMATS = ("pdf", "docx", "txt")

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "storage/uploads")

# Per-document character ceiling applied when building prompts.
# Stored extracted text is never truncated.
MAX_DOCUMENT_CHARACTERS = _env_int("MAX_DOCUMENT_CHARACTERS", 15000)
TRUNCATION_MARKER = "...[content truncated due to length]"


# ========== INFERENCE CONFIGURATION ==========

# "remote" → OpenAI-compatible text-completions endpoint (TGI, vLLM, hosted)
# "local"  → transformers pipeline in-process
INFERENCE_BACKEND = os.getenv("INFERENCE_BACKEND", "remote")

INFERENCE_BASE_URL = os.getenv("INFERENCE_BASE_URL", "http://localhost:8080/v1")
INFERENCE_API_KEY = os.getenv("INFERENCE_API_KEY") or os.getenv("HUGGINGFACE_API_KEY", "")
INFERENCE_TIMEOUT_SECONDS = _env_float("INFERENCE_TIMEOUT_SECONDS", 60.0)

# Ordered: the first id is the primary model, the rest are fallbacks
MODEL_IDS = _env_list(
    "MODEL_IDS",
    "mistralai/Mistral-7B-Instruct-v0.2,meta-llama/Llama-2-7b-chat-hf",
)

LOCAL_PIPELINE_TASK = os.getenv("LOCAL_PIPELINE_TASK", "text-generation")

# Admission gate in front of the inference provider
MAX_CONCURRENT_INFERENCES = _env_int("MAX_CONCURRENT_INFERENCES", 4)

# Generation parameters
INFERENCE_TEMPERATURE = _env_float("INFERENCE_TEMPERATURE", 0.2)
SEARCH_MAX_NEW_TOKENS = _env_int("SEARCH_MAX_NEW_TOKENS", 800)
QUESTION_MAX_NEW_TOKENS = _env_int("QUESTION_MAX_NEW_TOKENS", 800)
ANALYSIS_MAX_NEW_TOKENS = _env_int("ANALYSIS_MAX_NEW_TOKENS", 500)

# Structured response defaults
DEFAULT_CONFIDENCE = 0.5


# ========== OBSERVABILITY ==========

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "logs/app.log")  # empty string disables file logging

POSTHOG_API_KEY = os.getenv("POSTHOG_API_KEY", "")
POSTHOG_HOST = os.getenv("POSTHOG_HOST", "https://app.posthog.com")


# ========== STORAGE ==========

# Optional JSON list of policies loaded into the in-memory store at startup
POLICY_SEED_FILE = os.getenv("POLICY_SEED_FILE", "")


# ========== DESIGN TRADE-OFFS (DOCUMENTED) ==========

"""
TRADE-OFF DECISIONS:

1. MAX_DOCUMENT_CHARACTERS = 15000:
   - Whole policies go into one prompt (no retrieval step)
   - Larger values overflow 7B model context windows
   - Content past the ceiling is dropped and a marker is appended

2. MODEL_IDS (primary + one fallback):
   - Each id is tried once, in order, with identical parameters
   - No backoff; a request costs at most len(MODEL_IDS) calls

3. MAX_CONCURRENT_INFERENCES = 4:
   - Uploads schedule analysis without waiting, so the gate is the only
     bound on concurrent provider calls
   - Excess calls wait on the semaphore instead of failing

4. In-process background tasks (no job queue):
   - Upload responds immediately with a pending document
   - Limitation: in-flight processing is lost on restart
"""
