"""Fixed constants shared across modules."""

TIKTOKEN_ENCODING = "cl100k_base"

SYSTEM_QUERY_MESSAGES = {
    "ping": "pong",
    "test": "System test successful",
}
SYSTEM_DEFAULT_MESSAGE = "System operational"

AUDIT_QUERY_MAX_CHARS = 500
