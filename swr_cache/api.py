"""Discovery document and JSON envelopes returned by the service."""

from typing import Any

API: dict[str, Any] = {
    "icon": "🚀",
    "name": "swr-cache",
    "description": "Simple stale-while-revalidate cache for any HTTP origin.",
    "endpoints": {
        "get": "/:ttl/:url+",
        "purge": "/purge/:ttl/:url+",
    },
}

GETTING_STARTED = [
    "Prefix any URL with a cache policy, e.g. /5m/example.com/data.json",
    "Add a stale window with a dash (/5m-1h/...) and pick an engine with a comma (/5m,cache/...)",
    "Use /no-limit/... to keep a response until it is purged with /purge/no-limit/...",
]

EXAMPLES = {
    "get": "/5m/example.com/data.json",
    "purge": "/purge/5m/example.com/data.json",
}


def discovery_document() -> dict[str, Any]:
    return {"api": API, "gettingStarted": GETTING_STARTED, "examples": EXAMPLES}


def success_envelope(**data: Any) -> dict[str, Any]:
    return {"api": API, "data": {"success": True, **data}}


def error_envelope(message: str) -> dict[str, Any]:
    return {"api": API, "data": {"success": False, "error": message}}
