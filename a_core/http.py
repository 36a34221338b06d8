# a_core/http.py
import json

from django.http import JsonResponse


class BadRequest(ValueError):
    pass


def read_json(request) -> dict:
    """Decode a JSON object body; empty body → {}."""
    raw = request.body.decode("utf-8") if request.body else ""
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise BadRequest(f"Invalid JSON: {e}")
    if not isinstance(data, dict):
        raise BadRequest("Expected a JSON object")
    return data


def error_response(error: str, status: int) -> JsonResponse:
    return JsonResponse({"ok": False, "error": error}, status=status)
