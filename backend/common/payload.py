"""
Request body parsing shared by the blueprints.
"""

from typing import Any, Dict

from flask import request

from backend.common.errors import ValidationError


def json_body() -> Dict[str, Any]:
    """
    The JSON body of the current request as a dict.
    A missing or unparsable body counts as empty.

    Raises:
        ValidationError: The body is valid JSON but not an object.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data
