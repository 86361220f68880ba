"""
Request Adapter - projects the validated request onto what a handler sees.

By the time this runs, upstream validation has already coerced and
checked every declared section, so the adapter only selects keys.
"""
from typing import Any, Dict, Mapping

from servicekit.models.route import REQUEST_SECTIONS


def adapt_request(raw: Mapping[str, Any], schema: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Select the request sections a route declared.
    
    A section is included only when the schema declares it AND the raw
    value is present. A declared section whose raw value is missing is
    left out entirely rather than replaced by an empty object.
    
    Args:
        raw: Validated record with body/params/query/headers
        schema: Normalized route schema
        
    Returns:
        Dict with a subset of body/params/query/headers; never raises
    """
    data: Dict[str, Any] = {}
    for section in REQUEST_SECTIONS:
        if section not in schema:
            continue
        value = raw.get(section)
        if value is None:
            continue
        data[section] = value
    return data
