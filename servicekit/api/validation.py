"""
JSON schema validation for requests and responses.

Validators are compiled once per route with jsonschema and reused for
every request. Failures are reported as plain dicts:

    {"instancePath": "/email", "schemaPath": "#/properties/email/format",
     "keyword": "format", "message": "'x' is not a 'email'"}

Request-side validation plays the part of the framework's upstream
validation: it coerces string values from path, query and headers to the
declared types, fills in defaults, and raises RequestValidationFailed
before the route pipeline runs.
"""
import copy
import json
import re
from typing import Any, Callable, Dict, List, Mapping, Optional

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError
from jsonschema.protocols import Validator
from jsonschema.validators import validator_for
from starlette.requests import Request

from servicekit.core.exceptions import ConfigurationError, RequestValidationFailed
from servicekit.core.logging_config import get_logger

logger = get_logger(__name__)

_INTEGER_RE = re.compile(r"^[+-]?\d+$")

# Sections whose raw values arrive as strings
STRING_SECTIONS = ("params", "query", "headers")


def compile_validator(schema: Dict[str, Any], strict: bool = True) -> Validator:
    """
    Compile a JSON schema into a reusable validator.
    
    The draft is taken from "$schema", defaulting to Draft 7.
    
    Raises:
        ConfigurationError: In strict mode, when the schema itself is invalid
    """
    validator_cls = validator_for(schema, default=Draft7Validator)
    if strict:
        try:
            validator_cls.check_schema(schema)
        except SchemaError as e:
            raise ConfigurationError(f"Invalid JSON schema: {e.message}") from e
    return validator_cls(schema)


_REQUIRED_MESSAGE_RE = re.compile(r"^'(.+)' is a required property$")


def _child(node: Any, part: Any) -> Any:
    if isinstance(node, Mapping):
        return node.get(part)
    if isinstance(node, list) and isinstance(part, int) and part < len(node):
        return node[part]
    return None


def custom_message(error, root: Any) -> Optional[str]:
    """
    Message declared with the "errorMessage" keyword, if any.
    
    Supported forms, on the schema holding the failing keyword:
        "errorMessage": "one message for every failure here"
        "errorMessage": {"type": "...", "required": "..."}
        "errorMessage": {"required": {"email": "..."}}
    and on an object schema, for failures inside one of its properties:
        "errorMessage": {"properties": {"age": "..."}}
    The closest declaration wins.
    """
    own = error.schema.get("errorMessage") if isinstance(error.schema, Mapping) else None
    if isinstance(own, str):
        return own
    if isinstance(own, Mapping):
        entry = own.get(error.validator)
        if isinstance(entry, str):
            return entry
        if isinstance(entry, Mapping) and error.validator == "required":
            match = _REQUIRED_MESSAGE_RE.match(error.message)
            if match and isinstance(entry.get(match.group(1)), str):
                return entry[match.group(1)]
    
    message = None
    parts = list(error.absolute_schema_path)
    node = root
    for index, part in enumerate(parts[:-1]):
        if part == "properties" and isinstance(node, Mapping):
            declared = node.get("errorMessage")
            if isinstance(declared, Mapping) and isinstance(declared.get("properties"), Mapping):
                candidate = declared["properties"].get(parts[index + 1])
                if isinstance(candidate, str):
                    message = candidate
        node = _child(node, part)
    return message


def _failure(error, root: Any = None, section: Optional[str] = None) -> Dict[str, Any]:
    failure = {
        "instancePath": "".join(f"/{part}" for part in error.absolute_path),
        "schemaPath": "#/" + "/".join(str(part) for part in error.absolute_schema_path),
        "keyword": error.validator,
        "message": custom_message(error, root) or error.message,
    }
    if section is not None:
        failure["section"] = section
    return failure


def collect_failures(
    validator: Validator,
    instance: Any,
    section: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Return every failure of instance against the validator, in path order."""
    errors = sorted(
        validator.iter_errors(instance),
        key=lambda e: ([str(p) for p in e.absolute_path], [str(p) for p in e.absolute_schema_path]),
    )
    return [_failure(error, validator.schema, section) for error in errors]


# ============================================================
# Coercion (string maps -> declared types)
# ============================================================

def _declared_types(prop: Mapping[str, Any]) -> List[str]:
    declared = prop.get("type")
    if isinstance(declared, str):
        return [declared]
    if isinstance(declared, list):
        return list(declared)
    return []


def _coerce_scalar(value: Any, types: List[str]) -> Any:
    if not isinstance(value, str) or not types or "string" in types:
        return value
    for declared in types:
        if declared == "integer" and _INTEGER_RE.match(value):
            return int(value)
        if declared == "number":
            try:
                number = float(value)
            except ValueError:
                continue
            return int(number) if _INTEGER_RE.match(value) else number
        if declared == "boolean" and value in ("true", "false"):
            return value == "true"
        if declared == "null" and value == "":
            return None
    return value


def coerce_value(value: Any, prop: Any) -> Any:
    """Coerce one raw string (or list of strings) to the property's declared type."""
    if not isinstance(prop, Mapping):
        return value
    types = _declared_types(prop)
    if "array" in types:
        items = value if isinstance(value, list) else [value]
        item_schema = prop.get("items", {})
        return [coerce_value(item, item_schema) for item in items]
    if isinstance(value, list):
        # Repeated query keys for a scalar property: last one wins
        value = value[-1] if value else None
    return _coerce_scalar(value, types)


def apply_defaults(values: Dict[str, Any], schema: Mapping[str, Any]) -> Dict[str, Any]:
    """Fill in "default" values of top-level properties missing from values."""
    for name, prop in (schema.get("properties") or {}).items():
        if name not in values and isinstance(prop, Mapping) and "default" in prop:
            values[name] = copy.deepcopy(prop["default"])
    return values


def coerce_section(
    values: Mapping[str, Any],
    schema: Mapping[str, Any],
    getlist: Optional[Callable[[str], List[str]]] = None,
) -> Dict[str, Any]:
    """
    Coerce a string map against an object schema's top-level properties.
    
    Args:
        values: Raw values (path params, query params or headers)
        schema: The section's JSON schema
        getlist: Multi-value accessor, used for array-typed properties
    """
    result = dict(values)
    for name, prop in (schema.get("properties") or {}).items():
        if name not in result:
            continue
        raw = result[name]
        if getlist is not None and isinstance(prop, Mapping) and "array" in _declared_types(prop):
            raw = getlist(name)
        result[name] = coerce_value(raw, prop)
    return apply_defaults(result, schema)


# ============================================================
# Request validation
# ============================================================

def lowercase_header_schema(schema: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Header names arrive lowercased, so the declared names are lowercased
    to match: top-level "properties" keys and "required" entries.
    """
    lowered = dict(schema)
    if isinstance(schema.get("properties"), Mapping):
        lowered["properties"] = {
            str(name).lower(): prop for name, prop in schema["properties"].items()
        }
    if isinstance(schema.get("required"), list):
        lowered["required"] = [
            name.lower() if isinstance(name, str) else name for name in schema["required"]
        ]
    return lowered


def remove_additional(values: Any, schema: Mapping[str, Any]) -> Any:
    """Drop top-level keys neither "properties" nor "patternProperties" declares."""
    declared = schema.get("properties")
    if not isinstance(values, dict) or not isinstance(declared, Mapping):
        return values
    patterns = [re.compile(p) for p in (schema.get("patternProperties") or {})]
    return {
        name: value for name, value in values.items()
        if name in declared or any(p.search(name) for p in patterns)
    }


class RequestValidator:
    """
    Upstream validation for one route.
    
    Reads the Starlette request into a raw record
    {"body", "params", "query", "headers"}, coerced and checked against
    every declared section. Undeclared sections pass through untouched
    (body is only parsed when declared). Outside strict mode, keys a
    section's properties do not declare are removed before validation.
    """
    
    def __init__(self, schema: Mapping[str, Any], strict: bool = True):
        self.strict = strict
        self.schema: Dict[str, Any] = dict(schema)
        if isinstance(self.schema.get("headers"), Mapping):
            self.schema["headers"] = lowercase_header_schema(self.schema["headers"])
        self._validators: Dict[str, Validator] = {
            section: compile_validator(self.schema[section], strict)
            for section in ("body",) + STRING_SECTIONS
            if section in self.schema
        }
    
    async def read(self, request: Request) -> Dict[str, Any]:
        """
        Snapshot and validate the request.
        
        Returns:
            Raw record with body (None when absent or undeclared), params,
            query and headers
            
        Raises:
            RequestValidationFailed: With every failure across all sections
        """
        failures: List[Dict[str, Any]] = []
        raw: Dict[str, Any] = {
            "body": None,
            "params": dict(request.path_params),
            "query": dict(request.query_params),
            "headers": dict(request.headers),
        }
        
        if "body" in self.schema:
            raw["body"], body_failures = await self._read_body(request)
            failures.extend(body_failures)
        
        if "params" in self.schema:
            raw["params"] = coerce_section(raw["params"], self.schema["params"])
        if "query" in self.schema:
            raw["query"] = coerce_section(
                raw["query"], self.schema["query"], getlist=request.query_params.getlist
            )
        if "headers" in self.schema:
            raw["headers"] = coerce_section(raw["headers"], self.schema["headers"])
        
        if not self.strict:
            for section in self._validators:
                raw[section] = remove_additional(raw[section], self.schema[section])
        
        for section, validator in self._validators.items():
            if section == "body" and failures:
                continue
            if section == "body" and raw["body"] is None:
                # An absent body is only checked when the schema demands a value
                if self.schema["body"].get("type") in (None, "null"):
                    continue
            failures.extend(collect_failures(validator, raw[section], section))
        
        if failures:
            logger.debug(
                f"Request validation failed: {request.method} {request.url.path} "
                f"failures={len(failures)}"
            )
            raise RequestValidationFailed(failures)
        return raw
    
    async def _read_body(self, request: Request):
        payload = await request.body()
        if not payload.strip():
            return None, []
        try:
            body = json.loads(payload)
        except (ValueError, UnicodeDecodeError) as e:
            return None, [{
                "instancePath": "",
                "schemaPath": "#",
                "keyword": "json",
                "message": f"Body is not valid JSON: {e}",
                "section": "body",
            }]
        if isinstance(body, dict):
            body = apply_defaults(body, self.schema["body"])
        return body, []
