"""Error reply value produced by the error classifier."""
from dataclasses import dataclass
from typing import Any, Dict

from fastapi.responses import JSONResponse


@dataclass(frozen=True)
class ClassifiedError:
    """
    Status code and JSON body derived from a raised exception.
    
    Built per failed request and never stored.
    """
    status_code: int
    body: Dict[str, Any]
    
    def to_response(self) -> JSONResponse:
        return JSONResponse(status_code=self.status_code, content=self.body)
