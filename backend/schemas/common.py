from typing import Annotated, Optional

from pydantic import StringConstraints

from core.ids import OBJECT_ID_PATTERN

ObjectIdStr = Annotated[str, StringConstraints(strip_whitespace=True, to_lower=True, pattern=OBJECT_ID_PATTERN)]


def strip_nullable(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


def strip_required(v: str) -> str:
    v = (v or "").strip()
    if not v:
        raise ValueError("field is required")
    return v
