# rotur/schemas/ofsf.py
from typing import Any

from pydantic import BaseModel


class UpdateBatchIn(BaseModel):
    """
    OFSF update batch.
    Each element is {"command": ADD|REPLACE|DELETE, "uuid": ..., "dta": ..., "idx": ...};
    the elements are validated by the service so that older command aliases keep working.
    """
    updates: list[Any]


class UUIDsIn(BaseModel):
    uuids: list[str]
