from pydantic import BaseModel
from typing import Any, Dict, List, Optional, Union

# Rich-text editor documents are stored and returned verbatim; only the
# outer shape is checked
RichContent = Union[Dict[str, Any], List[Any], str]


class AttachmentIn(BaseModel):
    file_path: str
    file_name: str
    mime: Optional[str] = None


class OkResponse(BaseModel):
    ok: bool = True
    id: Optional[str] = None
