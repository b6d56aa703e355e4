from pydantic import BaseModel


class WindowActiveUpdate(BaseModel):
    is_active: bool
