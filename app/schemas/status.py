from pydantic import BaseModel


class StatusOption(BaseModel):
    value: str
    label: str
    category: str
