from pydantic import BaseModel


class LessonTypeOut(BaseModel):
    id: str
    school_id: str
    name: str
    duration_min: int
    price_cents: int

    model_config = {"from_attributes": True}
