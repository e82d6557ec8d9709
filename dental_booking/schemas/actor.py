from pydantic import BaseModel, ConfigDict, EmailStr

from dental_booking.models.user import Role


class ActorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: EmailStr
    full_name: str
    role: Role
