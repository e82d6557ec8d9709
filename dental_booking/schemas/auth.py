from pydantic import BaseModel, EmailStr

from dental_booking.models.user import Role


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: Role


class LoginRequest(BaseModel):
    email: EmailStr
    password: str
