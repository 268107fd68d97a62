from pydantic import BaseModel


class SendOTPRequest(BaseModel):
    email: str | None = None


class VerifyOTPRequest(BaseModel):
    email: str | None = None
    otp: str | None = None


class MessageResponse(BaseModel):
    message: str


class VerifyOTPResponse(BaseModel):
    verified: bool
    message: str


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    """Body returned for every failed OTP request."""

    error: ErrorDetail
