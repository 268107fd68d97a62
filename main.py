from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_utilities import repeat_every

from config import CORS_ORIGINS, DEBUG, EXPIRED_OTP_CLEANUP_INTERVAL_SECONDS
from database import engine, init_db
from errors import InvalidArgument, OTPError
from models import (
    ErrorResponse,
    MessageResponse,
    SendOTPRequest,
    VerifyOTPRequest,
    VerifyOTPResponse,
)
from services.email_service import SESEmailSender
from services.logs_service import configure_logging
from services.otp_service import OTPService
from services.otp_store import OTPStore

logger = configure_logging()

otp_service = OTPService(store=OTPStore(engine), sender=SESEmailSender())


def get_otp_service() -> OTPService:
    return otp_service


# cron job to clean up expired OTPs
@repeat_every(seconds=EXPIRED_OTP_CLEANUP_INTERVAL_SECONDS)
def clear_expired_otps():
    otp_service.purge_expired()


# Initialize the OTP database
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up... Initializing database.")
    init_db()
    logger.info("Database initialized.")
    await clear_expired_otps()  # Initial cleanup on startup
    yield


app = FastAPI(
    title="Email OTP API",
    description="Issue and verify one-time codes sent by email",
    version="0.1.0",
    debug=DEBUG,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(OTPError)
async def otp_error_handler(request: Request, exc: OTPError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    error = InvalidArgument("Malformed request body")
    return JSONResponse(status_code=error.status_code, content={"error": error.to_dict()})


# Create router with /api/v1 prefix
router = APIRouter(prefix="/api/v1")

error_responses = {
    400: {"model": ErrorResponse, "description": "A required field is missing (invalid-argument)"},
    500: {"model": ErrorResponse, "description": "Storage or email delivery failed (internal)"},
}


@router.post(
    "/auth/send-otp",
    response_model=MessageResponse,
    tags=["Authentication"],
    summary="Send OTP to email",
    description="Generate a six digit code, store it for the email address and send it there. "
    "A new request replaces any code issued earlier for the same address.",
    responses={
        200: {"description": "The OTP was sent"},
        **error_responses,
    },
)
def send_otp(request: SendOTPRequest, service: OTPService = Depends(get_otp_service)):
    return service.issue(request.email)


@router.post(
    "/auth/verify-otp",
    response_model=VerifyOTPResponse,
    tags=["Authentication"],
    summary="Verify OTP",
    description="Verify a code sent to the email address. A code can be used once.",
    responses={
        200: {"description": "The OTP is valid and has been consumed"},
        403: {"model": ErrorResponse, "description": "The OTP does not match (permission-denied)"},
        404: {"model": ErrorResponse, "description": "No OTP is pending for the email (not-found)"},
        410: {"model": ErrorResponse, "description": "The OTP has expired (deadline-exceeded)"},
        **error_responses,
    },
)
def verify_otp(request: VerifyOTPRequest, service: OTPService = Depends(get_otp_service)):
    """Verify an OTP provided by the user."""
    return service.verify(request.email, request.otp)


app.include_router(router)
