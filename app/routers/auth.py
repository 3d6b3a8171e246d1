from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.dependencies import get_db, request_meta
from app.schemas import (
    ForgotPasswordRequest,
    OTPResponse,
    OTPSendRequest,
    OTPVerifyRequest,
    ResetPasswordRequest,
)
from app.services import AuthService
from app.services import exceptions as service_exceptions

router = APIRouter(prefix="/auth", tags=["auth"])

STORE_UNAVAILABLE_MESSAGE = "An unexpected error occurred, please try again later"


@router.post("/otp/send", response_model=OTPResponse, response_model_exclude_none=True)
def send_otp(payload: OTPSendRequest, request: Request, db: Session = Depends(get_db)) -> OTPResponse:
    service = AuthService(db)
    try:
        result = service.send_otp(
            email=payload.email,
            purpose=payload.purpose,
            user_name=payload.user_name,
            **request_meta(request),
        )
    except service_exceptions.RateLimitExceeded as exc:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(exc)) from exc
    except service_exceptions.StoreUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return OTPResponse(success=result.success, message=result.message, expires_at=result.expires_at)


@router.post("/otp/resend", response_model=OTPResponse, response_model_exclude_none=True)
def resend_otp(payload: OTPSendRequest, request: Request, db: Session = Depends(get_db)) -> OTPResponse:
    service = AuthService(db)
    try:
        result = service.resend_otp(
            email=payload.email,
            purpose=payload.purpose,
            user_name=payload.user_name,
            **request_meta(request),
        )
    except service_exceptions.RateLimitExceeded as exc:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(exc)) from exc
    except service_exceptions.StoreUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return OTPResponse(success=result.success, message=result.message, expires_at=result.expires_at)


@router.post("/otp/verify", response_model=OTPResponse, response_model_exclude_none=True)
def verify_otp(payload: OTPVerifyRequest, request: Request, db: Session = Depends(get_db)) -> OTPResponse:
    service = AuthService(db)
    try:
        result = service.verify_otp(
            email=payload.email,
            code=payload.otp,
            purpose=payload.purpose,
            **request_meta(request),
        )
    except service_exceptions.StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=STORE_UNAVAILABLE_MESSAGE
        ) from exc
    return OTPResponse(success=result.success, message=result.message, user_id=result.user_id)


@router.post("/forgot-password", response_model=OTPResponse, response_model_exclude_none=True)
def forgot_password(
    payload: ForgotPasswordRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> OTPResponse:
    service = AuthService(db)
    try:
        result = service.request_password_reset(email=payload.email, **request_meta(request))
    except service_exceptions.RateLimitExceeded as exc:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(exc)) from exc
    return OTPResponse(success=result.success, message=result.message)


@router.post("/reset-password", response_model=OTPResponse, response_model_exclude_none=True)
def reset_password(
    payload: ResetPasswordRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> OTPResponse:
    service = AuthService(db)
    try:
        result = service.reset_password(
            email=payload.email,
            code=payload.otp,
            new_password=payload.new_password,
            **request_meta(request),
        )
    except service_exceptions.StoreUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=STORE_UNAVAILABLE_MESSAGE
        ) from exc
    except service_exceptions.PasswordUpdateFailed as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return OTPResponse(success=result.success, message=result.message, user_id=result.user_id)
