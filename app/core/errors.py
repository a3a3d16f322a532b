# app/core/errors.py
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException


# === 例外分類 ===
class AppError(Exception):
    """可預期的業務錯誤：固定 code + 給使用者看的訊息。"""

    code = "APP_ERROR"
    message = "Application error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: Optional[str] = None, *, code: Optional[str] = None) -> None:
        self.message = message or self.message
        self.code = code or self.code
        super().__init__(self.message)


class AuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED


class MissingCredential(AuthError):
    code = "UNAUTHORIZED"
    message = "Access token is required"


class BlacklistedToken(AuthError):
    code = "TOKEN_BLACKLISTED"
    message = "Token has been revoked"


class ExpiredToken(AuthError):
    code = "TOKEN_EXPIRED"
    message = "Access token has expired"


class InvalidToken(AuthError):
    code = "INVALID_TOKEN"
    message = "Invalid access token"


class UserNotFound(AuthError):
    code = "USER_NOT_FOUND"
    message = "User not found"


class InvalidCredentials(AuthError):
    code = "INVALID_CREDENTIALS"
    message = "Invalid email or password"


class ProfileNotFound(AppError):
    code = "USER_NOT_FOUND"
    message = "User not found"
    status_code = status.HTTP_404_NOT_FOUND


class EmailAlreadyExists(AppError):
    code = "EMAIL_ALREADY_EXISTS"
    message = "Email already exists"
    status_code = status.HTTP_409_CONFLICT


class StoreFailure(Exception):
    """任何資料庫 I/O 失敗；對外一律是 500，不洩漏 SQL。"""


class TokenDecodeError(Exception):
    """已通過驗證的 token 卻無法解碼（內部錯誤，不是使用者錯誤）。"""


_HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    429: "RATE_LIMIT_EXCEEDED",
}


def error_body(code: str, message: str, details: Optional[List[Any]] = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return {"success": False, "error": error}


def _internal_error() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("INTERNAL_ERROR", "Internal server error"),
    )


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.code, exc.message),
            headers=headers,
        )

    @app.exception_handler(StoreFailure)
    async def store_failure_handler(request: Request, exc: StoreFailure):
        logger.error("Store failure on {} {}: {}", request.method, request.url.path, exc)
        return _internal_error()

    @app.exception_handler(TokenDecodeError)
    async def token_decode_handler(request: Request, exc: TokenDecodeError):
        logger.error("Token decode failure on {} {}", request.method, request.url.path)
        return _internal_error()

    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):
        # 統一輸出格式
        code = _HTTP_CODES.get(exc.status_code, "HTTP_ERROR")
        message = "Route not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(code, message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if any(e.get("type") == "json_invalid" for e in errors):
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content=error_body("INVALID_JSON", "Invalid JSON in request body"),
            )
        # 只回欄位位置與訊息，不回原始輸入
        details = [
            {"field": ".".join(str(p) for p in e.get("loc", ()) if p != "body"), "message": e.get("msg")}
            for e in errors
        ]
        return JSONResponse(
            status_code=422,
            content=jsonable_encoder(error_body("VALIDATION_ERROR", "Validation failed", details)),
        )

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on {} {}", request.method, request.url.path)
        return _internal_error()

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        # 小強化：避免洩露伺服器細節
        resp = await call_next(request)
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        return resp
