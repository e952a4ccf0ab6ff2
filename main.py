from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from config import app
from auth.routes import router as auth_router
from routes.file_routes import file_router
from routes.ai_routes import ai_router
from services.errors import FileServiceError, AuthenticationError


app.include_router(auth_router)
app.include_router(file_router)
app.include_router(ai_router)


@app.exception_handler(FileServiceError)
async def file_service_error_handler(request: Request, exc: FileServiceError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err["loc"] if p != "body"), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "code": "ValidationError", "message": "Validation failed", "errors": errors},
    )


@app.get("/")
async def root():
    return {"message": "Interview Assistant API is running"}


# Run using:
# uvicorn main:app --reload
