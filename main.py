import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
from urllib.parse import quote

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, EmailStr
from pymongo.errors import DuplicateKeyError, PyMongoError

import auth_service
import database
import document_service
import mfa
import project_service
from errors import AppError, Conflict, Internal, InvalidInput
from schemas import RoleName
from security import Principal, get_current_user, require_roles
from storage import LocalBlobStore, get_blob_store

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    database.init_database()
    yield


# App and CORS
app = FastAPI(title="PixelForge Nexus API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    error = Conflict() if isinstance(exc, DuplicateKeyError) else Internal()
    if isinstance(error, Internal):
        logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=error.status_code, content={"detail": error.message, "code": error.code})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = sorted({".".join(str(p) for p in err["loc"][1:]) for err in exc.errors() if len(err["loc"]) > 1})
    message = f"Invalid or missing fields: {', '.join(fields)}" if fields else InvalidInput.message
    return JSONResponse(status_code=InvalidInput.status_code, content={"detail": message, "code": InvalidInput.code})


# Pydantic models
class RegisterRequest(BaseModel):
    username: str
    email: EmailStr
    password: str
    role_name: str


class LoginRequest(BaseModel):
    username: str
    password: str


class VerifyLoginRequest(BaseModel):
    user_id: str
    code: str


class UpdatePasswordRequest(BaseModel):
    current_password: Optional[str] = None
    new_password: Optional[str] = None


class MfaCodeRequest(BaseModel):
    code: str


class CreateProjectRequest(BaseModel):
    name: str
    description: str
    deadline: datetime
    project_lead_email: Optional[EmailStr] = None


class AssignDeveloperRequest(BaseModel):
    developer_email: EmailStr


class MessageResponse(BaseModel):
    message: str


# Basic routes
@app.get("/")
def read_root():
    return {"message": "PixelForge Nexus API is running"}


@app.get("/test")
def test_database():
    info = {
        "backend": "running",
        "database": "connected" if database.db is not None else "not-configured",
    }
    if database.db is not None:
        try:
            info["collections"] = database.db.list_collection_names()
        except Exception as e:
            info["collections_error"] = str(e)
    return info


# Auth endpoints
@app.post("/auth/register", response_model=MessageResponse, status_code=201)
def register(payload: RegisterRequest):
    auth_service.register(payload.username, payload.email, payload.password, payload.role_name)
    return MessageResponse(message="User registered successfully")


@app.post("/auth/login", response_model=auth_service.LoginResult, response_model_exclude_none=True)
def login(payload: LoginRequest):
    return auth_service.login(payload.username, payload.password)


@app.post("/auth/verify-login", response_model=auth_service.LoginResult, response_model_exclude_none=True)
def verify_login(payload: VerifyLoginRequest):
    return auth_service.verify_login_token(payload.user_id, payload.code)


@app.patch("/auth/update-password", response_model=MessageResponse)
def update_password(payload: UpdatePasswordRequest, user: Principal = Depends(get_current_user)):
    auth_service.update_password(user.user_id, payload.current_password, payload.new_password)
    return MessageResponse(message="Password updated successfully")


# MFA endpoints
@app.get("/mfa/generate", response_model=mfa.MfaSetup)
def generate_mfa_secret(user: Principal = Depends(get_current_user)):
    return mfa.generate_secret(user.user_id)


@app.post("/mfa/verify", response_model=MessageResponse)
def verify_mfa(payload: MfaCodeRequest, user: Principal = Depends(get_current_user)):
    mfa.verify_and_enable(user.user_id, payload.code)
    return MessageResponse(message="MFA has been enabled successfully")


# Project endpoints
@app.post("/projects", status_code=201)
def create_project(payload: CreateProjectRequest, user: Principal = Depends(require_roles(RoleName.ADMIN))):
    return project_service.create_project(
        user, payload.name, payload.description, payload.deadline, payload.project_lead_email
    )


@app.get("/projects")
def list_projects(user: Principal = Depends(get_current_user)):
    return project_service.list_active_projects(user)


@app.get("/projects/assigned")
def list_assigned_projects(user: Principal = Depends(require_roles(RoleName.DEVELOPER))):
    return project_service.list_assigned_projects(user)


@app.patch("/projects/{project_id}/complete")
def complete_project(project_id: str, user: Principal = Depends(require_roles(RoleName.ADMIN))):
    project = project_service.mark_project_complete(user, project_id)
    return {"message": "Project marked as completed", "project": project}


@app.patch("/projects/{project_id}/assign-developer")
def assign_developer(project_id: str, payload: AssignDeveloperRequest,
                     user: Principal = Depends(require_roles(RoleName.PROJECT_LEAD))):
    project = project_service.assign_developer(user, project_id, payload.developer_email)
    return {"message": "Developer assigned successfully", "project": project}


# Document endpoints
@app.post("/documents/{project_id}", status_code=201)
def upload_document(project_id: str, document: Optional[UploadFile] = File(None),
                    user: Principal = Depends(get_current_user),
                    store: LocalBlobStore = Depends(get_blob_store)):
    data = document.file.read() if document is not None else None
    doc = document_service.upload_document(
        user, store, project_id,
        document.filename if document is not None else None,
        document.content_type if document is not None else None,
        data,
    )
    return {"message": "File uploaded successfully", "document": doc}


@app.get("/documents/{project_id}")
def list_documents(project_id: str, user: Principal = Depends(get_current_user)):
    return document_service.list_documents(user, project_id)


@app.get("/documents/download/{doc_id}")
def download_document(doc_id: str, user: Principal = Depends(get_current_user),
                      store: LocalBlobStore = Depends(get_blob_store)):
    result = document_service.download_document(user, store, doc_id)
    fallback = result.filename.encode("ascii", "replace").decode().replace('"', "")
    disposition = f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(result.filename)}"
    return Response(content=result.content, media_type=result.mime_type,
                    headers={"Content-Disposition": disposition})


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
