from fastapi import APIRouter, Depends, HTTPException, status, Query, UploadFile, File
from sqlalchemy.orm import Session
from app.core.database import get_db
from app.models.user import User
from app.models.verification import VerificationStatus
from app.schemas.verification import (
    VerificationSubmitRequest, VerificationResponse, VerificationStatusResponse,
    VerificationListResponse, VerificationRejectRequest,
)
from app.api.deps import get_current_active_user, require_owner, require_admin, get_identity_verifier
from app.services import verification_service
from app.services.verification_service import IdentityVerifier
from app.utils.file_storage import save_document_image, delete_document_image
from typing import Optional
from uuid import UUID

router = APIRouter(prefix="/verification", tags=["Verification"])


# ─── Owner: submit & status ───────────────────────────────────────────────────

@router.post("/submit", response_model=VerificationResponse, status_code=status.HTTP_201_CREATED)
async def submit_verification(
    request: VerificationSubmitRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_owner),
):
    """Submit ID details and fingerprint capture metadata for review."""
    return verification_service.submit_verification(
        db, current_user, request.id_data, request.biometric_data, request.source
    )


@router.post("/documents", response_model=VerificationResponse)
async def upload_documents(
    front_image: Optional[UploadFile] = File(None),
    back_image: Optional[UploadFile] = File(None),
    selfie_image: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_owner),
):
    """Attach ID document photos and a selfie to the current submission."""
    uploads = {
        name: f for name, f in
        (("front_image", front_image), ("back_image", back_image), ("selfie_image", selfie_image))
        if f and f.filename
    }
    if not uploads:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Upload at least one of front_image, back_image or selfie_image.",
        )

    existing = verification_service.get_user_verification(db, current_user.id)
    previous = {name: getattr(existing, name) for name in uploads} if existing else {}

    urls = {name: await save_document_image(f) for name, f in uploads.items()}
    verification = verification_service.attach_documents(db, current_user, **urls)

    # ── Old files are only removed once the new ones are recorded ─────────────
    for url in previous.values():
        if url:
            delete_document_image(url)
    return verification


@router.get("/status", response_model=VerificationStatusResponse)
async def verification_status(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return verification_service.get_status(db, current_user)


# ─── Admin ────────────────────────────────────────────────────────────────────

@router.get("/admin/list", response_model=VerificationListResponse)
async def list_verifications(
    status_filter: Optional[VerificationStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    items, total = verification_service.list_verifications(db, status_filter, skip, limit)
    return {"items": items, "total": total, "skip": skip, "limit": limit}


@router.post("/admin/{verification_id}/evaluate", response_model=VerificationResponse)
async def evaluate_verification(
    verification_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
):
    """Run the document, biometric, face and duplicate checks."""
    return verification_service.evaluate(db, verification_id, verifier)


@router.post("/admin/{verification_id}/approve", response_model=VerificationResponse)
async def approve_verification(
    verification_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return verification_service.admin_review(db, verification_id, current_user, approve=True)


@router.post("/admin/{verification_id}/reject", response_model=VerificationResponse)
async def reject_verification(
    verification_id: UUID,
    request: VerificationRejectRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return verification_service.admin_review(
        db, verification_id, current_user, approve=False, reason=request.reason
    )
