"""
Dependencias de tenant y autenticación
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from database.conexion import get_db
from models.core import Tenant
from utils.auth import verify_token
from utils.logging_utils import log_event


# Esquema OAuth2 para obtener el token del header
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


@dataclass(frozen=True)
class AdminContext:
    tenant_id: int
    user_id: Optional[int]
    rol: Optional[str] = None


def get_admin_context(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> AdminContext:
    """
    Tenant y usuario del panel de administración, tomados de los claims del JWT

    Raises:
        HTTPException: 401 sin token o con token inválido, 403 si el tenant no está activo
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No autenticado",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_token(token, token_type="access")
    tenant_id = payload.get("tenant_id")
    if tenant_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="El token no contiene tenant_id",
            headers={"WWW-Authenticate": "Bearer"},
        )

    tenant = db.query(Tenant).filter(Tenant.id == tenant_id, Tenant.active.is_(True)).first()
    if not tenant:
        log_event("auth", payload.get("user_id"), "Acceso denegado", f"tenant_id={tenant_id} inactivo o inexistente")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Tenant inactivo o inexistente")

    return AdminContext(tenant_id=tenant.id, user_id=payload.get("user_id"), rol=payload.get("rol"))


def get_public_tenant(
    x_tenant_slug: Optional[str] = Header(None, alias="X-Tenant-Slug"),
    db: Session = Depends(get_db),
) -> Tenant:
    """Tenant del motor de reservas público, resuelto por el header X-Tenant-Slug"""
    if not x_tenant_slug:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="X-Tenant-Slug header is required")

    tenant = db.query(Tenant).filter(
        Tenant.slug == x_tenant_slug.strip().lower(),
        Tenant.active.is_(True),
    ).first()
    if not tenant:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")
    return tenant
