"""
Utilidades para validar tokens JWT

La emisión de tokens vive en el servicio de identidad; acá solo se verifican.
create_access_token queda para herramientas internas y tests.
"""
from datetime import datetime, timedelta
from typing import Optional

import pytz
from jose import JWTError, jwt
from fastapi import HTTPException, status

from config import JWT_SECRET_KEY, JWT_ALGORITHM

ACCESS_TOKEN_EXPIRE_MINUTES = 30


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    now = datetime.now(pytz.utc)
    to_encode = data.copy()
    to_encode.update({
        "exp": now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)),
        "iat": now,
        "type": "access",
    })
    return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_token(token: str, token_type: str = "access") -> dict:
    """
    Verifica y decodifica un token JWT (firma y expiración)

    Raises:
        HTTPException: 401 si el token es inválido, expiró o no es del tipo esperado
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="No se pudo validar las credenciales",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise credentials_exception

    if payload.get("type") != token_type:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Tipo de token inválido. Se esperaba '{token_type}'",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if payload.get("exp") is None:
        raise credentials_exception

    return payload
