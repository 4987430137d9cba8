"""Dependencies de autenticación para FastAPI"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional, Dict
from shared.auth.jwt_handler import decode_token


security = HTTPBearer()


def _user_from_payload(payload: Dict) -> Optional[Dict]:
    user_id = payload.get('sub') or payload.get('user_id')
    if not user_id:
        return None
    return {
        'user_id': user_id,
        'email': payload.get('email'),
        'role': payload.get('role', 'user'),
        'company_id': payload.get('company_id'),
    }


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Dict:
    '''Obtener usuario actual desde token JWT'''
    payload = decode_token(credentials.credentials)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Token inválido o expirado',
            headers={'WWW-Authenticate': 'Bearer'},
        )

    user = _user_from_payload(payload)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Token inválido: falta user_id',
        )
    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(HTTPBearer(auto_error=False))
) -> Optional[Dict]:
    '''Obtener usuario opcional (para endpoints públicos)'''
    if not credentials:
        return None

    payload = decode_token(credentials.credentials)
    if payload is None:
        return None
    return _user_from_payload(payload)


async def get_current_admin(
    current_user: Dict = Depends(get_current_user)
) -> Dict:
    '''Verificar que el usuario sea admin'''
    if current_user.get('role') != 'admin':
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Se requieren permisos de administrador'
        )
    return current_user


def ensure_company_access(current_user: Dict, company_id, detail: str = 'No tienes acceso a esta empresa') -> None:
    '''Admin accede a todo; el resto sólo a la empresa de su token'''
    if current_user.get('role') == 'admin':
        return
    if str(current_user.get('company_id')) != str(company_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
