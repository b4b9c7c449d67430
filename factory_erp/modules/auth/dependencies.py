"""
Authentication dependencies for FastAPI.

User accounts live in the identity service; this engine only trusts the
claims of the bearer token (``sub`` and ``role``) to authorize requests and
to stamp audit fields.
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from factory_erp.modules.auth.schemas import AuthContext, UserRole
from factory_erp.modules.auth.utils import verify_token

# Security scheme
security = HTTPBearer()


class AuthDependencies:
    """Reusable authentication dependencies."""

    @staticmethod
    def get_auth_context(
        credentials: HTTPAuthorizationCredentials = Depends(security),
    ) -> AuthContext:
        """
        Build the acting user's context from the JWT.
        """
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

        payload = verify_token(credentials.credentials)
        user_id = payload.get("sub")
        if user_id is None or payload.get("type", "access") != "access":
            raise credentials_exception

        try:
            role = UserRole(payload.get("role", UserRole.EMPLOYEE.value))
        except ValueError:
            raise credentials_exception

        return AuthContext(user_id=str(user_id), user_role=role, email=payload.get("email"))

    @staticmethod
    def require_role(allowed_roles: list[UserRole]):
        """
        Dependency requiring one of the given roles.
        """
        def role_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if auth_context.user_role not in allowed_roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"One of these roles is required: {', '.join(r.value for r in allowed_roles)}"
                )
            return auth_context
        return role_checker


# Role groups used by the routers
BILLING_ROLES = [UserRole.ADMIN, UserRole.MANAGER, UserRole.ACCOUNTANT]
DELETE_ROLES = [UserRole.ADMIN, UserRole.MANAGER]
READ_ROLES = list(UserRole)
